from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import AsyncIterator, List, Tuple

from chains.message_renderer import MessageRenderer
from chains.prompts import ANSWER_TEMPLATE, format_context
from citations.document_store import DocumentStore, HttpDocumentStore, PdfDirectoryStore
from common.config import yaml_config
from common.logger import get_logger
from models.llm import load_local_llm, stream_chunks
from rendering.projector import RenderTree

log = get_logger(__name__)


async def replay_text(text: str, chunk_size: int) -> AsyncIterator[str]:
    """Replay a saved model answer as if it were streaming."""
    for i in range(0, len(text), chunk_size):
        yield text[i : i + chunk_size]
        await asyncio.sleep(0)


def _parse_context_arg(value: str) -> Tuple[str, int]:
    key, sep, page = value.rpartition(":")
    if not sep or not key or not page.isdigit():
        raise argparse.ArgumentTypeError(f"expected KEY:PAGE, got {value!r}")
    return key, int(page)


async def _build_prompt(
    store: DocumentStore, question: str, context: List[Tuple[str, int]]
) -> str:
    pages = []
    for key, page in context:
        text = await store.fetch_page_text(key, page)
        if text is None:
            log.warning("Context page not found: %s p%d", key, page)
            continue
        pages.append((key, page, text))
    return ANSWER_TEMPLATE.format(context=format_context(pages), question=question)


async def run(args: argparse.Namespace) -> RenderTree:
    if args.url_template:
        store: DocumentStore = HttpDocumentStore(
            yaml_config.documents.model_copy(update={"url_template": args.url_template})
        )
    else:
        store = PdfDirectoryStore(args.pdf_dir)

    if args.text_file:
        chunks = replay_text(Path(args.text_file).read_text(encoding="utf-8"), args.chunk_size)
    else:
        prompt = await _build_prompt(store, args.question, args.context or [])
        chunks = stream_chunks(load_local_llm(), prompt)

    renderer = MessageRenderer(store)
    tree = renderer.snapshot()
    async for tree in renderer.stream(chunks):
        if args.verbose:
            print(tree.plain_text, file=sys.stderr)
    return tree


def main():
    parser = argparse.ArgumentParser(
        description="Render a (streamed) model answer with inline components into a UI tree."
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--text-file", type=str, help="Saved model output to replay")
    source.add_argument("--question", type=str, help="Ask the configured Ollama model")
    parser.add_argument(
        "--context",
        nargs="*",
        type=_parse_context_arg,
        help="Pages to put in the prompt, as KEY:PAGE (question mode)",
    )
    parser.add_argument("--chunk-size", type=int, default=7)
    parser.add_argument("--pdf-dir", type=str, default=str(yaml_config.documents.pdf_dir))
    parser.add_argument("--url-template", type=str, default=yaml_config.documents.url_template)
    parser.add_argument("--base-url", type=str, default=yaml_config.documents.base_url)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    tree = asyncio.run(run(args))

    print("\n=== TREE ===\n")
    print(tree.to_json().decode("utf-8"))

    links = [n.link for n in tree.nodes if n.link is not None]
    if links:
        print("\n=== CITATIONS ===\n")
        for link in links:
            flag = " (page only)" if link.degraded else ""
            print(f"- {link.to_url(args.base_url)}{flag}")


if __name__ == "__main__":
    main()
