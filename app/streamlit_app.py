from __future__ import annotations

import asyncio

import streamlit as st
from components.message_view import MESSAGE_CSS, render_citation_list, render_message

from chains.message_renderer import MessageRenderer
from chains.prompts import ANSWER_TEMPLATE, format_context
from citations.document_store import PdfDirectoryStore
from common.config import yaml_config
from models.llm import load_local_llm, stream_chunks

st.set_page_config(page_title="Cited Answers", layout="wide")
st.markdown(MESSAGE_CSS, unsafe_allow_html=True)
st.title("Cited Answers")
st.caption("Streaming answers with inline maps and page-level citations")

# --- Sidebar ---
st.sidebar.title("Settings")
pdf_dir = st.sidebar.text_input("PDF directory", str(yaml_config.documents.pdf_dir))
base_url = st.sidebar.text_input("Document viewer base URL", yaml_config.documents.base_url)
context_lines = st.sidebar.text_area("Context pages (KEY:PAGE, one per line)")
st.sidebar.divider()
st.sidebar.caption(f"Model: {yaml_config.llm.model_name}")


def _context_pages(lines: str) -> list[tuple[str, int]]:
    out = []
    for line in lines.splitlines():
        key, _, page = line.strip().rpartition(":")
        if key and page.isdigit():
            out.append((key, int(page)))
    return out


async def answer(question: str, slot) -> None:
    store = PdfDirectoryStore(pdf_dir)
    pages = []
    for key, page in _context_pages(context_lines):
        text = await store.fetch_page_text(key, page)
        if text:
            pages.append((key, page, text))
    prompt = ANSWER_TEMPLATE.format(context=format_context(pages), question=question)

    renderer = MessageRenderer(store)
    tree = renderer.snapshot()
    async for tree in renderer.stream(stream_chunks(load_local_llm(), prompt)):
        render_message(slot, tree, base_url)

    st.markdown("### Sources")
    render_citation_list(tree, base_url)


question = st.text_input("Ask a question:")
if st.button("Get Answer", type="primary", disabled=not question.strip()):
    st.markdown("### Answer")
    asyncio.run(answer(question, st.empty()))
