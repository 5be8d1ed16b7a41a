from __future__ import annotations

import asyncio
from typing import AsyncIterable, AsyncIterator, Dict, List, Optional, Set, Union

from citations.citation_models import CITE_TAG, CitationRequest, FragmentLink, parse_page
from citations.document_store import DocumentStore
from citations.resolver import CitationResolver
from common.config import ResolverConfig
from common.errors import GenerationAborted
from common.logger import get_logger
from rendering.nodes import ParseNode, Span, TagNode
from rendering.projector import RenderProjector, RenderTree
from rendering.schema import SchemaRegistry
from rendering.stream_parser import StreamingTagParser

log = get_logger(__name__)

Chunk = Union[str, bytes]


class MessageRenderer:
    """
    Renders one streamed model message:
      1) feeds chunks to the streaming parser in arrival order
      2) starts a citation resolution for every settled <Cite> tag
      3) projects settled nodes (+ live provisional text) into a RenderTree

    Resolutions run concurrently and may finish in any order; each one fills
    its placeholder in place, so the tree keeps source order throughout.
    """

    def __init__(
        self,
        store: DocumentStore,
        registry: Optional[SchemaRegistry] = None,
        resolver_config: Optional[ResolverConfig] = None,
        max_pending: Optional[int] = None,
    ):
        self.parser = StreamingTagParser(registry, max_pending)
        self.resolver = CitationResolver(store, resolver_config)
        self.projector = RenderProjector()
        self.links: Dict[Span, FragmentLink] = {}
        self._tasks: Set["asyncio.Task[None]"] = set()
        self._unscheduled: List[TagNode] = []
        self._finished = False

    # -- parsing -----------------------------------------------------------

    def feed(self, chunk: Chunk) -> RenderTree:
        self._on_settled(self.parser.feed(chunk))
        return self.snapshot()

    def finish(self) -> RenderTree:
        """End-of-stream: settle the tail of the buffer."""
        self._on_settled(self.parser.close())
        self._finished = True
        return self.snapshot()

    def abort(self) -> RenderTree:
        """Generation was cut off: keep what is settled, drop the rest."""
        self.parser.abort()
        self._finished = True
        return self.snapshot()

    def snapshot(self) -> RenderTree:
        return self.projector.project(
            self.parser.nodes,
            self.links,
            provisional_text="" if self.parser.closed else self.parser.provisional_text,
            complete=self._finished and not self.outstanding,
        )

    @property
    def outstanding(self) -> int:
        return len(self._tasks) + len(self._unscheduled)

    # -- citations ---------------------------------------------------------

    def _on_settled(self, delta: tuple[ParseNode, ...]) -> None:
        for node in delta:
            if isinstance(node, TagNode) and node.name == CITE_TAG:
                self._schedule(node)

    def _schedule(self, node: TagNode) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop yet: resolved later by wait_resolved().
            self._unscheduled.append(node)
            return
        task = loop.create_task(self._resolve(node))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _resolve(self, node: TagNode) -> None:
        try:
            request = CitationRequest.from_tag(node)
        except ValueError as e:
            log.warning("Unresolvable citation, linking to page only: %s", e)
            page = parse_page(node.attributes.get("page", "")) or 0
            self.links[node.source_span] = FragmentLink.page_only(
                node.attributes.get("documentKey", ""), page
            )
            return
        self.links[node.source_span] = await self.resolver.resolve_link(request)

    async def wait_resolved(self) -> RenderTree:
        """Wait for every scheduled citation and return the resulting tree."""
        pending, self._unscheduled = self._unscheduled, []
        for node in pending:
            self._schedule(node)
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
        return self.snapshot()

    # -- driving a stream --------------------------------------------------

    async def stream(self, chunks: AsyncIterable[Chunk]) -> AsyncIterator[RenderTree]:
        """
        Yield a tree after every chunk and after every citation that resolves
        once the stream has ended. Cancelled or aborted generations end with
        the settled prefix only.
        """
        try:
            async for chunk in chunks:
                yield self.feed(chunk)
        except GenerationAborted as e:
            log.warning("Generation aborted mid-stream: %s", e)
            yield self.abort()
        except asyncio.CancelledError:
            self.abort()
            for task in list(self._tasks):
                task.cancel()
            raise
        else:
            yield self.finish()

        while self._tasks or self._unscheduled:
            for node in self._unscheduled:
                self._schedule(node)
            self._unscheduled = []
            await asyncio.wait(list(self._tasks), return_when=asyncio.FIRST_COMPLETED)
            yield self.snapshot()
