import asyncio

import pytest

from chains.message_renderer import MessageRenderer
from citations.citation_models import Document, FragmentLink
from citations.document_store import InMemoryDocumentStore
from common.errors import GenerationAborted
from rendering.schema import SchemaRegistry

PAGE_3 = "Some context. In the last decades one idea dominated: string theory. More."
STORE_DOCS = [Document("doc1", ("p0", "p1", "p2", PAGE_3, "p4"))]

ANSWER = (
    "Physics moved on. "
    '<Cite documentKey="doc1" page="3" startText="In the last" endText="string theory."/>'
    ' Also see <Maps location="Paris" />. '
    '<Cite documentKey="ghost" page="1" startText="x" endText="y"/>'
)


async def _chunks(text, size=5, abort_after=None):
    for i in range(0, len(text), size):
        if abort_after is not None and i >= abort_after:
            raise GenerationAborted("connection reset")
        yield text[i : i + size]
        await asyncio.sleep(0)


async def _collect(renderer, chunks):
    return [tree async for tree in renderer.stream(chunks)]


def test_stream_end_to_end():
    renderer = MessageRenderer(InMemoryDocumentStore(STORE_DOCS))

    trees = asyncio.run(_collect(renderer, _chunks(ANSWER)))
    final = trees[-1]

    assert final.complete
    assert not any(t.complete for t in trees[:-1])
    assert any(n.provisional for t in trees for n in t.nodes)
    assert [n.component for n in final.nodes if n.kind == "component"] == ["Cite", "Maps", "Cite"]

    found, ghost = [n.link for n in final.nodes if n.component == "Cite"]
    assert not found.degraded
    assert found.page == 3
    assert found.highlight_text == ("In the last", "string theory.")
    assert ghost.degraded
    assert ghost.page == 1


def test_aborted_generation_keeps_settled_prefix():
    renderer = MessageRenderer(InMemoryDocumentStore(STORE_DOCS))

    trees = asyncio.run(_collect(renderer, _chunks(ANSWER, size=10, abort_after=30)))
    final = trees[-1]

    assert final.complete
    assert final.plain_text == "Physics moved on. "
    assert all(not n.provisional for n in final.nodes)


def test_feed_without_event_loop_resolves_later():
    renderer = MessageRenderer(InMemoryDocumentStore(STORE_DOCS))
    renderer.feed(ANSWER)
    tree = renderer.finish()

    cites = [n for n in tree.nodes if n.component == "Cite"]
    assert all(n.pending for n in cites)
    assert not tree.complete

    tree = asyncio.run(renderer.wait_resolved())

    assert tree.complete
    assert [n.link.degraded for n in tree.nodes if n.component == "Cite"] == [False, True]


def test_plain_text_message():
    renderer = MessageRenderer(InMemoryDocumentStore())

    trees = asyncio.run(_collect(renderer, _chunks("just words, no tags")))

    assert trees[-1].complete
    assert trees[-1].plain_text == "just words, no tags"
    assert len(trees[-1].nodes) == 1


class _SlowStore(InMemoryDocumentStore):
    """Holds back pages of some documents for a while."""

    def __init__(self, documents, delays):
        super().__init__(documents)
        self.delays = delays

    async def fetch_page_text(self, document_key, page):
        await asyncio.sleep(self.delays.get(document_key, 0))
        return await super().fetch_page_text(document_key, page)


class _HangingStore:
    def __init__(self):
        self.started = asyncio.Event()

    async def fetch_page_text(self, document_key, page):
        self.started.set()
        await asyncio.Event().wait()


def test_cite_with_unusable_attributes_degrades_to_page_link():
    # No validators: bad pages and missing keys reach the renderer
    registry = SchemaRegistry().register("Cite", ["documentKey", "page", "startText"])
    renderer = MessageRenderer(InMemoryDocumentStore(STORE_DOCS), registry)

    renderer.feed('A <Cite documentKey="doc1" page="three" startText="x"/> B <Cite page="2"/> C')
    renderer.finish()
    tree = asyncio.run(renderer.wait_resolved())

    cites = [n for n in tree.nodes if n.component == "Cite"]
    assert tree.complete
    assert not any(n.pending for n in cites)
    assert [n.link for n in cites] == [
        FragmentLink.page_only("doc1", 0),
        FragmentLink.page_only("", 2),
    ]


def test_out_of_order_resolutions_fill_their_own_placeholders():
    page = "Intro. The findings were replicated twice. End."
    store = _SlowStore([Document("slow", (page,)), Document("fast", (page,))], {"slow": 0.5})
    answer = (
        '<Cite documentKey="slow" page="0" startText="The findings"/> then '
        '<Cite documentKey="fast" page="0" startText="replicated twice"/>'
    )
    renderer = MessageRenderer(store)

    trees = asyncio.run(_collect(renderer, _chunks(answer)))

    def cite_states(tree):
        return [(n.link.document_key if n.link else None) for n in tree.nodes if n.component == "Cite"]

    # The second citation is linked while the first is still pending
    assert [None, "fast"] in [cite_states(t) for t in trees]
    final = trees[-1]
    assert final.complete
    assert cite_states(final) == ["slow", "fast"]
    assert [n.kind for n in final.nodes] == ["component", "text", "component"]


def test_cancelled_stream_cancels_citation_tasks():
    async def run():
        store = _HangingStore()
        renderer = MessageRenderer(store)

        async def chunks():
            yield '<Cite documentKey="d" page="0" startText="a"/>'
            await asyncio.Event().wait()

        consumer = asyncio.create_task(_collect(renderer, chunks()))
        await store.started.wait()
        assert renderer.outstanding == 1

        consumer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await consumer
        for _ in range(3):
            await asyncio.sleep(0)
        return renderer

    renderer = asyncio.run(run())

    assert renderer.outstanding == 0
    assert renderer.parser.closed
