import orjson

from citations.citation_models import FragmentLink
from rendering.projector import RenderProjector
from rendering.schema import default_registry
from rendering.stream_parser import parse_text

TEXT = (
    'Paris <Maps location="Paris" /> is cited '
    '<Cite documentKey="doc1" page="3" startText="a" endText="b"/> twice '
    '<Cite documentKey="doc1" page="4" startText="c" endText="d"/>, '
    "<Script>alert(1)</Script> end"
)


def test_projection_preserves_order_and_marks_pending():
    nodes = parse_text(TEXT, default_registry())
    cites = [n for n in nodes if getattr(n, "name", None) == "Cite"]
    link = FragmentLink("doc1", 3, ("a", "b"), False)

    tree = RenderProjector().project(nodes, {cites[0].source_span: link})

    assert [(n.kind, n.component) for n in tree.nodes] == [
        ("text", None),
        ("component", "Maps"),
        ("text", None),
        ("component", "Cite"),
        ("text", None),
        ("component", "Cite"),
        ("text", None),
        ("text", None),
        ("text", None),
    ]
    first, second = tree.nodes[3], tree.nodes[5]
    assert first.link == link and not first.pending
    assert second.link is None and second.pending
    assert tree.nodes[1].attributes == {"location": "Paris"}


def test_rejected_markup_is_never_rendered():
    tree = RenderProjector().project(parse_text(TEXT, default_registry()))

    assert "<" not in tree.plain_text
    assert tree.plain_text == "Paris  is cited  twice , alert(1) end"


def test_provisional_tail_and_json():
    tree = RenderProjector().project(parse_text("Hi", default_registry()), provisional_text=" there")

    assert tree.nodes[-1].provisional
    data = orjson.loads(tree.to_json())
    assert [n["text"] for n in data["nodes"]] == ["Hi", " there"]
    assert data["complete"] is False
