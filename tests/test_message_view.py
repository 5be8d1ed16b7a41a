from app.components.message_view import tree_to_html
from citations.citation_models import FragmentLink
from rendering.projector import RenderNode, RenderProjector, RenderTree
from rendering.schema import default_registry
from rendering.stream_parser import parse_text


def test_model_text_is_escaped():
    nodes = parse_text("x <Script>alert(1)</Script> & <b>bold</b> 1 < 2", default_registry())

    html = tree_to_html(RenderProjector().project(nodes), "http://h/docs")

    assert "<Script" not in html and "<script" not in html
    assert "<b>" not in html
    assert "alert(1)" in html
    assert "&amp;" in html and "1 &lt; 2" in html


def test_citation_badges():
    link = FragmentLink("doc1", 2, ("a", "b"), False)
    tree = RenderTree(
        nodes=(
            RenderNode(kind="text", text="See "),
            RenderNode(kind="component", component="Cite", link=link),
            RenderNode(kind="component", component="Cite", pending=True),
        )
    )

    html = tree_to_html(tree, "http://h/docs")

    assert "href='http://h/docs/doc1#page=3:~:text=a,b'" in html
    assert "<span class='cite pending'>[2]</span>" in html
