from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import orjson

from citations.citation_models import CITE_TAG, FragmentLink
from rendering.nodes import MalformedNode, ParseNode, Span, TagNode, TextNode


@dataclass(frozen=True)
class RenderNode:
    kind: str  # "text" | "component"
    text: str = ""
    component: Optional[str] = None
    attributes: Dict[str, str] = field(default_factory=dict)
    link: Optional[FragmentLink] = None
    pending: bool = False  # citation still resolving
    provisional: bool = False  # unsettled tail of a streaming message


@dataclass(frozen=True)
class RenderTree:
    nodes: Tuple[RenderNode, ...]
    complete: bool = False

    @property
    def plain_text(self) -> str:
        return "".join(n.text for n in self.nodes)

    def to_json(self) -> bytes:
        return orjson.dumps(self, option=orjson.OPT_INDENT_2)


class RenderProjector:
    """
    Map parse nodes onto UI nodes, one to one and in source order.
    Citation components carry their FragmentLink once resolved, keyed by the
    tag's source span; until then they render as pending placeholders.
    """

    def project_node(
        self, node: ParseNode, links: Mapping[Span, FragmentLink]
    ) -> Optional[RenderNode]:
        if isinstance(node, TextNode):
            return RenderNode(kind="text", text=node.content)
        if isinstance(node, TagNode):
            link = links.get(node.source_span) if node.name == CITE_TAG else None
            return RenderNode(
                kind="component",
                text=node.text,
                component=node.name,
                attributes=dict(node.attributes),
                link=link,
                pending=node.name == CITE_TAG and link is None,
            )
        if isinstance(node, MalformedNode):
            stripped = node.text
            return RenderNode(kind="text", text=stripped) if stripped else None
        raise TypeError(f"Unsupported parse node: {type(node).__name__}")

    def project(
        self,
        nodes: Iterable[ParseNode],
        links: Optional[Mapping[Span, FragmentLink]] = None,
        provisional_text: str = "",
        complete: bool = False,
    ) -> RenderTree:
        links = links or {}
        out: List[RenderNode] = []
        for node in nodes:
            rendered = self.project_node(node, links)
            if rendered is not None:
                out.append(rendered)
        if provisional_text:
            out.append(RenderNode(kind="text", text=provisional_text, provisional=True))
        return RenderTree(nodes=tuple(out), complete=complete)
