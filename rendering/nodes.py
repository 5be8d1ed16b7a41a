from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union

# Reasons attached to MalformedNode
UNKNOWN_TAG = "unknown-tag"
UNTERMINATED_TAG = "unterminated-tag"
INVALID_SYNTAX = "invalid-syntax"
STRAY_CLOSING_TAG = "stray-closing-tag"

# Quoted attribute values may contain "<" or ">".
_MARKUP = re.compile(r'</?[A-Za-z][^<>"]*(?:"[^"]*"[^<>"]*)*>')

Span = Tuple[int, int]


def strip_markup(raw: str) -> str:
    """Remove complete ``<...>`` / ``</...>`` markup, keep everything else."""
    return _MARKUP.sub("", raw)


@dataclass(frozen=True)
class TextNode:
    content: str
    source_span: Span

    @property
    def raw(self) -> str:
        return self.content

    @property
    def text(self) -> str:
        return self.content


@dataclass(frozen=True)
class TagNode:
    name: str
    attributes: Dict[str, str]
    source_span: Span
    raw: str
    body: Optional[str] = None  # inner text of a paired <Name>...</Name> tag

    @property
    def text(self) -> str:
        return strip_markup(self.body) if self.body else ""


@dataclass(frozen=True)
class MalformedNode:
    raw: str
    reason: str
    source_span: Span
    name: Optional[str] = field(default=None, compare=False)

    @property
    def text(self) -> str:
        # Rejected markup is only ever shown with its tags removed.
        return strip_markup(self.raw)


ParseNode = Union[TextNode, TagNode, MalformedNode]
