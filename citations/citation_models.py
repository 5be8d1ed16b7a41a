from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple
from urllib.parse import quote

from rendering.nodes import TagNode

CITE_TAG = "Cite"


@dataclass(frozen=True)
class Document:
    key: str
    pages: Tuple[str, ...]  # page text, indexed from zero

    def page_text(self, page: int) -> Optional[str]:
        if 0 <= page < len(self.pages):
            return self.pages[page]
        return None


@dataclass(frozen=True)
class CitationRequest:
    document_key: str
    page: int
    start_text: str = ""
    end_text: str = ""

    @classmethod
    def from_tag(cls, node: TagNode) -> "CitationRequest":
        """
        Build a request from a settled <Cite> tag.
        Raises ValueError when the document key is missing or the page is not
        a non-negative integer (a registry without validators lets those through).
        """
        attrs = node.attributes
        key = attrs.get("documentKey", "").strip()
        if not key:
            raise ValueError(f"Cite at {node.source_span} has no documentKey")
        page = parse_page(attrs.get("page", ""))
        if page is None:
            raise ValueError(f"Cite at {node.source_span} has unusable page {attrs.get('page')!r}")
        return cls(
            document_key=key,
            page=page,
            start_text=attrs.get("startText", ""),
            end_text=attrs.get("endText", ""),
        )


def parse_page(value: str) -> Optional[int]:
    value = value.strip()
    if not value.isascii() or not value.isdigit():
        return None
    return int(value)


class MatchConfidence(str, Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"
    NONE = "none"


@dataclass(frozen=True)
class ResolvedSpan:
    page: int
    char_start: Optional[int]  # offsets into the page text as the store returned it
    char_end: Optional[int]
    confidence: MatchConfidence
    score: float = 0.0

    @classmethod
    def miss(cls, page: int) -> "ResolvedSpan":
        return cls(page=page, char_start=None, char_end=None, confidence=MatchConfidence.NONE)

    @property
    def located(self) -> bool:
        return self.confidence is not MatchConfidence.NONE


@dataclass(frozen=True)
class FragmentLink:
    document_key: str
    page: int
    highlight_text: Optional[Tuple[str, str]]
    degraded: bool

    @classmethod
    def page_only(cls, document_key: str, page: int) -> "FragmentLink":
        return cls(document_key=document_key, page=page, highlight_text=None, degraded=True)

    def to_url(self, base_url: str) -> str:
        """
        Deep link for a PDF viewer: ``<base>/<key>#page=N`` (1-based) plus a
        text-fragment directive when a highlight is available.
        """
        url = f"{base_url.rstrip('/')}/{quote(self.document_key, safe='')}#page={self.page + 1}"
        if self.degraded or not self.highlight_text:
            return url
        parts = [_fragment_quote(t) for t in self.highlight_text if t.strip()]
        if not parts:
            return url
        return f"{url}:~:text={','.join(parts)}"


def _fragment_quote(s: str) -> str:
    # "-", "," and "&" carry meaning inside a text directive.
    return quote(" ".join(s.split()), safe="").replace("-", "%2D")
