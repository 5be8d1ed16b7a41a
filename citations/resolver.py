"""Locate the text a citation tag points at inside a document page.

Model-supplied snippets are never trusted to be verbatim. Matching runs on a
normalized form of the page (case, whitespace, NFKC) and falls back to fuzzy
word-window matching, then to neighbouring pages, then to page-only navigation.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from citations.citation_models import (
    CitationRequest,
    FragmentLink,
    MatchConfidence,
    ResolvedSpan,
)
from citations.document_store import DocumentStore
from citations.fragment_link import build_fragment_link
from citations.normalize import normalize_snippet, normalize_with_offsets
from common.config import ResolverConfig, yaml_config
from common.errors import DocumentUnavailable
from common.logger import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class _Hit:
    start: int
    end: int
    score: float


def candidate_pages(page: int, search_adjacent: bool = True) -> List[int]:
    """Requested page first, then the one before, then the one after."""
    pages = [page]
    if search_adjacent:
        if page > 0:
            pages.append(page - 1)
        pages.append(page + 1)
    return pages


def _exact(haystack: str, needle: str, min_start: int) -> Optional[_Hit]:
    i = haystack.find(needle, min_start)
    if i < 0:
        return None
    return _Hit(i, i + len(needle), 1.0)


def _word_bounds(haystack: str) -> Tuple[List[int], List[int]]:
    starts: List[int] = []
    ends: List[int] = []
    for i, ch in enumerate(haystack):
        if ch == " ":
            continue
        if i == 0 or haystack[i - 1] == " ":
            starts.append(i)
        if i + 1 == len(haystack) or haystack[i + 1] == " ":
            ends.append(i + 1)
    return starts, ends


def _fuzzy(
    haystack: str, needle: str, min_start: int, threshold: float, slack: int
) -> Optional[_Hit]:
    """
    Best word-aligned window whose SequenceMatcher ratio against ``needle``
    reaches ``threshold``. Windows span the needle's word count +/- ``slack``.
    Earliest window wins ties.
    """
    starts, ends = _word_bounds(haystack)
    n_words = len(needle.split(" "))
    lengths = range(max(1, n_words - slack), n_words + slack + 1)

    matcher = SequenceMatcher(None, autojunk=False)
    matcher.set_seq2(needle)
    best: Optional[_Hit] = None
    for i, a in enumerate(starts):
        if a < min_start:
            continue
        for length in lengths:
            j = i + length - 1
            if j >= len(ends):
                break
            b = ends[j]
            matcher.set_seq1(haystack[a:b])
            if matcher.real_quick_ratio() < threshold or matcher.quick_ratio() < threshold:
                continue
            score = matcher.ratio()
            if score >= threshold and (best is None or score > best.score):
                best = _Hit(a, b, score)
    return best


def match_page(
    page_text: str,
    request: CitationRequest,
    page: int,
    config: Optional[ResolverConfig] = None,
) -> Optional[ResolvedSpan]:
    """Match one page. None when no confident span exists on it."""
    config = config or yaml_config.resolver
    norm = normalize_with_offsets(page_text)
    start_q = normalize_snippet(request.start_text)
    end_q = normalize_snippet(request.end_text)
    if not start_q:
        start_q, end_q = end_q, ""
    if not start_q or not norm.text:
        return None

    threshold, slack = config.fuzzy_threshold, config.window_slack_words
    exact = True
    first = _exact(norm.text, start_q, 0)
    if first is None:
        exact = False
        first = _fuzzy(norm.text, start_q, 0, threshold, slack)
        if first is None:
            return None

    last = first
    if end_q:
        last = _exact(norm.text, end_q, first.start)
        if last is None:
            exact = False
            last = _fuzzy(norm.text, end_q, first.start, threshold, slack)
            if last is None:
                return None

    char_start, _ = norm.to_original(first.start, first.end)
    _, char_end = norm.to_original(last.start, max(first.end, last.end))
    return ResolvedSpan(
        page=page,
        char_start=char_start,
        char_end=char_end,
        confidence=MatchConfidence.EXACT if exact else MatchConfidence.FUZZY,
        score=min(first.score, last.score),
    )


def resolve_span(
    request: CitationRequest,
    pages: Mapping[int, Optional[str]],
    config: Optional[ResolverConfig] = None,
) -> ResolvedSpan:
    """
    Resolve against already-fetched page text (page index -> text, None if missing).
    Always returns a span; a miss keeps the requested page.
    """
    config = config or yaml_config.resolver
    for page in candidate_pages(request.page, config.search_adjacent_pages):
        text = pages.get(page)
        if not text:
            continue
        span = match_page(text, request, page, config)
        if span is not None:
            return span
    return ResolvedSpan.miss(request.page)


class CitationResolver:
    """
    Resolves the citations of one message against a document store.

    Page text is fetched at most once per (document, page) for the lifetime of
    the resolver and shared between concurrent resolutions. Matching is CPU-only
    and runs in a worker thread so several citations can resolve side by side.
    """

    def __init__(self, store: DocumentStore, config: Optional[ResolverConfig] = None):
        self.store = store
        self.config = config or yaml_config.resolver
        self._pages: Dict[Tuple[str, int], "asyncio.Task[Optional[str]]"] = {}

    async def _fetch(self, document_key: str, page: int) -> Optional[str]:
        try:
            return await self.store.fetch_page_text(document_key, page)
        except DocumentUnavailable as e:
            log.warning("%s; citation falls back to page navigation", e)
            return None

    async def page_text(self, document_key: str, page: int) -> Optional[str]:
        slot = (document_key, page)
        task = self._pages.get(slot)
        if task is None:
            task = asyncio.ensure_future(self._fetch(document_key, page))
            self._pages[slot] = task
        return await asyncio.shield(task)

    async def resolve(self, request: CitationRequest) -> ResolvedSpan:
        try:
            for page in candidate_pages(request.page, self.config.search_adjacent_pages):
                text = await self.page_text(request.document_key, page)
                if not text:
                    continue
                span = await asyncio.to_thread(match_page, text, request, page, self.config)
                if span is not None:
                    log.debug(
                        "Resolved %s p%d -> p%d [%s:%s] (%s)",
                        request.document_key,
                        request.page,
                        span.page,
                        span.char_start,
                        span.char_end,
                        span.confidence.value,
                    )
                    return span
        except Exception as e:
            log.error(
                "Citation resolution failed for %s p%d: %s",
                request.document_key,
                request.page,
                e,
                exc_info=True,
            )
            return ResolvedSpan.miss(request.page)

        log.info(
            "No confident match for citation in %s p%d; degrading to page link",
            request.document_key,
            request.page,
        )
        return ResolvedSpan.miss(request.page)

    async def resolve_link(self, request: CitationRequest) -> FragmentLink:
        return build_fragment_link(request, await self.resolve(request))

    async def resolve_many(self, requests: Sequence[CitationRequest]) -> List[ResolvedSpan]:
        return list(await asyncio.gather(*(self.resolve(r) for r in requests)))
