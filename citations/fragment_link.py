from __future__ import annotations

from citations.citation_models import CitationRequest, FragmentLink, ResolvedSpan


def build_fragment_link(request: CitationRequest, span: ResolvedSpan) -> FragmentLink:
    """
    Turn a resolution result into something a viewer can navigate to.
    The viewer does its own text search, so the highlight is the snippet pair
    exactly as the model supplied it, not the matched page text.
    """
    if span.located:
        return FragmentLink(
            document_key=request.document_key,
            page=span.page,
            highlight_text=(request.start_text, request.end_text),
            degraded=False,
        )
    return FragmentLink.page_only(request.document_key, request.page)
