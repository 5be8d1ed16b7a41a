from __future__ import annotations

import html
from urllib.parse import quote_plus

import streamlit as st

from rendering.projector import RenderNode, RenderTree

MESSAGE_CSS = """
<style>
.msgbox { line-height: 1.6; }
.cite { font-size: 0.75rem; padding: 0 0.35rem; border-radius: 0.6rem;
        background: #e8eefc; text-decoration: none; }
.cite.degraded { background: #f1f1f1; }
.cite.pending { background: #fff4d6; }
.provisional { opacity: 0.7; }
</style>
"""


def _component_html(node: RenderNode, index: int, base_url: str) -> str:
    if node.component == "Cite":
        label = f"[{index}]"
        if node.pending or node.link is None:
            return f"<span class='cite pending'>{label}</span>"
        cls = "cite degraded" if node.link.degraded else "cite"
        href = html.escape(node.link.to_url(base_url), quote=True)
        return f"<a class='{cls}' href='{href}' target='_blank'>{label}</a>"
    if node.component == "Maps":
        location = node.attributes.get("location", "")
        href = f"https://www.openstreetmap.org/search?query={quote_plus(location)}"
        return (
            f"<a href='{html.escape(href, quote=True)}' target='_blank'>"
            f"📍 {html.escape(location)}</a>"
        )
    return html.escape(node.text)


def tree_to_html(tree: RenderTree, base_url: str) -> str:
    """HTML for a render tree. Every piece of model text is escaped."""
    parts = []
    cites = 0
    for node in tree.nodes:
        if node.kind == "component":
            if node.component == "Cite":
                cites += 1
            parts.append(_component_html(node, cites, base_url))
            continue
        safe = html.escape(node.text).replace("\n", "<br>")
        parts.append(f"<span class='provisional'>{safe}</span>" if node.provisional else safe)
    return f"<div class='msgbox'>{''.join(parts)}</div>"


def render_message(slot, tree: RenderTree, base_url: str) -> None:
    slot.markdown(tree_to_html(tree, base_url), unsafe_allow_html=True)


def render_citation_list(tree: RenderTree, base_url: str) -> None:
    links = [n.link for n in tree.nodes if n.component == "Cite" and n.link is not None]
    if not links:
        st.caption("No citations in this answer.")
        return
    for i, link in enumerate(links, start=1):
        where = f"{link.document_key}, page {link.page + 1}"
        note = " (page only, passage not located)" if link.degraded else ""
        st.markdown(f"{i}. [{where}]({link.to_url(base_url)}){note}")
