"""Incremental parser for model output that interleaves prose with component tags.

The buffer only ever grows. Everything before ``cursor`` is settled and is
never scanned again; the suffix after it is re-examined on every chunk. A
node is only settled once the characters it depends on have all arrived, so
feeding a buffer in pieces and feeding it whole produce the same nodes.
"""
from __future__ import annotations

import codecs
import re
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple, Union

from common.config import yaml_config
from common.logger import get_logger
from rendering.nodes import (
    INVALID_SYNTAX,
    STRAY_CLOSING_TAG,
    UNKNOWN_TAG,
    UNTERMINATED_TAG,
    MalformedNode,
    ParseNode,
    TagNode,
    TextNode,
)
from rendering.schema import SchemaRegistry, default_registry

log = get_logger(__name__)

_OPEN_TAG = re.compile(
    r'<([A-Za-z][A-Za-z0-9_-]*)((?:\s+[A-Za-z_][\w:.-]*\s*=\s*"[^"]*")*)\s*(/?)>'
)
_ATTR = re.compile(r'([A-Za-z_][\w:.-]*)\s*=\s*"([^"]*)"')
_CLOSE_TAG = re.compile(r"</([A-Za-z][A-Za-z0-9_-]*)\s*>")

_OPEN = "open"
_CLOSE = "close"
_UNDECIDED = "undecided"

Match = Tuple[ParseNode, int]


@dataclass(frozen=True)
class ParserState:
    buffer: str = ""
    cursor: int = 0  # end of the last settled node
    scanned: int = 0  # buffer[cursor:scanned] is known to be plain text
    settled: Tuple[ParseNode, ...] = ()
    closed: bool = False

    @property
    def pending(self) -> str:
        return self.buffer[self.cursor :]

    @property
    def provisional_text(self) -> str:
        """Unsettled text that cannot turn into a tag; safe to show live."""
        return self.buffer[self.cursor : self.scanned]


def _is_letter(ch: str) -> bool:
    return ch.isascii() and ch.isalpha()


def _classify(buffer: str, i: int) -> Optional[str]:
    n = len(buffer)
    if i + 1 >= n:
        return _UNDECIDED
    nxt = buffer[i + 1]
    if _is_letter(nxt):
        return _OPEN
    if nxt != "/":
        return None
    if i + 2 >= n:
        return _UNDECIDED
    return _CLOSE if _is_letter(buffer[i + 2]) else None


def _find_tag_end(buffer: str, start: int, stop: int) -> Tuple[int, str]:
    """First ``>`` or ``<`` outside double quotes in buffer[start+1:stop]."""
    in_quote = False
    for i in range(start + 1, stop):
        ch = buffer[i]
        if ch == '"':
            in_quote = not in_quote
        elif in_quote:
            continue
        elif ch == ">" or ch == "<":
            return i, ch
    return -1, ""


def _lone_delimiter(start: int, reason: str) -> Match:
    if reason == UNTERMINATED_TAG:
        log.warning("Tag at offset %d did not close in time; rendering as text", start)
    return MalformedNode("<", reason, (start, start + 1)), start + 1


def _match_candidate(
    buffer: str, start: int, kind: str, registry: SchemaRegistry, max_pending: int
) -> Optional[Match]:
    """
    Try to complete the tag starting at ``start``.
    Returns None while more input could still change the outcome.
    """
    window_end = min(len(buffer), start + max_pending)
    window_full = len(buffer) >= start + max_pending

    end, ch = _find_tag_end(buffer, start, window_end)
    if end == -1:
        return _lone_delimiter(start, UNTERMINATED_TAG) if window_full else None
    if ch == "<":
        return _lone_delimiter(start, INVALID_SYNTAX)

    opening = buffer[start : end + 1]
    if kind == _CLOSE:
        m = _CLOSE_TAG.fullmatch(opening)
        if not m:
            return _lone_delimiter(start, INVALID_SYNTAX)
        return (
            MalformedNode(opening, STRAY_CLOSING_TAG, (start, end + 1), name=m.group(1)),
            end + 1,
        )

    m = _OPEN_TAG.fullmatch(opening)
    if not m:
        return _lone_delimiter(start, INVALID_SYNTAX)
    name, attr_text, self_closing = m.group(1), m.group(2), m.group(3) == "/"

    if name not in registry:
        log.debug("Rejected non-whitelisted tag <%s> at offset %d", name, start)
        return MalformedNode(opening, UNKNOWN_TAG, (start, end + 1), name=name), end + 1

    attributes = {}
    for a in _ATTR.finditer(attr_text):
        attributes.setdefault(a.group(1), a.group(2))

    body = None
    stop = end + 1
    if not self_closing:
        closer = f"</{name}>"
        k = buffer.find(closer, end + 1, window_end)
        if k == -1:
            return _lone_delimiter(start, UNTERMINATED_TAG) if window_full else None
        body = buffer[end + 1 : k]
        stop = k + len(closer)

    raw = buffer[start:stop]
    result = registry.validate(name, attributes)
    if not result.ok:
        log.debug("Rejected <%s> at offset %d: %s", name, start, result.reason)
        return MalformedNode(raw, result.reason, (start, stop), name=name), stop
    return TagNode(name, result.attributes, (start, stop), raw, body), stop


def _scan(
    buffer: str,
    cursor: int,
    scanned: int,
    registry: SchemaRegistry,
    max_pending: int,
    final: bool,
) -> Tuple[List[ParseNode], int, int]:
    nodes: List[ParseNode] = []
    pos = max(cursor, scanned)
    while True:
        lt = buffer.find("<", pos)
        if lt == -1:
            pos = len(buffer)
            break
        kind = _classify(buffer, lt)
        if kind is None:
            pos = lt + 1
            continue
        if kind == _UNDECIDED:
            if final:
                pos = lt + 1
                continue
            pos = lt
            break

        # Text before a real tag start can never change again.
        if lt > cursor:
            nodes.append(TextNode(buffer[cursor:lt], (cursor, lt)))
            cursor = lt

        matched = _match_candidate(buffer, lt, kind, registry, max_pending)
        if matched is None:
            if not final:
                pos = lt
                break
            matched = _lone_delimiter(lt, UNTERMINATED_TAG)
        node, cursor = matched
        nodes.append(node)
        pos = cursor

    if final and cursor < len(buffer):
        nodes.append(TextNode(buffer[cursor:], (cursor, len(buffer))))
        cursor = pos = len(buffer)
    return nodes, cursor, pos


def advance(
    state: ParserState,
    chunk: str,
    registry: SchemaRegistry,
    max_pending: Optional[int] = None,
) -> Tuple[ParserState, Tuple[ParseNode, ...]]:
    """
    Append ``chunk`` and settle whatever became decidable.
    Returns the new state and the nodes settled by this call.
    """
    if state.closed:
        raise ValueError("Cannot feed a parser state that was already closed.")
    max_pending = max_pending or yaml_config.parser.max_pending_chars
    buffer = state.buffer + chunk
    nodes, cursor, scanned = _scan(
        buffer, state.cursor, state.scanned, registry, max_pending, final=False
    )
    delta = tuple(nodes)
    return (
        replace(
            state,
            buffer=buffer,
            cursor=cursor,
            scanned=scanned,
            settled=state.settled + delta,
        ),
        delta,
    )


def finish(
    state: ParserState,
    registry: SchemaRegistry,
    max_pending: Optional[int] = None,
) -> Tuple[ParserState, Tuple[ParseNode, ...]]:
    """End-of-stream: settle everything that is still pending."""
    if state.closed:
        return state, ()
    max_pending = max_pending or yaml_config.parser.max_pending_chars
    nodes, cursor, scanned = _scan(
        state.buffer, state.cursor, state.scanned, registry, max_pending, final=True
    )
    delta = tuple(nodes)
    return (
        replace(
            state,
            cursor=cursor,
            scanned=scanned,
            settled=state.settled + delta,
            closed=True,
        ),
        delta,
    )


def abort(state: ParserState) -> ParserState:
    """Generation was cut off: drop the unsettled suffix, keep settled nodes."""
    if state.pending:
        log.info("Discarding %d pending characters on abort", len(state.pending))
    return replace(
        state,
        buffer=state.buffer[: state.cursor],
        scanned=state.cursor,
        closed=True,
    )


class StreamingTagParser:
    """
    Per-message host for the pure parser functions.
    Accepts ``str`` or UTF-8 ``bytes`` chunks; byte chunks may split a code point.
    """

    def __init__(
        self,
        registry: Optional[SchemaRegistry] = None,
        max_pending: Optional[int] = None,
    ):
        self.registry = registry or default_registry()
        self.max_pending = max_pending or yaml_config.parser.max_pending_chars
        self._state = ParserState()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def state(self) -> ParserState:
        return self._state

    @property
    def nodes(self) -> Tuple[ParseNode, ...]:
        return self._state.settled

    @property
    def pending_text(self) -> str:
        return self._state.pending

    @property
    def provisional_text(self) -> str:
        return self._state.provisional_text

    @property
    def closed(self) -> bool:
        return self._state.closed

    def feed(self, chunk: Union[str, bytes]) -> Tuple[ParseNode, ...]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._state, delta = advance(self._state, chunk, self.registry, self.max_pending)
        return delta

    def close(self) -> Tuple[ParseNode, ...]:
        delta: Tuple[ParseNode, ...] = ()
        if self._state.closed:
            return delta
        tail = self._decoder.decode(b"", final=True)
        if tail:
            delta = self.feed(tail)
        self._state, rest = finish(self._state, self.registry, self.max_pending)
        return delta + rest

    def abort(self) -> None:
        self._decoder.reset()
        self._state = abort(self._state)


def parse_text(
    text: str,
    registry: Optional[SchemaRegistry] = None,
    max_pending: Optional[int] = None,
) -> Tuple[ParseNode, ...]:
    """One-shot parse of a complete message."""
    parser = StreamingTagParser(registry, max_pending)
    parser.feed(text)
    parser.close()
    return parser.nodes
