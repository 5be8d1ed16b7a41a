from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from typing import List, Tuple


@dataclass(frozen=True)
class NormalizedText:
    """
    Matching form of a text plus, for every character of ``text``,
    the offset of the character it came from in the original.
    """

    text: str
    origin: Tuple[int, ...]

    def to_original(self, start: int, end: int) -> Tuple[int, int]:
        """Map a half-open normalized range back onto the original text."""
        return self.origin[start], self.origin[end - 1] + 1


def normalize_with_offsets(s: str) -> NormalizedText:
    """
    NFKC + lower-case each character, collapse whitespace runs into one space,
    drop leading and trailing whitespace.
    """
    out: List[str] = []
    origin: List[int] = []
    for i, ch in enumerate(s):
        if ch.isspace():
            if out and out[-1] != " ":
                out.append(" ")
                origin.append(i)
            continue
        for c in unicodedata.normalize("NFKC", ch).lower():
            if c.isspace():
                if out and out[-1] != " ":
                    out.append(" ")
                    origin.append(i)
                continue
            out.append(c)
            origin.append(i)
    if out and out[-1] == " ":
        out.pop()
        origin.pop()
    return NormalizedText("".join(out), tuple(origin))


def normalize_snippet(s: str) -> str:
    return normalize_with_offsets(s).text
