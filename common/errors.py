"""Exceptions shared across the renderer.

Most failure modes in the parser and resolver are recovered locally and show up
as data (a ``MalformedNode`` reason or a degraded ``FragmentLink``). The types
here cover the few conditions that cross a module boundary.
"""


class ConfigError(ValueError):
    """Tag whitelist configuration is unusable (e.g. unknown validator name)."""


class DocumentUnavailable(Exception):
    """A document store could not supply page text (I/O or parse failure)."""

    def __init__(self, document_key: str, page: int | None = None, detail: str = ""):
        self.document_key = document_key
        self.page = page
        where = document_key if page is None else f"{document_key}#page={page}"
        super().__init__(f"Document unavailable: {where}" + (f" ({detail})" if detail else ""))


class GenerationAborted(Exception):
    """The upstream model stream was cut off before end-of-stream."""
