from __future__ import annotations

import asyncio
from io import BytesIO
from pathlib import Path
from typing import Dict, Iterable, Optional, Protocol, Tuple
from urllib.parse import quote

import requests
from pypdf import PdfReader
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from citations.citation_models import Document
from common.config import DocumentsConfig, yaml_config
from common.errors import DocumentUnavailable
from common.logger import get_logger
from common.text import normalize_text, sha1_text

log = get_logger(__name__)


class DocumentStore(Protocol):
    async def fetch_page_text(self, document_key: str, page: int) -> Optional[str]:
        """Plain text of a zero-based page, or None when document/page does not exist."""
        ...


class InMemoryDocumentStore:
    def __init__(self, documents: Iterable[Document] = ()):
        self._docs: Dict[str, Document] = {d.key: d for d in documents}

    def add(self, document: Document) -> None:
        self._docs[document.key] = document

    async def fetch_page_text(self, document_key: str, page: int) -> Optional[str]:
        doc = self._docs.get(document_key)
        return doc.page_text(page) if doc else None


def extract_pdf_pages(content: bytes) -> Tuple[str, ...]:
    reader = PdfReader(BytesIO(content))
    return tuple(normalize_text(p.extract_text() or "") for p in reader.pages)


class _PdfPageStore:
    """
    Shared plumbing for stores that hand out pages of PDFs.
    Each document is read and extracted once; concurrent callers share the work.
    """

    def __init__(self) -> None:
        self._docs: Dict[str, "asyncio.Task[Optional[Tuple[str, ...]]]"] = {}

    def _read_bytes(self, document_key: str) -> Optional[bytes]:
        raise NotImplementedError

    def _load_sync(self, document_key: str) -> Optional[Tuple[str, ...]]:
        content = self._read_bytes(document_key)
        if content is None:
            return None
        try:
            pages = extract_pdf_pages(content)
        except Exception as e:
            raise DocumentUnavailable(document_key, detail=f"PDF parse failed: {e}") from e
        log.info("Extracted %d pages from %s", len(pages), document_key)
        return pages

    async def pages(self, document_key: str) -> Optional[Tuple[str, ...]]:
        task = self._docs.get(document_key)
        if task is None:
            task = asyncio.ensure_future(asyncio.to_thread(self._load_sync, document_key))
            self._docs[document_key] = task
        return await asyncio.shield(task)

    async def fetch_page_text(self, document_key: str, page: int) -> Optional[str]:
        pages = await self.pages(document_key)
        if pages is None or not 0 <= page < len(pages):
            return None
        return pages[page]


class PdfDirectoryStore(_PdfPageStore):
    """Documents are ``<root>/<key>.pdf``."""

    def __init__(self, root: Path | str | None = None):
        super().__init__()
        self.root = Path(root or yaml_config.documents.pdf_dir).resolve()

    def _path(self, document_key: str) -> Optional[Path]:
        path = (self.root / f"{document_key}.pdf").resolve()
        if path.parent != self.root:
            log.warning("Rejected document key outside store root: %r", document_key)
            return None
        return path

    def _read_bytes(self, document_key: str) -> Optional[bytes]:
        path = self._path(document_key)
        if path is None or not path.exists():
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            raise DocumentUnavailable(document_key, detail=str(e)) from e


class HttpDocumentStore(_PdfPageStore):
    """
    Downloads ``url_template.format(key=...)`` and caches the raw PDF on disk.
    A 404 is NotFound; any other failure is DocumentUnavailable.
    """

    def __init__(self, config: Optional[DocumentsConfig] = None):
        super().__init__()
        self.config = config or yaml_config.documents
        if not self.config.url_template:
            raise ValueError("HttpDocumentStore requires documents.url_template in config.")
        self.cache_dir = Path(self.config.cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _cache_path(self, url: str) -> Path:
        return self.cache_dir / f"{sha1_text(url)}.pdf"

    @retry(
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _fetch(self, url: str) -> requests.Response:
        """Download URL with retry logic."""
        return requests.get(
            url,
            timeout=self.config.timeout,
            headers={"User-Agent": self.config.user_agent},
        )

    def _read_bytes(self, document_key: str) -> Optional[bytes]:
        url = self.config.url_template.format(key=quote(document_key, safe=""))
        cached = self._cache_path(url)
        if cached.exists():
            log.info("Cache hit for %s", url)
            return cached.read_bytes()

        try:
            resp = self._fetch(url)
        except requests.RequestException as e:
            raise DocumentUnavailable(document_key, detail=str(e)) from e
        if resp.status_code == 404:
            log.info("Document not found: %s", url)
            return None
        if not resp.ok:
            raise DocumentUnavailable(document_key, detail=f"HTTP {resp.status_code}")

        cached.write_bytes(resp.content)
        return resp.content
