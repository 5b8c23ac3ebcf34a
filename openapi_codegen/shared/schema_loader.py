"""Document loading utilities with caching support."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable
from urllib.parse import urldefrag, urljoin, urlparse
from urllib.request import url2pathname

import requests
import yaml
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .errors import SchemaError

logger = logging.getLogger(__name__)

RefLoader = Callable[[str], dict[str, Any]]


@dataclass(frozen=True, slots=True)
class CacheKey:
    """Immutable cache key for document files."""

    path: Path
    mtime: float
    size: int

    @classmethod
    def from_path(cls, path: Path) -> CacheKey:
        """Create a cache key from a file path."""
        stat = path.stat()
        return cls(
            path=path.resolve(),
            mtime=stat.st_mtime,
            size=stat.st_size,
        )


@dataclass
class CachedDocument:
    """A cached document with metadata."""

    data: dict[str, Any]
    key: CacheKey


class DocumentCache:
    """Document cache with automatic invalidation.

    Caches parsed OpenAPI documents and automatically invalidates when
    the underlying file changes (based on mtime and size). Remote
    documents are cached by URL for the lifetime of the cache.
    """

    __slots__ = ("_cache", "_remote", "_max_size", "_session")

    def __init__(self, max_size: int = 100) -> None:
        self._cache: dict[Path, CachedDocument] = {}
        self._remote: dict[str, dict[str, Any]] = {}
        self._max_size = max_size
        self._session: requests.Session | None = None

    def get(self, path: Path) -> dict[str, Any]:
        """Get a document from cache, loading it if necessary.

        Args:
            path: Path to the document file.

        Returns:
            The parsed document data.

        Raises:
            SchemaError: If the document is invalid.
        """
        resolved = path.resolve()
        try:
            current_key = CacheKey.from_path(resolved)
        except OSError as e:
            raise SchemaError(f"Failed to read document: {e}", str(path)) from e

        cached = self._cache.get(resolved)
        if cached is not None and cached.key == current_key:
            return cached.data

        data = load_document(resolved)

        # Evict oldest entries if cache is full
        if len(self._cache) >= self._max_size:
            oldest = next(iter(self._cache))
            del self._cache[oldest]

        self._cache[resolved] = CachedDocument(
            data=data,
            key=current_key,
        )
        return data

    def get_url(self, url: str) -> dict[str, Any]:
        """Fetch and cache a remote JSON/YAML document by URL."""
        if url in self._remote:
            return self._remote[url]
        if self._session is None:
            self._session = _build_session()
        data = fetch_document(url, session=self._session)
        self._remote[url] = data
        return data

    def invalidate(self, path: Path | None = None) -> None:
        """Invalidate cached documents.

        Args:
            path: Specific path to invalidate, or None to clear all.
        """
        if path is None:
            self._cache.clear()
            self._remote.clear()
        else:
            self._cache.pop(path.resolve(), None)

    def __len__(self) -> int:
        return len(self._cache) + len(self._remote)


def _parse(raw: str, source: str, prefer_yaml: bool) -> dict[str, Any]:
    try:
        if prefer_yaml:
            data = yaml.safe_load(raw)
        else:
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise SchemaError(f"Invalid YAML: {e}", source) from e

    if not isinstance(data, dict):
        raise SchemaError("Document root must be a mapping", source)
    return data


def load_document(path: Path) -> dict[str, Any]:
    """Load an OpenAPI document from a file.

    Supports both YAML and JSON formats.

    Raises:
        SchemaError: If the file cannot be read or parsed.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SchemaError(f"Failed to read document: {e}", str(path)) from e
    return _parse(raw, str(path), path.suffix.lower() in {".yml", ".yaml"})


def _build_session() -> requests.Session:
    session = requests.Session()
    retries = Retry(total=3, backoff_factor=0.5, status_forcelist=(500, 502, 503, 504))
    adapter = HTTPAdapter(max_retries=retries)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def fetch_document(url: str, *, session: requests.Session | None = None, timeout: float = 10) -> dict[str, Any]:
    """Fetch a remote OpenAPI document.

    Uses urllib3 Retry via requests.adapters.HTTPAdapter.
    """
    session = session or _build_session()
    logger.debug("Fetching %s", url)
    try:
        resp = session.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise SchemaError(f"Failed to fetch document: {e}", url) from e
    path = urlparse(url).path.lower()
    return _parse(resp.text, url, path.endswith((".yml", ".yaml")))


def _file_url_to_path(url: str) -> Path:
    parsed = urlparse(url)
    path_str = url2pathname(parsed.path or "")
    if parsed.netloc and not path_str.startswith(parsed.netloc):
        path_str = parsed.netloc + path_str
    return Path(path_str)


def load_source(source: str, cache: DocumentCache | None = None) -> dict[str, Any]:
    """Load a document from a file path, `file://` URL or `http(s)://` URL."""
    if cache is None:
        cache = DocumentCache()
    if source.startswith(("http://", "https://")):
        return cache.get_url(source)
    if source.startswith("file://"):
        return cache.get(_file_url_to_path(source))
    return cache.get(Path(source))


def base_uri(source: str) -> str:
    """Absolute URI used to resolve relative references found in `source`."""
    if source.startswith(("http://", "https://", "file://")):
        return source
    return Path(source).resolve().as_uri()


def make_ref_loader(base: str, cache: DocumentCache | None = None) -> RefLoader:
    """Build the loader the resolver uses for external `$ref` documents.

    The returned callable takes the document part of a reference
    (``models.yaml``, ``file:///abs/models.yaml``, ``https://host/api.json``),
    resolves it against ``base`` and returns the parsed document.
    """
    if cache is None:
        cache = DocumentCache()
    root = base_uri(base)

    def load(document_ref: str) -> dict[str, Any]:
        target, _ = urldefrag(urljoin(root, document_ref))
        logger.debug("Loading external document %s", target)
        return load_source(target, cache)

    return load
