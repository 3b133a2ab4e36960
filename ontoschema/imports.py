"""Import resolver: fetches owl:imports targets.

Each reference is tried at its own location first and then at any configured
mirror. Remote fetches go through httpx with bounded tenacity retries and
redirect following; results are cached on disk under the SHA-256 of the
reference URI. A reference that cannot be resolved raises
ImportResolutionError, which callers treat as a skipped import.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable
from urllib.parse import unquote, urlsplit

import httpx
from rdflib import Graph
from rdflib.util import guess_format
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .cache import GraphCache, cache_key
from .config import ImportSettings
from .errors import ImportResolutionError

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 5

ACCEPT = (
    "text/turtle, application/rdf+xml;q=0.9, application/ld+json;q=0.8, "
    "application/n-triples;q=0.7, text/n3;q=0.6, */*;q=0.1"
)

CONTENT_TYPE_FORMATS = {
    "text/turtle": "turtle",
    "application/x-turtle": "turtle",
    "application/rdf+xml": "xml",
    "application/xml": "xml",
    "text/xml": "xml",
    "application/ld+json": "json-ld",
    "application/json": "json-ld",
    "application/n-triples": "nt",
    "text/n3": "n3",
}

_EXTENSION_FORMATS = (
    (".jsonld", "json-ld"),
    (".json", "json-ld"),
    (".rdf", "xml"),
    (".owl", "xml"),
    (".xml", "xml"),
    (".nt", "nt"),
    (".n3", "n3"),
)


def format_for(content_type: str | None, url: str) -> str:
    """rdflib parser name from the Content-Type, else the URL extension."""
    if content_type:
        mime = content_type.split(";", 1)[0].strip().lower()
        if mime in CONTENT_TYPE_FORMATS:
            return CONTENT_TYPE_FORMATS[mime]
    path = urlsplit(url).path.lower()
    for extension, fmt in _EXTENSION_FORMATS:
        if path.endswith(extension):
            return fmt
    return "turtle"


def _normalize(uri: str) -> str:
    return uri.split("#", 1)[0].rstrip("/")


class ImportResolver:
    """Resolves imported ontologies to graphs."""

    def __init__(self, settings: ImportSettings, client: httpx.Client | None = None) -> None:
        self.settings = settings
        self.cache = (
            GraphCache(settings.cache_dir, settings.cache_ttl_seconds, settings.cache_format)
            if settings.cache_enabled else None
        )
        self._client = client
        self._owns_client = client is None

    def get_client(self) -> httpx.Client:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                headers={"User-Agent": self.settings.user_agent, "Accept": ACCEPT},
                timeout=httpx.Timeout(self.settings.read_timeout, connect=self.settings.connect_timeout),
                follow_redirects=self.settings.follow_redirects,
                max_redirects=MAX_REDIRECTS,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def __enter__(self) -> ImportResolver:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # -----------------------------------------------------------------------
    # Candidate locations
    # -----------------------------------------------------------------------

    def mirrors_for(self, reference: str) -> list[str]:
        """Configured mirrors: exact match, then normalized match, then longest prefix."""
        mirrors = self.settings.mirrors
        for mirror in mirrors:
            if mirror.uri == reference:
                return list(mirror.mirrors)
        normalized = _normalize(reference)
        for mirror in mirrors:
            if _normalize(mirror.uri) == normalized:
                return list(mirror.mirrors)
        prefixed = [m for m in mirrors if m.uri and reference.startswith(m.uri)]
        if prefixed:
            return list(max(prefixed, key=lambda m: len(m.uri)).mirrors)
        return []

    def candidates(self, reference: str) -> list[str]:
        return list(dict.fromkeys([reference, *self.mirrors_for(reference)]))

    # -----------------------------------------------------------------------
    # Resolution
    # -----------------------------------------------------------------------

    def resolve(self, reference: str) -> Graph:
        """Fetch and parse an imported ontology, consulting the cache first."""
        key = cache_key(reference)
        if self.cache is not None:
            cached = self.cache.load(key)
            if cached is not None:
                logger.info("Import <%s> served from cache", reference)
                return cached

        failures: list[str] = []
        for candidate in self.candidates(reference):
            try:
                graph = self._fetch(candidate)
            except ImportResolutionError as exc:
                logger.debug("Candidate %s failed: %s", candidate, exc)
                failures.append(str(exc))
                continue
            logger.info("Resolved import <%s> from %s (%d triples)", reference, candidate, len(graph))
            if self.cache is not None:
                self.cache.store(key, graph)
            return graph
        raise ImportResolutionError(reference, "; ".join(failures) or "no candidate locations")

    def resolve_all(self, references: Iterable[str]) -> dict[str, Graph]:
        """Resolve every reference, skipping (with a warning) those that fail."""
        resolved: dict[str, Graph] = {}
        for reference in references:
            try:
                resolved[reference] = self.resolve(reference)
            except ImportResolutionError as exc:
                logger.warning("Skipping import: %s", exc)
        return resolved

    def _fetch(self, location: str) -> Graph:
        scheme = urlsplit(location).scheme
        if scheme in ("http", "https"):
            return self._fetch_remote(location)
        return self._fetch_local(location)

    def _fetch_local(self, location: str) -> Graph:
        path = Path(unquote(urlsplit(location).path)) if location.startswith("file:") else Path(location)
        if not path.is_file():
            raise ImportResolutionError(location, "no such file")
        graph = Graph()
        try:
            graph.parse(str(path), format=guess_format(str(path)) or "turtle")
        except Exception as exc:
            raise ImportResolutionError(location, f"parse failure: {exc}") from exc
        return graph

    def _fetch_remote(self, url: str) -> Graph:
        retrying = Retrying(
            retry=retry_if_exception_type((httpx.TransportError, httpx.HTTPStatusError)),
            stop=stop_after_attempt(self.settings.max_retries + 1),
            wait=wait_exponential(multiplier=self.settings.retry_backoff, max=30),
            reraise=True,
        )
        try:
            response = retrying(self._get, url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ImportResolutionError(url, str(exc)) from exc

        fmt = format_for(response.headers.get("content-type"), str(response.url))
        graph = Graph()
        try:
            graph.parse(data=response.content, format=fmt, publicID=url)
        except Exception as exc:
            raise ImportResolutionError(url, f"parse failure as {fmt}: {exc}") from exc
        return graph

    def _get(self, url: str) -> httpx.Response:
        """GET once; server errors and rate limiting raise so they are retried."""
        logger.debug("GET %s", url)
        response = self.get_client().get(url)
        if response.status_code >= 500 or response.status_code == 429:
            response.raise_for_status()
        return response
