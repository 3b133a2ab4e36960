"""Disk cache for parsed graphs.

Entries are RDF files named by a SHA-256 key and expire after a TTL. Writers
write to a temporary file in the cache directory and atomically rename it
into place; readers treat a missing, expired or unreadable entry as a miss.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
import time
from pathlib import Path

from rdflib import Graph

from .errors import CacheError

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "turtle": "ttl",
    "xml": "rdf",
    "nt": "nt",
    "n3": "n3",
    "json-ld": "jsonld",
}


def cache_key(*parts: str) -> str:
    """SHA-256 hex digest of the parts, each terminated by '|'."""
    digest = hashlib.sha256()
    for part in parts:
        digest.update(part.encode("utf-8"))
        digest.update(b"|")
    return digest.hexdigest()


def write_atomically(path: Path, data: bytes) -> None:
    """Write data to path through a temporary file and os.replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class GraphCache:
    """TTL-bounded cache of graphs on disk."""

    def __init__(self, directory: Path, ttl_seconds: float, fmt: str = "turtle") -> None:
        self.directory = Path(directory)
        self.ttl_seconds = ttl_seconds
        self.fmt = fmt

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.{_EXTENSIONS.get(self.fmt, 'ttl')}"

    def load(self, key: str) -> Graph | None:
        """The cached graph, or None on a miss (missing, expired or corrupt)."""
        try:
            return self._read(key)
        except CacheError as exc:
            logger.warning("Ignoring cache entry %s: %s", key, exc)
            return None

    def store(self, key: str, graph: Graph) -> None:
        """Persist a graph; failures are logged and otherwise ignored."""
        try:
            self._write(key, graph)
        except CacheError as exc:
            logger.warning("Could not write cache entry %s: %s", key, exc)

    def _read(self, key: str) -> Graph | None:
        path = self.path_for(key)
        try:
            age = time.time() - path.stat().st_mtime
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CacheError(f"cannot stat {path}: {exc}") from exc
        if age > self.ttl_seconds:
            logger.debug("Cache entry %s expired (%.0fs old)", path, age)
            return None
        graph = Graph()
        try:
            graph.parse(str(path), format=self.fmt)
        except Exception as exc:
            raise CacheError(f"cannot parse {path}: {exc}") from exc
        logger.debug("Cache hit %s", path)
        return graph

    def _write(self, key: str, graph: Graph) -> None:
        path = self.path_for(key)
        try:
            data = graph.serialize(format=self.fmt, encoding="utf-8")
            write_atomically(path, data)
        except Exception as exc:
            raise CacheError(f"cannot write {path}: {exc}") from exc
