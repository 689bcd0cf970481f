"""Backing stores for skill content.

A content source turns an opaque content ref into document text. Sources
are the only place that knows how refs map to storage:

- FileSystemContentSource: refs are paths relative to a skills directory
- InMemoryContentSource: refs are dictionary keys
- RedisContentSource: refs are stored under "skill:content:{ref}" keys

Each source may also report a cheap version validator for a ref, which the
content loader uses to detect stale cache entries without refetching.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Mapping, Optional

import redis

from skill_router.utils.errors import ContentErrorKind, ContentUnavailableError

logger = logging.getLogger(__name__)


class ContentSource(ABC):
    """Base class for content backing stores.

    Subclasses implement fetch() either as a plain method (run in a worker
    thread by the loader) or as a coroutine (awaited directly).
    """

    name: str = "content"

    @abstractmethod
    def fetch(self, ref: str) -> str:
        """Fetch the full text for a ref.

        Raises:
            ContentUnavailableError: NOT_FOUND when the ref does not exist,
                IO_ERROR for any other failure
        """

    def version(self, ref: str) -> Optional[str]:
        """Return a cheap validator for the stored document, if supported."""
        return None


class FileSystemContentSource(ContentSource):
    """Serve content refs from files under a root directory.

    Refs are POSIX paths relative to the root (e.g., "sql/optimizer/SKILL.md").
    Refs that resolve outside the root are treated as missing.
    """

    name = "filesystem"

    def __init__(self, root: Path | str):
        self.root = Path(root).resolve()

    def _resolve(self, ref: str) -> Path:
        path = (self.root / ref).resolve()
        if not path.is_relative_to(self.root):
            raise ContentUnavailableError(ref, ContentErrorKind.NOT_FOUND, "ref escapes skills root")
        return path

    def fetch(self, ref: str) -> str:
        path = self._resolve(ref)
        if not path.is_file():
            raise ContentUnavailableError(ref, ContentErrorKind.NOT_FOUND, f"no file at {path}")
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ContentUnavailableError(ref, ContentErrorKind.IO_ERROR, str(e)) from e

    def version(self, ref: str) -> Optional[str]:
        try:
            stat = self._resolve(ref).stat()
        except (OSError, ContentUnavailableError):
            return None
        return f"{stat.st_mtime_ns}-{stat.st_size}"


class InMemoryContentSource(ContentSource):
    """Dictionary-backed content source.

    Useful for programmatic taxonomies and tests. Every put() bumps the
    ref's version so loaders can detect the change.
    """

    name = "memory"

    def __init__(self, documents: Mapping[str, str] | None = None):
        self._documents: dict[str, str] = {}
        self._versions: dict[str, int] = {}
        for ref, text in (documents or {}).items():
            self.put(ref, text)

    def put(self, ref: str, text: str) -> None:
        self._documents[ref] = text
        self._versions[ref] = self._versions.get(ref, 0) + 1

    def remove(self, ref: str) -> bool:
        self._versions.pop(ref, None)
        return self._documents.pop(ref, None) is not None

    def fetch(self, ref: str) -> str:
        if ref not in self._documents:
            raise ContentUnavailableError(ref, ContentErrorKind.NOT_FOUND)
        return self._documents[ref]

    def version(self, ref: str) -> Optional[str]:
        version = self._versions.get(ref)
        return str(version) if version is not None else None


class RedisContentSource(ContentSource):
    """Redis-backed content storage.

    Stores documents in Redis with the following key structure:
    - skill:content:{ref}          → document text
    - skill:content-version:{ref}  → INCR counter bumped on every write
    """

    name = "redis"

    # Redis key prefixes
    KEY_PREFIX_CONTENT = "skill:content:"
    KEY_PREFIX_VERSION = "skill:content-version:"

    def __init__(self, redis_url: str | None = None, client: redis.Redis | None = None):
        """Initialize Redis connection.

        Args:
            redis_url: Redis connection URL (e.g., redis://localhost:6379/0)
            client: Existing client to use instead of connecting from the URL
        """
        if client is None:
            if not redis_url:
                raise ValueError("RedisContentSource requires redis_url or client")
            client = redis.from_url(redis_url, decode_responses=True)
            logger.info(f"RedisContentSource initialized with URL: {redis_url}")
        self._redis = client

    def _content_key(self, ref: str) -> str:
        """Generate Redis key for document text."""
        return f"{self.KEY_PREFIX_CONTENT}{ref}"

    def _version_key(self, ref: str) -> str:
        """Generate Redis key for the document version counter."""
        return f"{self.KEY_PREFIX_VERSION}{ref}"

    def fetch(self, ref: str) -> str:
        try:
            text = self._redis.get(self._content_key(ref))
        except redis.RedisError as e:
            raise ContentUnavailableError(ref, ContentErrorKind.IO_ERROR, str(e)) from e
        if text is None:
            raise ContentUnavailableError(ref, ContentErrorKind.NOT_FOUND)
        return text

    def version(self, ref: str) -> Optional[str]:
        try:
            value = self._redis.get(self._version_key(ref))
        except redis.RedisError as e:
            logger.warning(f"Could not read content version for {ref}: {e}")
            return None
        return str(value) if value is not None else None

    def put(self, ref: str, text: str) -> None:
        """Store a document and bump its version.

        Args:
            ref: Content ref
            text: Document text
        """
        pipe = self._redis.pipeline()
        pipe.set(self._content_key(ref), text)
        pipe.incr(self._version_key(ref))
        pipe.execute()
        logger.debug(f"Stored content for ref: {ref}")

    def delete(self, ref: str) -> bool:
        """Delete a document.

        Returns:
            True if the document existed
        """
        pipe = self._redis.pipeline()
        pipe.delete(self._content_key(ref))
        pipe.delete(self._version_key(ref))
        deleted, _ = pipe.execute()
        return bool(deleted)
