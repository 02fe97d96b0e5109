"""Blob storage for review images.

The core only ever calls ``save`` and ``delete``; it never inspects blob
content. Only a local filesystem provider is shipped.
"""

import asyncio
import logging
import posixpath
import re
import time
import uuid
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Protocol

from campus_eats.config import get_settings

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass(frozen=True, slots=True)
class StoredFile:
    key: str
    url: str


class FileStorage(Protocol):
    async def save(self, key: str, data: bytes, content_type: str | None = None) -> StoredFile: ...

    async def delete(self, key: str) -> None: ...


def sanitize_filename(name: str) -> str:
    """Keep the basename and replace anything outside ``[A-Za-z0-9_.-]``."""
    base = posixpath.basename(name.replace("\\", "/")).replace(" ", "_")
    return _UNSAFE_CHARS.sub("_", base) or "upload"


def build_image_key(review_id: uuid.UUID, filename: str) -> str:
    return f"{review_id}/{time.time_ns()}_{sanitize_filename(filename)}"


def resolve_url(base: str, key: str) -> str:
    key = key.lstrip("/")
    if not base:
        return key if key.startswith("http") else "/" + key
    return f"{base.rstrip('/')}/{key}"


class LocalStorage:
    """Writes blobs below ``base_dir`` and serves them under ``public_base``."""

    def __init__(self, base_dir: str | Path, public_base: str) -> None:
        self.base_dir = Path(base_dir or "uploads").resolve()
        self.public_base = public_base
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        path = (self.base_dir / key).resolve()
        if self.base_dir not in path.parents:
            raise ValueError(f"storage key escapes upload directory: {key!r}")
        return path

    async def save(self, key: str, data: bytes, content_type: str | None = None) -> StoredFile:
        path = self._path_for(key)
        await asyncio.to_thread(_write_file, path, data)
        logger.info("Stored %d bytes at %s", len(data), key)
        return StoredFile(key=key, url=resolve_url(self.public_base, key))

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        await asyncio.to_thread(path.unlink, missing_ok=True)


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


@lru_cache
def get_storage() -> FileStorage:
    settings = get_settings()
    return LocalStorage(settings.upload_dir, settings.public_base_url)
