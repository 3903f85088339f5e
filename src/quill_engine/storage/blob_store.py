"""Blob storage for source and signed files.

File references are stored as a ``(kind, url)`` pair decided once at write
time. ``local`` urls are keys relative to the storage directory; ``remote``
urls are absolute http(s) addresses fetched on read.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

import httpx

from quill_engine.common.models import generate_uuid
from quill_engine.documents.states import LOCAL, REMOTE

logger = logging.getLogger(__name__)


class BlobNotFoundError(Exception):
    """Raised when a stored file cannot be read back."""


@dataclass(frozen=True)
class FileLocation:
    kind: str
    url: str

    def __post_init__(self):
        if self.kind not in (LOCAL, REMOTE):
            raise ValueError(f"Unknown file location kind: {self.kind!r}")

    @classmethod
    def local(cls, key: str) -> "FileLocation":
        return cls(LOCAL, key)

    @classmethod
    def remote(cls, url: str) -> "FileLocation":
        return cls(REMOTE, url)

    @classmethod
    def from_columns(cls, kind: Optional[str], url: Optional[str]) -> Optional["FileLocation"]:
        """Rebuild a location from its stored columns, None when nothing is stored."""
        if not url:
            return None
        return cls(kind or LOCAL, url)

    @property
    def is_local(self) -> bool:
        return self.kind == LOCAL


class BlobStore(Protocol):
    async def save(self, data: bytes, folder: str, suffix: str = ".pdf") -> FileLocation: ...

    async def read(self, location: FileLocation) -> bytes: ...

    async def delete(self, location: FileLocation) -> None: ...


class LocalBlobStore:
    """Writes blobs under a directory on local disk; reads remote blobs over HTTP."""

    def __init__(
        self,
        root: str | Path,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ):
        self.root = Path(root)
        self._transport = transport
        self._timeout = timeout

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Blob key escapes storage root: {key!r}")
        return path

    async def save(self, data: bytes, folder: str, suffix: str = ".pdf") -> FileLocation:
        key = f"{folder.strip('/')}/{generate_uuid()}{suffix}"
        path = self._path_for(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.info("Stored blob", extra={"key": key, "size": len(data)})
        return FileLocation.local(key)

    async def read(self, location: FileLocation) -> bytes:
        if location.is_local:
            path = self._path_for(location.url)
            if not path.is_file():
                raise BlobNotFoundError(location.url)
            return await asyncio.to_thread(path.read_bytes)

        async with httpx.AsyncClient(
            transport=self._transport, timeout=self._timeout,
        ) as client:
            resp = await client.get(location.url)
        if resp.status_code != 200:
            raise BlobNotFoundError(f"{location.url} answered {resp.status_code}")
        return resp.content

    async def delete(self, location: FileLocation) -> None:
        if not location.is_local:
            # Remote objects are owned by whoever issued the URL
            logger.info("Skipping delete of remote blob %s", location.url)
            return
        path = self._path_for(location.url)
        await asyncio.to_thread(path.unlink, missing_ok=True)
