"""Local blob storage for uploaded document bytes.

Keys are relative POSIX paths (``<user_id>/<document_id><suffix>``). Every key
is resolved under the store root; keys that would escape it are rejected.
File I/O runs in a worker thread so the event loop never blocks on disk.
"""

from __future__ import annotations

import asyncio
from pathlib import Path, PurePath

from docqa.log import get_logger

logger = get_logger(__name__)


def blob_key(user_id: str, document_id: str, filename: str) -> str:
    """Return the storage key for an upload, keeping the original suffix."""
    suffix = PurePath(filename).suffix.lower()
    return f"{user_id}/{document_id}{suffix}"


class LocalBlobStore:
    """Filesystem-backed blob store rooted at *root*."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def _path_for(self, key: str) -> Path:
        """Resolve *key* under the root.

        Raises:
            ValueError: If *key* is empty, absolute, or resolves outside the root.
        """
        if not key or PurePath(key).is_absolute():
            raise ValueError(f"Invalid blob key: '{key}'")
        base = self.root.resolve()
        resolved = (base / key).resolve()
        try:
            resolved.relative_to(base)
        except ValueError:
            raise ValueError(f"Blob key '{key}' resolves outside the store root") from None
        return resolved

    async def put(self, key: str, data: bytes) -> str:
        """Write *data* under *key* (overwriting) and return the key."""
        path = self._path_for(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.debug("blob_written", key=key, size_bytes=len(data))
        return key

    async def get(self, key: str) -> bytes:
        """Return the bytes stored under *key*.

        Raises:
            FileNotFoundError: If nothing is stored under *key*.
        """
        return await asyncio.to_thread(self._path_for(key).read_bytes)

    async def delete(self, key: str) -> None:
        """Remove *key*. Missing blobs are ignored."""
        path = self._path_for(key)
        await asyncio.to_thread(path.unlink, missing_ok=True)
        logger.debug("blob_deleted", key=key)
