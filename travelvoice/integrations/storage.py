"""
Knowledge-base document storage.

Files live on the local filesystem under ``LOCAL_STORAGE_PATH``. Download
links are signed with a short-lived token and served by the storage route.
"""
import asyncio
import logging
import os
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from travelvoice.core.config import settings
from travelvoice.core.security import create_download_token, verify_token

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a storage operation fails."""
    pass


class FileStorage:
    """Local filesystem storage with signed download URLs."""

    def __init__(self, root: Optional[str] = None, base_url: Optional[str] = None):
        self.root = Path(root or settings.LOCAL_STORAGE_PATH).resolve()
        self.base_url = (base_url or settings.APP_BASE_URL).rstrip("/")

    def _resolve(self, storage_path: str) -> Path:
        path = (self.root / storage_path).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Invalid storage path: {storage_path}")
        return path

    async def upload(self, storage_path: str, content: bytes) -> str:
        path = self._resolve(storage_path)

        def _write():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(f"Failed to store {storage_path}: {e}") from e
        return storage_path

    async def read(self, storage_path: str) -> bytes:
        path = self._resolve(storage_path)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise StorageError(f"Failed to read {storage_path}: {e}") from e

    async def delete(self, storage_path: str) -> None:
        path = self._resolve(storage_path)
        try:
            await asyncio.to_thread(os.remove, path)
        except FileNotFoundError:
            logger.warning(f"Storage object already gone: {storage_path}")
        except OSError as e:
            raise StorageError(f"Failed to delete {storage_path}: {e}") from e

    def exists(self, storage_path: str) -> bool:
        return self._resolve(storage_path).is_file()

    def create_signed_url(self, storage_path: str, expires_in: Optional[int] = None) -> str:
        if not self.exists(storage_path):
            raise StorageError(f"Object not found: {storage_path}")
        token = create_download_token(storage_path, expires_in or settings.SIGNED_URL_EXPIRE_SECONDS)
        return f"{self.base_url}{settings.API_V1_STR}/storage/download?token={quote(token)}"

    def verify_download_token(self, token: str) -> Optional[str]:
        payload = verify_token(token, token_type="download")
        if payload is None:
            return None
        return payload.get("sub")


_storage: Optional[FileStorage] = None


def get_storage() -> FileStorage:
    """FastAPI dependency returning the shared storage backend."""
    global _storage
    if _storage is None:
        _storage = FileStorage()
    return _storage
