"""Local file system storage provider implementation.

The local backend cannot issue direct-upload URLs, so upload credentials are
marked server-mediated and clients stream bytes through the API instead.
"""
import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiofiles

from core.logging_config import get_logger
from ..config import StorageConfig
from ..exceptions import NotFoundError, StorageError, ValidationError
from ..models import PresignedRequest, StorageObject, UploadResult
from ..utils import guess_content_type

logger = get_logger(__name__)

_META_SUFFIX = ".meta"


class LocalProvider:
    """Local file system storage provider."""

    def __init__(self, config: StorageConfig):
        self.config = config
        self.base_path = Path(config.local_base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    async def issue_upload_credential(
        self,
        key: str,
        content_type: str,
        expires_in: int,
        metadata: Optional[dict[str, str]] = None,
    ) -> PresignedRequest:
        self._safe_path(key)
        return PresignedRequest(
            url=None,
            method="POST",
            headers={"Content-Type": content_type},
            expires_in=expires_in,
            server_mediated=True,
        )

    async def read_bytes(self, key: str) -> bytes:
        file_path = self._safe_path(key)
        if not file_path.is_file():
            raise NotFoundError(f"File not found: {key}")
        try:
            async with aiofiles.open(file_path, "rb") as f:
                return await f.read()
        except OSError as e:
            raise StorageError(f"Failed to read {key}: {e}") from e

    async def write_bytes(
        self,
        data: bytes,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> UploadResult:
        file_path = self._safe_path(key)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(file_path, "wb") as f:
                await f.write(data)
            if metadata or content_type:
                await self._save_metadata(file_path, metadata, content_type)
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

        return UploadResult(
            key=key,
            etag=hashlib.md5(data).hexdigest(),
            size=len(data),
            content_type=content_type or guess_content_type(key),
            url=self.public_url(key),
        )

    async def issue_download_credential(
        self,
        key: str,
        expires_in: int,
        filename: Optional[str] = None,
    ) -> PresignedRequest:
        file_path = self._safe_path(key)
        if not file_path.is_file():
            raise NotFoundError(f"File not found: {key}")
        url = self.public_url(key) or file_path.as_uri()
        return PresignedRequest(url=url, method="GET", expires_in=expires_in)

    async def exists(self, key: str) -> bool:
        try:
            file_path = self._safe_path(key)
        except ValidationError:
            return False
        return file_path.is_file()

    async def list_objects(self, prefix: str = "", limit: int = 1000) -> list[StorageObject]:
        clean_prefix = prefix.lstrip("/")
        objects: list[StorageObject] = []
        for path in sorted(self.base_path.rglob("*")):
            if not path.is_file() or path.name.endswith(_META_SUFFIX):
                continue
            key = path.relative_to(self.base_path).as_posix()
            if clean_prefix and not key.startswith(clean_prefix):
                continue
            stat = path.stat()
            meta = await self._load_metadata(path)
            objects.append(StorageObject(
                key=key,
                size=stat.st_size,
                last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                content_type=meta.get("content_type") or guess_content_type(key),
            ))
            if len(objects) >= limit:
                break
        return objects

    def public_url(self, key: str) -> Optional[str]:
        if self.config.public_base_url:
            return f"{self.config.public_base_url.rstrip('/')}/{key}"
        return None

    async def health_check(self) -> bool:
        """Check the base path is writable."""
        test_file = self.base_path / ".health_check"
        try:
            test_file.touch()
            test_file.unlink()
        except OSError as e:
            logger.error("local_storage_health_check_failed", path=str(self.base_path), error=str(e))
            return False
        return True

    def _safe_path(self, key: str) -> Path:
        """Build safe path preventing directory traversal."""
        path = (self.base_path / key.lstrip("/")).resolve()
        try:
            path.relative_to(self.base_path)
        except ValueError:
            raise ValidationError(f"Invalid path: {key}")
        return path

    def _metadata_path(self, file_path: Path) -> Path:
        return file_path.parent / f"{file_path.name}{_META_SUFFIX}"

    async def _save_metadata(
        self,
        file_path: Path,
        metadata: Optional[dict],
        content_type: Optional[str]
    ) -> None:
        meta_data: dict = {}
        if metadata:
            meta_data["metadata"] = metadata
        if content_type:
            meta_data["content_type"] = content_type
        async with aiofiles.open(self._metadata_path(file_path), "w") as f:
            await f.write(json.dumps(meta_data))

    async def _load_metadata(self, file_path: Path) -> dict:
        meta_path = self._metadata_path(file_path)
        if not meta_path.exists():
            return {}
        async with aiofiles.open(meta_path, "r") as f:
            content = await f.read()
        try:
            return json.loads(content)
        except ValueError:
            logger.warning("local_metadata_corrupt", path=str(meta_path))
            return {}


async def build_local_provider(config: StorageConfig) -> LocalProvider:
    provider = LocalProvider(config)
    if not await provider.health_check():
        raise StorageError("Failed to access local storage")
    return provider
