"""
파일시스템 기반 BlobStore (로컬 참조 어댑터).

location "templates/GBD/staging/X.html" → <root>/templates/GBD/staging/X.html

- copy: temp → link (부분 복제본이 보이지 않음, 기존 객체 덮어쓰기 없음)
- delete: 없으면 no-op (멱등)
- OSError → InfrastructureError
"""

import asyncio
import logging
from pathlib import Path, PurePosixPath

from src.core.hashing import compute_file_hash
from src.domain.errors import (
    ConflictAtDestinationError,
    ErrorCodes,
    InfrastructureError,
    InvalidInputError,
)
from src.storage.atomic import atomic_copy_file, atomic_write_bytes
from src.storage.base import BlobStore

logger = logging.getLogger(__name__)


class LocalBlobStore(BlobStore):
    """로컬 디렉터리를 버킷으로 사용하는 BlobStore."""

    def __init__(self, root: Path):
        """
        Args:
            root: 버킷 루트 디렉터리
        """
        self.root = root

    def path_for(self, location: str) -> Path:
        """location → 실제 파일 경로 (루트 밖 탈출 금지)."""
        parts = PurePosixPath(location).parts
        if not parts or location.startswith("/") or ".." in parts:
            raise InvalidInputError(
                ErrorCodes.INVALID_CODE,
                "object location must be a relative path inside the bucket",
                field="location",
                location=location,
            )
        return self.root.joinpath(*parts)

    # =========================================================================
    # BlobStore
    # =========================================================================

    async def copy(self, src: str, dst: str) -> None:
        src_path = self.path_for(src)
        dst_path = self.path_for(dst)
        await asyncio.to_thread(self._guard, "copy", src, atomic_copy_file, src_path, dst_path)

    async def checksum(self, location: str) -> str:
        path = self.path_for(location)
        return await asyncio.to_thread(self._guard, "checksum", location, compute_file_hash, path)

    async def delete(self, location: str) -> None:
        path = self.path_for(location)
        await asyncio.to_thread(self._guard, "delete", location, path.unlink, True)

    async def exists(self, location: str) -> bool:
        path = self.path_for(location)
        return await asyncio.to_thread(path.is_file)

    async def put(self, location: str, data: bytes) -> None:
        path = self.path_for(location)
        await asyncio.to_thread(self._guard, "put", location, atomic_write_bytes, path, data)

    async def get(self, location: str) -> bytes:
        path = self.path_for(location)
        return await asyncio.to_thread(self._guard, "get", location, path.read_bytes)

    async def list_locations(self, prefix: str = "") -> list[str]:
        return await asyncio.to_thread(self._list_sync, prefix)

    # =========================================================================
    # Internal Helpers
    # =========================================================================

    def _guard(self, operation: str, location: str, func, *args):
        """OSError → InfrastructureError 변환 (원인 보존)."""
        try:
            return func(*args)
        except FileExistsError as e:
            raise ConflictAtDestinationError(
                ErrorCodes.DESTINATION_OCCUPIED,
                f"destination appeared during {operation}",
                step=operation,
                location=location,
            ) from e
        except FileNotFoundError as e:
            raise InfrastructureError(
                ErrorCodes.OBJECT_NOT_FOUND,
                f"object not found during {operation}",
                retryable=False,
                step=operation,
                location=location,
            ) from e
        except OSError as e:
            raise InfrastructureError(
                ErrorCodes.STORE_UNAVAILABLE,
                f"blob store {operation} failed",
                step=operation,
                location=location,
                errno_code=e.errno,
                error=str(e),
            ) from e

    def _list_sync(self, prefix: str) -> list[str]:
        base = self.path_for(prefix) if prefix else self.root
        if not base.exists():
            return []

        results = []
        for path in base.rglob("*"):
            if not path.is_file() or path.name.startswith("."):
                continue
            results.append(path.relative_to(self.root).as_posix())
        return sorted(results)
