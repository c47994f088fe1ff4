"""
JSON 파일 기반 RecordStore (로컬 참조 어댑터).

구조:
records/
├── <template_id>.json
└── .locks/<template_id>.lock

- 레코드 1개 = JSON 파일 1개, 원자적 쓰기
- conditional_update의 compare-and-swap만 레코드별 FileLock으로 직렬화
  (락은 쓰기 1회 동안만 보유. saga 전체를 잠그지 않음)
"""

import asyncio
import json
import logging
from dataclasses import replace
from pathlib import Path

from src.core.ids import utc_now_iso
from src.domain.constants import LOCKS_DIR, RECORD_SUFFIX
from src.domain.errors import ErrorCodes, InfrastructureError, InvalidInputError
from src.domain.schemas import (
    MaterializedFields,
    TemplateSnapshot,
    VersionConflict,
    WriteCommitted,
    WriteOutcome,
)
from src.storage.atomic import atomic_write_json, file_lock
from src.storage.base import RecordStore

logger = logging.getLogger(__name__)


class JsonRecordStore(RecordStore):
    """
    records/ 디렉터리에 스냅샷을 저장하는 RecordStore.

    여러 프로세스/코디네이터 인스턴스가 같은 디렉터리를 공유해도
    조건부 쓰기는 정확히 하나만 성공함.
    """

    def __init__(self, root: Path, lock_timeout: float = 10.0):
        """
        Args:
            root: records/ 디렉터리 경로
            lock_timeout: 레코드 락 timeout (초)
        """
        self.root = root
        self.lock_timeout = lock_timeout
        self._locks_dir = root / LOCKS_DIR

    # =========================================================================
    # RecordStore
    # =========================================================================

    async def load_by_id(self, record_id: str) -> TemplateSnapshot:
        return await asyncio.to_thread(self._load_sync, record_id)

    async def conditional_update(
        self,
        record_id: str,
        expected_version: int,
        new_fields: MaterializedFields,
    ) -> WriteOutcome:
        return await asyncio.to_thread(
            self._conditional_update_sync, record_id, expected_version, new_fields
        )

    async def insert(self, snapshot: TemplateSnapshot) -> TemplateSnapshot:
        return await asyncio.to_thread(self._insert_sync, snapshot)

    async def list_records(self) -> list[TemplateSnapshot]:
        return await asyncio.to_thread(self._list_sync)

    # =========================================================================
    # Sync implementation
    # =========================================================================

    def _record_path(self, record_id: str) -> Path:
        if not record_id or "/" in record_id or "\\" in record_id or record_id.startswith("."):
            raise InvalidInputError(
                ErrorCodes.INVALID_CODE,
                "record id is not a valid identifier",
                field="id",
                value=record_id,
            )
        return self.root / f"{record_id}{RECORD_SUFFIX}"

    def _lock_path(self, record_id: str) -> Path:
        return self._locks_dir / f"{record_id}.lock"

    def _read(self, path: Path, record_id: str) -> TemplateSnapshot:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise InvalidInputError(
                ErrorCodes.TEMPLATE_NOT_FOUND,
                f"Template '{record_id}' not found",
                field="id",
                record_id=record_id,
            ) from e
        except json.JSONDecodeError as e:
            raise InfrastructureError(
                ErrorCodes.RECORD_CORRUPT,
                "record file is not valid JSON",
                retryable=False,
                path=str(path),
                error=str(e),
            ) from e
        except OSError as e:
            raise InfrastructureError(
                ErrorCodes.STORE_UNAVAILABLE,
                "record store read failed",
                path=str(path),
                error=str(e),
            ) from e

        try:
            return TemplateSnapshot.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            raise InfrastructureError(
                ErrorCodes.RECORD_CORRUPT,
                "record file does not match the snapshot schema",
                retryable=False,
                path=str(path),
                error=str(e),
            ) from e

    def _write(self, path: Path, snapshot: TemplateSnapshot) -> None:
        try:
            atomic_write_json(path, snapshot.to_dict())
        except OSError as e:
            raise InfrastructureError(
                ErrorCodes.STORE_UNAVAILABLE,
                "record store write failed",
                path=str(path),
                error=str(e),
            ) from e

    def _load_sync(self, record_id: str) -> TemplateSnapshot:
        return self._read(self._record_path(record_id), record_id)

    def _conditional_update_sync(
        self,
        record_id: str,
        expected_version: int,
        new_fields: MaterializedFields,
    ) -> WriteOutcome:
        path = self._record_path(record_id)

        with file_lock(self._lock_path(record_id), self.lock_timeout):
            current = self._read(path, record_id)

            if current.version != expected_version:
                logger.info(
                    f"Version conflict on {record_id}: "
                    f"expected {expected_version}, found {current.version}"
                )
                return VersionConflict(
                    expected_version=expected_version,
                    current_version=current.version,
                )

            updated = replace(
                current,
                business_units=tuple(new_fields.business_units),
                template_type=new_fields.template_type,
                status=new_fields.status,
                derived_name=new_fields.derived_name,
                content_location=new_fields.content_location,
                version=current.version + 1,
                updated_at=utc_now_iso(),
            )
            self._write(path, updated)
            return WriteCommitted(snapshot=updated)

    def _insert_sync(self, snapshot: TemplateSnapshot) -> TemplateSnapshot:
        path = self._record_path(snapshot.id)

        with file_lock(self._lock_path(snapshot.id), self.lock_timeout):
            if path.exists():
                raise InvalidInputError(
                    ErrorCodes.TEMPLATE_EXISTS,
                    f"Template '{snapshot.id}' already exists",
                    field="id",
                    record_id=snapshot.id,
                )
            self._write(path, snapshot)
            return snapshot

    def _list_sync(self) -> list[TemplateSnapshot]:
        if not self.root.exists():
            return []

        results = []
        for path in sorted(self.root.glob(f"*{RECORD_SUFFIX}")):
            if path.name.startswith("."):
                continue
            results.append(self._read(path, path.stem))
        return results
