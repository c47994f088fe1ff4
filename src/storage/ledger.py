"""
JSON ledger: orphan 정리 대기열 + 수동 정합화 대기열

- OrphanQueue: 삭제 실패한 원본 등 참조되지 않는 객체 위치 (reap_orphans.py가 처리)
- ReconciliationLedger: 보상 실패로 escalate된 saga (운영자가 수동 정합화)

쓰기는 FileLock + 원자적 JSON 쓰기.
"""

import json
import logging
import uuid
from pathlib import Path
from typing import Any

from src.core.ids import utc_now_iso
from src.domain.errors import ErrorCodes, InfrastructureError, UpdateError
from src.domain.schemas import MaterializedFields, TemplateSnapshot
from src.storage.atomic import atomic_write_json, file_lock

logger = logging.getLogger(__name__)


class JsonLedger:
    """
    {"entries": [...]} 형태의 append 가능한 JSON 파일.

    각 entry에 entry_id, recorded_at 자동 부여.
    """

    def __init__(self, path: Path, lock_timeout: float = 10.0):
        self.path = path
        self.lock_timeout = lock_timeout
        self._lock_path = path.with_name(f".{path.name}.lock")

    def _load(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise InfrastructureError(
                ErrorCodes.RECORD_CORRUPT,
                "ledger file is not valid JSON",
                retryable=False,
                path=str(self.path),
                error=str(e),
            ) from e
        entries: list[dict[str, Any]] = data.get("entries", [])
        return entries

    def append(self, entry: dict[str, Any]) -> dict[str, Any]:
        """entry 추가 후 저장된 entry 반환."""
        stored = {
            "entry_id": uuid.uuid4().hex[:12],
            "recorded_at": utc_now_iso(),
            **entry,
        }
        with file_lock(self._lock_path, self.lock_timeout):
            entries = self._load()
            entries.append(stored)
            atomic_write_json(self.path, {"entries": entries})
        return stored

    def entries(self) -> list[dict[str, Any]]:
        return self._load()

    def remove(self, entry_ids: set[str]) -> int:
        """entry_id 목록 제거. 제거된 개수 반환."""
        if not entry_ids:
            return 0
        with file_lock(self._lock_path, self.lock_timeout):
            entries = self._load()
            kept = [e for e in entries if e.get("entry_id") not in entry_ids]
            atomic_write_json(self.path, {"entries": kept})
        return len(entries) - len(kept)


class OrphanQueue(JsonLedger):
    """참조되지 않는 객체의 정리 대기열."""

    def enqueue(
        self,
        location: str,
        reason: str,
        record_id: str | None = None,
        saga_id: str | None = None,
    ) -> dict[str, Any]:
        entry = self.append({
            "location": location,
            "reason": reason,
            "record_id": record_id,
            "saga_id": saga_id,
        })
        logger.warning(f"Queued orphan object {location} ({reason})")
        return entry

    def pending(self) -> list[dict[str, Any]]:
        return self.entries()


class ReconciliationLedger(JsonLedger):
    """보상 실패 escalate 기록."""

    def record_escalation(
        self,
        error: UpdateError,
        record_id: str,
        saga_id: str,
        before: TemplateSnapshot | None,
        attempted: MaterializedFields | None,
    ) -> dict[str, Any]:
        return self.append({
            "record_id": record_id,
            "saga_id": saga_id,
            "error": error.to_dict(),
            "before": before.to_dict() if before else None,
            "attempted": attempted.to_dict() if attempted else None,
        })

    def pending(self) -> list[dict[str, Any]]:
        return self.entries()
