"""
감사 이벤트: terminal outcome당 1개

규칙:
- 이벤트 필수 키: record_id, old_snapshot, new_snapshot, action, timestamp
- 전달은 fire-and-forget: sink 실패는 경고 로그만, 업데이트 결과에 영향 없음
- 내구성은 sink(협력자)의 책임
"""

import json
import logging
from pathlib import Path
from typing import Any

from src.core.ids import generate_event_id, utc_now_iso
from src.domain.errors import UpdateError
from src.domain.schemas import AuditAction, AuditEvent, TemplateSnapshot
from src.storage.atomic import file_lock
from src.storage.base import AuditSink

logger = logging.getLogger(__name__)


# =============================================================================
# Event Creation
# =============================================================================

def create_audit_event(
    record_id: str,
    action: AuditAction,
    saga_id: str,
    old_snapshot: TemplateSnapshot | None = None,
    new_snapshot: TemplateSnapshot | None = None,
    error: UpdateError | None = None,
    history: list[str] | None = None,
) -> AuditEvent:
    """
    새 AuditEvent 생성.

    Args:
        record_id: 레코드 ID
        action: Updated / Approved / Canceled / Rejected / Failed
        saga_id: 업데이트 saga ID
        old_snapshot: 업데이트 전 스냅샷
        new_snapshot: 최종 스냅샷 (실패 시 보상 후 스냅샷)
        error: 실패/거부 사유
        history: saga 상태 이력

    Returns:
        AuditEvent
    """
    return AuditEvent(
        event_id=generate_event_id(),
        record_id=record_id,
        action=action,
        timestamp=utc_now_iso(),
        saga_id=saga_id,
        old_snapshot=old_snapshot,
        new_snapshot=new_snapshot,
        error=error.to_dict() if error else None,
        history=list(history or []),
    )


def emit_audit_event(sink: AuditSink, event: AuditEvent) -> bool:
    """
    fire-and-forget 전달.

    Returns:
        전달 성공 여부 (실패 시 경고 로그)
    """
    try:
        sink.emit(event)
        return True
    except Exception as e:
        logger.warning(
            f"Audit delivery failed for {event.record_id} "
            f"({event.action.value}, {event.event_id}): {e}"
        )
        return False


# =============================================================================
# Sinks
# =============================================================================

class LoggingAuditSink(AuditSink):
    """이벤트를 로그로만 남기는 기본 sink."""

    def emit(self, event: AuditEvent) -> None:
        logger.info(
            f"audit {event.action.value} record={event.record_id} "
            f"saga={event.saga_id} event={event.event_id}"
        )


class JsonlAuditSink(AuditSink):
    """
    audit.jsonl 파일에 이벤트를 한 줄씩 추가하는 sink.

    여러 코디네이터가 같은 파일을 공유할 수 있도록 append 시 FileLock.
    """

    def __init__(self, path: Path, lock_timeout: float = 10.0):
        self.path = path
        self.lock_timeout = lock_timeout
        self._lock_path = path.with_name(f".{path.name}.lock")

    def emit(self, event: AuditEvent) -> None:
        line = json.dumps(event.to_dict(), ensure_ascii=False)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with file_lock(self._lock_path, self.lock_timeout):
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")


def load_audit_events(path: Path) -> list[dict[str, Any]]:
    """
    audit.jsonl 로드.

    Args:
        path: 로그 파일 경로

    Returns:
        이벤트 목록 (기록 순)
    """
    if not path.exists():
        return []

    events = []
    for line in path.read_text(encoding="utf-8").splitlines():
        if line.strip():
            events.append(json.loads(line))
    return events
