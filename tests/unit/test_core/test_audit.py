"""
test_audit.py - 감사 이벤트 테스트

테스트 케이스:
- 이벤트 필수 키 (record_id, old/new snapshot, action, timestamp)
- sink 실패는 경고만 (fire-and-forget)
- JSONL sink append + 로드
"""

import logging
from pathlib import Path

import pytest

from src.core.audit import (
    JsonlAuditSink,
    LoggingAuditSink,
    create_audit_event,
    emit_audit_event,
    load_audit_events,
)
from src.domain.errors import ErrorCodes, InvalidInputError
from src.domain.schemas import AuditAction


class TestCreateAuditEvent:
    """create_audit_event 함수 테스트."""

    @pytest.mark.asyncio
    async def test_required_keys(self, registered):
        event = create_audit_event(
            record_id=registered.id,
            action=AuditAction.APPROVED,
            saga_id="SAGA-1",
            old_snapshot=registered,
            new_snapshot=registered,
        )

        data = event.to_dict()
        for key in ("record_id", "old_snapshot", "new_snapshot", "action", "timestamp"):
            assert key in data
        assert data["action"] == "Approved"
        assert data["old_snapshot"]["id"] == registered.id
        assert data["error"] is None
        assert event.event_id.startswith("EVT-")

    def test_error_serialized(self):
        error = InvalidInputError(ErrorCodes.NO_CHANGES, "nothing", field="changes")

        event = create_audit_event("TPL-x", AuditAction.REJECTED, "SAGA-1", error=error)

        assert event.error["code"] == ErrorCodes.NO_CHANGES
        assert event.error["category"] == "InvalidInput"
        assert event.to_dict()["old_snapshot"] is None


class TestEmitAuditEvent:
    """emit_audit_event 함수 테스트."""

    def test_sink_failure_is_swallowed_with_warning(self, caplog):
        class Broken(LoggingAuditSink):
            def emit(self, event):
                raise ConnectionError("down")

        event = create_audit_event("TPL-x", AuditAction.FAILED, "SAGA-1")

        with caplog.at_level(logging.WARNING):
            delivered = emit_audit_event(Broken(), event)

        assert delivered is False
        assert "Audit delivery failed" in caplog.text

    def test_logging_sink(self, caplog):
        event = create_audit_event("TPL-x", AuditAction.UPDATED, "SAGA-1")

        with caplog.at_level(logging.INFO):
            assert emit_audit_event(LoggingAuditSink(), event) is True

        assert "TPL-x" in caplog.text


class TestJsonlAuditSink:
    """JsonlAuditSink 테스트."""

    def test_append_and_load(self, tmp_path: Path):
        path = tmp_path / "ledger" / "audit.jsonl"
        sink = JsonlAuditSink(path)

        sink.emit(create_audit_event("TPL-1", AuditAction.UPDATED, "SAGA-1"))
        sink.emit(create_audit_event("TPL-2", AuditAction.CANCELED, "SAGA-2"))

        events = load_audit_events(path)
        assert [e["record_id"] for e in events] == ["TPL-1", "TPL-2"]
        assert events[1]["action"] == "Canceled"

    def test_load_missing_file(self, tmp_path: Path):
        assert load_audit_events(tmp_path / "none.jsonl") == []
