"""
test_manager.py - 템플릿 관리자 (TemplateManager) 테스트

검증:
- 등록: version 0, PendingApproval, staging 경로, created_at 고정
- 등록 실패 시 blob 정리 (덮어쓰기 금지)
- edit / approve / cancel → UpdateCoordinator
- verify: 레코드 + blob 불변식
- from_config: 로컬 어댑터 구성
"""

from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

import pytest

from src.core.audit import load_audit_events
from src.core.hashing import compute_bytes_hash
from src.domain.errors import (
    ConflictAtDestinationError,
    ErrorCategory,
    ErrorCodes,
    InvalidInputError,
)
from src.domain.schemas import TemplateStatus
from src.templates.coordinator import SagaState
from src.templates.manager import TemplateManager

STAGING = "templates/COMMERCIAL/staging/COMMERCIAL_EMAIL_2024-11-15T10-30-15.html"
APPROVED = "templates/COMMERCIAL/approved/COMMERCIAL_EMAIL_2024-11-15T10-30-15.html"


# =============================================================================
# Register
# =============================================================================

class TestRegister:
    """등록 테스트."""

    @pytest.mark.asyncio
    async def test_register(self, manager, registered, blob_store, template_content, created_at):
        assert registered.version == 0
        assert registered.status == TemplateStatus.PENDING_APPROVAL
        assert registered.business_units == ("Commercial",)
        assert registered.derived_name == "COMMERCIAL_EMAIL_2024-11-15T10-30-15"
        assert registered.content_location == STAGING
        assert registered.created_at == created_at
        assert await blob_store.get(STAGING) == template_content
        assert await manager.get(registered.id) == registered

    @pytest.mark.asyncio
    async def test_default_created_at(self, manager, template_content):
        snapshot = await manager.register(["Retail"], "Letter", template_content)

        assert snapshot.id.startswith("TPL-")
        assert snapshot.created_at.tzinfo == UTC
        assert snapshot.created_at.microsecond == 0
        assert snapshot.content_location.startswith("templates/RETAIL/staging/RETAIL_LETTER_")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "units,template_type,code",
        [
            ([], "Email", ErrorCodes.EMPTY_BUSINESS_UNITS),
            (["Commercial", "commercial"], "Email", ErrorCodes.DUPLICATE_BUSINESS_UNIT),
            (["Commercial"], "E_mail", ErrorCodes.INVALID_CODE),
            (["Com/mercial"], "Email", ErrorCodes.INVALID_CODE),
        ],
    )
    async def test_invalid_input(self, manager, template_content, units, template_type, code):
        with pytest.raises(InvalidInputError) as exc_info:
            await manager.register(units, template_type, template_content)

        assert exc_info.value.code == code
        assert await manager.list_templates() == []

    @pytest.mark.asyncio
    async def test_non_utc_created_at(self, manager, template_content):
        kst = datetime(2024, 11, 15, 19, 30, 15, tzinfo=timezone(timedelta(hours=9)))

        with pytest.raises(InvalidInputError) as exc_info:
            await manager.register(["Commercial"], "Email", template_content, created_at=kst)

        assert exc_info.value.code == ErrorCodes.INVALID_TIMESTAMP

    @pytest.mark.asyncio
    async def test_duplicate_id_cleans_up_blob(
        self, manager, registered, blob_store, template_content, created_at
    ):
        with pytest.raises(InvalidInputError) as exc_info:
            await manager.register(
                ["Commercial"], "Letter", template_content,
                created_at=created_at, template_id=registered.id,
            )

        assert exc_info.value.code == ErrorCodes.TEMPLATE_EXISTS
        letter = "templates/COMMERCIAL/staging/COMMERCIAL_LETTER_2024-11-15T10-30-15.html"
        assert not await blob_store.exists(letter)
        assert await blob_store.exists(STAGING)

    @pytest.mark.asyncio
    async def test_occupied_staging_location(
        self, manager, registered, blob_store, template_content, created_at
    ):
        """같은 units/type/created_at → 같은 경로 → 덮어쓰지 않음."""
        with pytest.raises(ConflictAtDestinationError):
            await manager.register(
                ["Commercial"], "Email", b"other content",
                created_at=created_at, template_id="TPL-000000000002",
            )

        assert await blob_store.get(STAGING) == template_content
        assert [s.id for s in await manager.list_templates()] == [registered.id]


# =============================================================================
# Read
# =============================================================================

class TestRead:
    """get / list_templates 테스트."""

    @pytest.mark.asyncio
    async def test_get_missing(self, manager):
        with pytest.raises(InvalidInputError) as exc_info:
            await manager.get("TPL-missing")

        assert exc_info.value.code == ErrorCodes.TEMPLATE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_list_by_status(self, manager, registered, template_content, created_at):
        other = await manager.register(
            ["GBD"], "Email", template_content,
            created_at=created_at, template_id="TPL-000000000002",
        )
        await manager.approve(other.id)

        pending = await manager.list_templates(TemplateStatus.PENDING_APPROVAL)
        approved = await manager.list_templates(TemplateStatus.APPROVED)

        assert [s.id for s in pending] == [registered.id]
        assert [s.id for s in approved] == [other.id]
        assert len(await manager.list_templates()) == 2


# =============================================================================
# Update
# =============================================================================

class TestUpdate:
    """edit / approve / cancel 진입점."""

    @pytest.mark.asyncio
    async def test_approve(self, manager, registered, blob_store):
        result = await manager.approve(registered.id, expected_version=0)

        assert result.success
        assert result.snapshot.content_location == APPROVED
        assert await blob_store.exists(APPROVED)

    @pytest.mark.asyncio
    async def test_edit_type(self, manager, registered, blob_store, template_content):
        result = await manager.edit(registered.id, template_type="Letter")

        assert result.success
        snapshot = result.snapshot
        assert snapshot.derived_name == "COMMERCIAL_LETTER_2024-11-15T10-30-15"
        assert snapshot.created_at == registered.created_at
        assert await blob_store.get(snapshot.content_location) == template_content
        assert not await blob_store.exists(STAGING)

    @pytest.mark.asyncio
    async def test_edit_demotes_approved(self, manager, registered, blob_store):
        await manager.approve(registered.id)

        result = await manager.edit(registered.id, content_changed=True)

        assert result.success
        assert result.snapshot.status == TemplateStatus.PENDING_APPROVAL
        assert result.snapshot.content_location == STAGING
        assert result.snapshot.version == 2
        assert await blob_store.exists(STAGING)
        assert not await blob_store.exists(APPROVED)

    @pytest.mark.asyncio
    async def test_cancel_is_terminal(self, manager, registered):
        canceled = await manager.cancel(registered.id)

        result = await manager.edit(registered.id, template_type="Letter")

        assert canceled.success
        assert canceled.snapshot.status == TemplateStatus.CANCELED
        assert result.state == SagaState.REJECTED
        assert result.error.category == ErrorCategory.TERMINAL_STATE

    @pytest.mark.asyncio
    async def test_stale_version(self, manager, registered):
        await manager.edit(registered.id, content_changed=True)

        result = await manager.approve(registered.id, expected_version=0)

        assert result.state == SagaState.REJECTED
        assert result.error.code == ErrorCodes.STALE_EXPECTED_VERSION
        assert result.snapshot.version == 1


# =============================================================================
# Verify
# =============================================================================

class TestVerify:
    """불변식 검사."""

    @pytest.mark.asyncio
    async def test_consistent(self, manager, registered):
        assert await manager.verify(registered.id) == []

        await manager.approve(registered.id)

        assert await manager.verify(registered.id) == []

    @pytest.mark.asyncio
    async def test_missing_object(self, manager, registered, blob_store):
        await blob_store.delete(STAGING)

        violations = await manager.verify(registered.id)

        assert len(violations) == 1
        assert "no object" in violations[0]

    @pytest.mark.asyncio
    async def test_object_left_at_previous_location(
        self, manager, registered, blob_store, template_content
    ):
        await manager.approve(registered.id)
        await blob_store.put(STAGING, template_content)

        violations = await manager.verify(registered.id)

        assert len(violations) == 1
        assert "previous location" in violations[0]


# =============================================================================
# Config
# =============================================================================

class TestFromConfig:
    """설정 기반 구성."""

    def test_paths_relative_to_base_dir(self, tmp_path: Path):
        config = {"storage": {"data_dir": "store", "bucket_root": "tpl"}}

        manager = TemplateManager.from_config(config, base_dir=tmp_path)

        assert manager.records.root == tmp_path / "store" / "records"
        assert manager.blobs.root == tmp_path / "store" / "blobs"
        assert manager.layout.bucket_root == "tpl"

    @pytest.mark.asyncio
    async def test_end_to_end_with_local_adapters(self, tmp_path: Path, template_content):
        config = {
            "storage": {"data_dir": "store"},
            "retry": {"initial_delay": 0.0, "max_delay": 0.0},
        }
        manager = TemplateManager.from_config(config, base_dir=tmp_path)

        snapshot = await manager.register(["Commercial"], "Email", template_content)
        result = await manager.approve(snapshot.id)

        assert result.success
        blob = tmp_path / "store" / "blobs" / Path(result.snapshot.content_location)
        assert blob.read_bytes() == template_content
        assert compute_bytes_hash(blob.read_bytes()) == compute_bytes_hash(template_content)

        events = load_audit_events(tmp_path / "store" / "ledger" / "audit.jsonl")
        assert [e["action"] for e in events] == ["Approved"]
        assert events[0]["new_snapshot"]["version"] == 1
