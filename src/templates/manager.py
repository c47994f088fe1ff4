"""
템플릿 관리자: 등록 + 업데이트 진입점 (facade).

규칙:
- 등록 시 created_at 1회 고정, version 0, PendingApproval (staging 경로)
- 등록 후 모든 변경은 UpdateCoordinator를 통해서만
- 파생 필드(derived_name, content_location)는 항상 materialize_fields()로 계산
- 점유된 staging 경로에는 등록하지 않음 (덮어쓰기 금지)
"""

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from src.core.audit import JsonlAuditSink
from src.core.hashing import compute_bytes_hash
from src.core.ids import generate_template_id, utc_now_iso
from src.core.invariants import check_invariants
from src.core.naming import validate_business_units, validate_code, validate_created_at
from src.core.paths import STATUS_SEGMENTS, materialize_fields
from src.core.settings import CoordinatorSettings
from src.domain.constants import AUDIT_LOG_FILENAME, ESCALATIONS_FILENAME, ORPHANS_FILENAME
from src.domain.errors import (
    ConflictAtDestinationError,
    ErrorCodes,
    IntegrityError,
    UpdateError,
)
from src.domain.schemas import (
    FieldChanges,
    TemplateFields,
    TemplateSnapshot,
    TemplateStatus,
    UpdateRequest,
)
from src.storage.base import AuditSink, BlobStore, RecordStore
from src.storage.blobs import LocalBlobStore
from src.storage.ledger import OrphanQueue, ReconciliationLedger
from src.storage.records import JsonRecordStore
from src.templates.coordinator import UpdateCoordinator, UpdateResult

logger = logging.getLogger(__name__)


class TemplateManager:
    """
    템플릿 레코드 관리자.

    사용법:
        manager = TemplateManager.from_config(load_config())
        snapshot = await manager.register(["Commercial"], "Email", b"<html>...")
        result = await manager.approve(snapshot.id)
    """

    def __init__(
        self,
        records: RecordStore,
        blobs: BlobStore,
        *,
        settings: CoordinatorSettings | None = None,
        audit: AuditSink | None = None,
        orphans: OrphanQueue | None = None,
        escalations: ReconciliationLedger | None = None,
    ):
        self.settings = settings or CoordinatorSettings()
        self.records = records
        self.blobs = blobs
        self.layout = self.settings.layout
        self.orphans = orphans
        self.escalations = escalations
        self.coordinator = UpdateCoordinator(
            records,
            blobs,
            settings=self.settings,
            audit=audit,
            orphans=orphans,
            escalations=escalations,
        )

    @classmethod
    def from_config(cls, config: dict[str, Any], base_dir: Path | None = None) -> "TemplateManager":
        """
        설정으로 로컬 어댑터 구성.

        Args:
            config: load_config() 결과
            base_dir: data_dir가 상대 경로일 때 기준 디렉터리 (None이면 CWD)
        """
        settings = CoordinatorSettings.from_config(config)
        data_dir = settings.data_dir
        if base_dir is not None and not data_dir.is_absolute():
            data_dir = base_dir / data_dir

        ledger_dir = data_dir / settings.ledger_dir
        return cls(
            JsonRecordStore(data_dir / settings.records_dir, settings.lock_timeout),
            LocalBlobStore(data_dir / settings.blobs_dir),
            settings=settings,
            audit=JsonlAuditSink(ledger_dir / AUDIT_LOG_FILENAME, settings.lock_timeout),
            orphans=OrphanQueue(ledger_dir / ORPHANS_FILENAME, settings.lock_timeout),
            escalations=ReconciliationLedger(
                ledger_dir / ESCALATIONS_FILENAME, settings.lock_timeout
            ),
        )

    # =========================================================================
    # Register
    # =========================================================================

    async def register(
        self,
        business_units: list[str],
        template_type: str,
        content: bytes,
        created_at: datetime | None = None,
        template_id: str | None = None,
    ) -> TemplateSnapshot:
        """
        새 템플릿 등록.

        Args:
            business_units: 유닛 코드 목록
            template_type: 분류 코드
            content: 템플릿 내용
            created_at: 생성 시각 (None이면 현재 UTC, 초 단위)
            template_id: 레코드 ID (None이면 자동 생성)

        Returns:
            version 0 스냅샷

        Raises:
            InvalidInputError: 입력 형식 오류, TEMPLATE_EXISTS
            ConflictAtDestinationError: staging 경로가 이미 점유됨
            IntegrityError: 업로드 후 체크섬 불일치
        """
        units = validate_business_units(business_units)
        validate_code(template_type, "template_type")
        if created_at is None:
            created_at = datetime.now(UTC).replace(microsecond=0)
        validate_created_at(created_at)

        fields = TemplateFields(
            business_units=units,
            template_type=template_type,
            status=TemplateStatus.PENDING_APPROVAL,
            created_at=created_at,
        )
        values = materialize_fields(fields, self.layout)
        location = values.content_location

        if await self.blobs.exists(location):
            raise ConflictAtDestinationError(
                ErrorCodes.DESTINATION_OCCUPIED,
                "staging location is already occupied",
                field="content_location",
                step="register",
                destination=location,
            )

        await self.blobs.put(location, content)
        expected = compute_bytes_hash(content)
        actual = await self.blobs.checksum(location)
        if actual != expected:
            await self.blobs.delete(location)
            raise IntegrityError(
                ErrorCodes.DESTINATION_CHECKSUM_MISMATCH,
                "uploaded content does not match its checksum",
                step="register",
                destination=location,
                expected=expected,
                actual=actual,
            )

        snapshot = TemplateSnapshot(
            id=template_id or generate_template_id(),
            business_units=values.business_units,
            template_type=values.template_type,
            status=values.status,
            created_at=created_at,
            derived_name=values.derived_name,
            content_location=location,
            version=0,
            updated_at=utc_now_iso(),
        )
        try:
            stored = await self.records.insert(snapshot)
        except UpdateError:
            await self.blobs.delete(location)
            raise

        logger.info(f"Registered {stored.id} as {stored.derived_name} at {location}")
        return stored

    # =========================================================================
    # Read
    # =========================================================================

    async def get(self, template_id: str) -> TemplateSnapshot:
        return await self.records.load_by_id(template_id)

    async def list_templates(self, status: TemplateStatus | None = None) -> list[TemplateSnapshot]:
        """레코드 목록 (status 필터 선택)."""
        snapshots = await self.records.list_records()
        if status is None:
            return snapshots
        return [s for s in snapshots if s.status == status]

    # =========================================================================
    # Update
    # =========================================================================

    async def edit(
        self,
        template_id: str,
        business_units: list[str] | None = None,
        template_type: str | None = None,
        content_changed: bool = False,
        expected_version: int | None = None,
    ) -> UpdateResult:
        changes = FieldChanges(
            business_units=tuple(business_units) if business_units is not None else None,
            template_type=template_type,
            content_changed=content_changed,
        )
        return await self.update(UpdateRequest(template_id, changes, expected_version))

    async def approve(self, template_id: str, expected_version: int | None = None) -> UpdateResult:
        changes = FieldChanges(status=TemplateStatus.APPROVED)
        return await self.update(UpdateRequest(template_id, changes, expected_version))

    async def cancel(self, template_id: str, expected_version: int | None = None) -> UpdateResult:
        changes = FieldChanges(status=TemplateStatus.CANCELED)
        return await self.update(UpdateRequest(template_id, changes, expected_version))

    async def update(self, request: UpdateRequest) -> UpdateResult:
        return await self.coordinator.update(request)

    # =========================================================================
    # Verify
    # =========================================================================

    async def verify(self, template_id: str) -> list[str]:
        """
        레코드 + blob 불변식 검사.

        다른 상태 세그먼트의 같은 이름 경로를 "이전 위치"로 간주.

        Returns:
            위반 목록 (비어 있으면 정상)
        """
        snapshot = await self.records.load_by_id(template_id)
        previous = [
            self.layout.resolve(snapshot.business_units, status, snapshot.derived_name)
            for status in STATUS_SEGMENTS
            if status != snapshot.status
        ]
        violations = await check_invariants(snapshot, self.blobs, self.layout, previous)
        for violation in violations:
            logger.warning(f"{template_id}: {violation}")
        return violations
