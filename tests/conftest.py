"""
Pytest fixtures for the update-coordination tests.

구성:
- 로컬 어댑터 (tmp_path 기반 JSON 레코드 저장소, 파일시스템 blob 저장소)
- 장애 주입용 어댑터 서브클래스 (FlakyRecordStore, FlakyBlobStore)
- 이벤트를 모으는 RecordingAuditSink
"""

import asyncio
from datetime import datetime
from pathlib import Path

import pytest
import pytest_asyncio
import yaml

from src.core.settings import CoordinatorSettings, RetrySettings
from src.domain.errors import ErrorCodes, InfrastructureError
from src.domain.schemas import (
    AuditEvent,
    MaterializedFields,
    TemplateSnapshot,
    WriteOutcome,
)
from src.storage.base import AuditSink
from src.storage.blobs import LocalBlobStore
from src.storage.ledger import OrphanQueue, ReconciliationLedger
from src.storage.records import JsonRecordStore
from src.templates.manager import TemplateManager

TEMPLATE_CONTENT = b"<html><body>Hello {{ name }}</body></html>"


# =============================================================================
# Fault Injection Adapters
# =============================================================================

def _unavailable(operation: str, **context) -> InfrastructureError:
    return InfrastructureError(
        ErrorCodes.STORE_UNAVAILABLE,
        f"injected {operation} failure",
        step=operation,
        **context,
    )


class FlakyRecordStore(JsonRecordStore):
    """
    장애 주입 RecordStore.

    conditional_update 호출 번호(1부터)로 장애를 지정:
    - fail_update_calls: 쓰기 전 retryable 장애
    - delay_before_apply: 적용 전 지연 (timeout 시 미반영)
    - delay_after_apply: 적용 후 지연 (timeout 시 이미 반영)
    - fail_loads: 남은 load_by_id 장애 횟수
    - before_update: 첫 쓰기 직전에 실행할 경쟁 쓰기 (async callable)
    """

    def __init__(self, root: Path, lock_timeout: float = 2.0):
        super().__init__(root, lock_timeout)
        self.update_calls = 0
        self.fail_update_calls: set[int] = set()
        self.delay_before_apply: dict[int, float] = {}
        self.delay_after_apply: dict[int, float] = {}
        self.fail_loads = 0
        self.before_update = None

    async def load_by_id(self, record_id: str) -> TemplateSnapshot:
        if self.fail_loads > 0:
            self.fail_loads -= 1
            raise _unavailable("load", record_id=record_id)
        return await super().load_by_id(record_id)

    async def conditional_update(
        self,
        record_id: str,
        expected_version: int,
        new_fields: MaterializedFields,
    ) -> WriteOutcome:
        self.update_calls += 1
        call = self.update_calls

        if self.before_update is not None:
            competing, self.before_update = self.before_update, None
            await competing()

        if call in self.fail_update_calls:
            raise _unavailable("conditional_update", record_id=record_id)
        if call in self.delay_before_apply:
            await asyncio.sleep(self.delay_before_apply[call])

        outcome = await super().conditional_update(record_id, expected_version, new_fields)

        if call in self.delay_after_apply:
            await asyncio.sleep(self.delay_after_apply[call])
        return outcome


class FlakyBlobStore(LocalBlobStore):
    """
    장애 주입 BlobStore.

    - fail_copies: 남은 copy 장애 횟수 (retryable)
    - corrupt_copies: 남은 손상 복제 횟수 (목적지에 다른 내용 기록)
    - copy_delay: copy 전 지연 (초)
    - fail_delete_locations: 항상 삭제 실패하는 위치
    """

    def __init__(self, root: Path):
        super().__init__(root)
        self.copy_calls = 0
        self.fail_copies = 0
        self.corrupt_copies = 0
        self.copy_delay = 0.0
        self.fail_delete_locations: set[str] = set()

    async def copy(self, src: str, dst: str) -> None:
        self.copy_calls += 1
        if self.copy_delay:
            await asyncio.sleep(self.copy_delay)
        if self.fail_copies > 0:
            self.fail_copies -= 1
            raise _unavailable("copy", location=dst)
        if self.corrupt_copies > 0:
            self.corrupt_copies -= 1
            await self.put(dst, b"corrupted")
            return
        await super().copy(src, dst)

    async def delete(self, location: str) -> None:
        if location in self.fail_delete_locations:
            raise _unavailable("delete", location=location)
        await super().delete(location)


class RecordingAuditSink(AuditSink):
    """emit된 이벤트를 메모리에 보관."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    def emit(self, event: AuditEvent) -> None:
        self.events.append(event)


class BrokenAuditSink(AuditSink):
    """항상 실패하는 sink."""

    def emit(self, event: AuditEvent) -> None:
        raise ConnectionError("audit collector unreachable")


# =============================================================================
# Path / Config Fixtures
# =============================================================================

@pytest.fixture
def project_root() -> Path:
    """프로젝트 루트 경로."""
    return Path(__file__).parent.parent


@pytest.fixture
def default_config_path(project_root: Path) -> Path:
    """default.yaml 경로."""
    return project_root / "default.yaml"


@pytest.fixture
def default_config(default_config_path: Path) -> dict:
    """기본 설정 로드."""
    with open(default_config_path, encoding="utf-8") as f:
        return yaml.safe_load(f)


@pytest.fixture
def fast_retry() -> RetrySettings:
    """대기 없는 재시도 설정 (최대 3회 시도)."""
    return RetrySettings(max_retries=2, initial_delay=0.0, max_delay=0.0)


@pytest.fixture
def settings(tmp_path: Path, fast_retry: RetrySettings) -> CoordinatorSettings:
    """테스트용 코디네이터 설정."""
    return CoordinatorSettings(
        data_dir=tmp_path / "data",
        retry=fast_retry,
        record_write_timeout=1.0,
        relocation_timeout=2.0,
        lock_timeout=2.0,
    )


@pytest.fixture
def created_at() -> datetime:
    """고정 생성 시각."""
    return datetime(2024, 11, 15, 10, 30, 15)


@pytest.fixture
def template_content() -> bytes:
    """등록에 쓰는 템플릿 내용."""
    return TEMPLATE_CONTENT


# =============================================================================
# Adapter Fixtures
# =============================================================================

@pytest.fixture
def record_store(settings: CoordinatorSettings) -> FlakyRecordStore:
    """장애 주입 가능한 레코드 저장소 (기본: 정상 동작)."""
    return FlakyRecordStore(settings.records_path, settings.lock_timeout)


@pytest.fixture
def blob_store(settings: CoordinatorSettings) -> FlakyBlobStore:
    """장애 주입 가능한 blob 저장소 (기본: 정상 동작)."""
    return FlakyBlobStore(settings.blobs_path)


@pytest.fixture
def orphan_queue(settings: CoordinatorSettings) -> OrphanQueue:
    return OrphanQueue(settings.ledger_path / "orphans.json", settings.lock_timeout)


@pytest.fixture
def escalations(settings: CoordinatorSettings) -> ReconciliationLedger:
    return ReconciliationLedger(settings.ledger_path / "escalations.json", settings.lock_timeout)


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def manager(
    record_store: FlakyRecordStore,
    blob_store: FlakyBlobStore,
    settings: CoordinatorSettings,
    audit_sink: RecordingAuditSink,
    orphan_queue: OrphanQueue,
    escalations: ReconciliationLedger,
) -> TemplateManager:
    """로컬 어댑터로 구성한 TemplateManager."""
    return TemplateManager(
        record_store,
        blob_store,
        settings=settings,
        audit=audit_sink,
        orphans=orphan_queue,
        escalations=escalations,
    )


@pytest_asyncio.fixture
async def registered(manager: TemplateManager, created_at: datetime) -> TemplateSnapshot:
    """PendingApproval 상태로 등록된 템플릿 (version 0)."""
    return await manager.register(
        ["Commercial"],
        "Email",
        TEMPLATE_CONTENT,
        created_at=created_at,
        template_id="TPL-000000000001",
    )


@pytest.fixture
def broken_audit_sink() -> BrokenAuditSink:
    return BrokenAuditSink()
