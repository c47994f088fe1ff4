"""
업데이트 코디네이터 (UpdateCoordinator): 레코드 쓰기 + 객체 이동 saga

상태:
    VALIDATING → RECORD_STAGED → OBJECT_RELOCATING → FINALIZED
                      │                  │
                      ▼                  ▼
                  REJECTED          COMPENSATING → FAILED

    RECORD_STAGED → FINALIZED: 커밋 후 content_location이 그대로면 이동 생략

순서 보장:
- 관계형 쓰기가 항상 blob 이동보다 먼저
- 원본 객체는 목적지 검증 전 삭제되지 않음 (ObjectMover)
→ 보상 동작은 레코드 롤백 하나로 충분 (blob 측 보상 없음)

REJECTED: 부작용 없이 호출자에게 반환 (InvalidInput, TerminalState,
          ConcurrentModification, 사전 검사의 ConflictAtDestination)
FAILED:   커밋 전 인프라 실패, 또는 보상 완료/보상 실패
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from src.core.audit import LoggingAuditSink, create_audit_event, emit_audit_event
from src.core.concurrency import ConcurrencyGuard, VersionStamp
from src.core.ids import generate_saga_id
from src.core.paths import materialize_fields
from src.core.settings import CoordinatorSettings
from src.core.transitions import evaluate_transition
from src.domain.errors import (
    CompensationFailureError,
    ConflictAtDestinationError,
    ErrorCategory,
    ErrorCodes,
    InfrastructureError,
    UpdateError,
)
from src.domain.schemas import (
    AuditAction,
    MaterializedFields,
    TemplateSnapshot,
    TransitionDecision,
    UpdateRequest,
)
from src.storage.base import AuditSink, BlobStore, RecordStore
from src.storage.ledger import OrphanQueue, ReconciliationLedger
from src.templates.mover import ObjectMover

logger = logging.getLogger(__name__)


# =============================================================================
# Saga State Machine
# =============================================================================

class SagaState(str, Enum):
    """saga 상태."""
    VALIDATING = "Validating"
    RECORD_STAGED = "RecordStaged"
    OBJECT_RELOCATING = "ObjectRelocating"
    FINALIZED = "Finalized"
    COMPENSATING = "Compensating"
    FAILED = "Failed"
    REJECTED = "Rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (SagaState.FINALIZED, SagaState.FAILED, SagaState.REJECTED)


ALLOWED_TRANSITIONS: dict[SagaState, frozenset[SagaState]] = {
    SagaState.VALIDATING: frozenset({
        SagaState.RECORD_STAGED, SagaState.REJECTED, SagaState.FAILED,
    }),
    SagaState.RECORD_STAGED: frozenset({
        SagaState.OBJECT_RELOCATING, SagaState.FINALIZED,
        SagaState.REJECTED, SagaState.FAILED,
    }),
    SagaState.OBJECT_RELOCATING: frozenset({
        SagaState.FINALIZED, SagaState.COMPENSATING,
    }),
    SagaState.COMPENSATING: frozenset({SagaState.FAILED}),
    SagaState.FINALIZED: frozenset(),
    SagaState.FAILED: frozenset(),
    SagaState.REJECTED: frozenset(),
}


@dataclass
class SagaRun:
    """
    saga 1회 실행의 상태.

    before: VALIDATING에서 로드한 스냅샷 (보상 대상 값)
    committed: RECORD_STAGED에서 커밋된 스냅샷
    """
    saga_id: str
    request: UpdateRequest
    state: SagaState = SagaState.VALIDATING
    history: list[SagaState] = field(default_factory=lambda: [SagaState.VALIDATING])

    before: TemplateSnapshot | None = None
    stamp: VersionStamp | None = None
    decision: TransitionDecision | None = None
    target: MaterializedFields | None = None
    committed: TemplateSnapshot | None = None
    final: TemplateSnapshot | None = None
    error: UpdateError | None = None
    relocation_timed_out: bool = False

    def advance(self, new_state: SagaState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal saga transition {self.state.value} -> {new_state.value}"
            )
        logger.info(
            f"saga {self.saga_id} [{self.request.record_id}]: "
            f"{self.state.value} -> {new_state.value}"
        )
        self.state = new_state
        self.history.append(new_state)

    def require(self, *names: str) -> tuple:
        """이전 단계가 채운 값 꺼내기. 비어 있으면 RuntimeError (핸들러 순서 오류)."""
        values = tuple(getattr(self, name) for name in names)
        missing = [name for name, value in zip(names, values) if value is None]
        if missing:
            raise RuntimeError(
                f"saga {self.saga_id} reached {self.state.value} without {', '.join(missing)}"
            )
        return values


@dataclass
class UpdateResult:
    """
    호출자용 결과.

    success=True → snapshot은 최종 커밋 스냅샷
    success=False → error에 UpdateError, snapshot은 알려진 최신 스냅샷 (없으면 None)
    """
    success: bool
    saga_id: str
    state: SagaState
    snapshot: TemplateSnapshot | None = None
    error: UpdateError | None = None
    history: list[SagaState] = field(default_factory=list)
    decision: TransitionDecision | None = None

    @property
    def requires_manual_intervention(self) -> bool:
        return (
            self.error is not None
            and self.error.category == ErrorCategory.COMPENSATION_FAILURE
        )

    def raise_for_error(self) -> TemplateSnapshot:
        """실패면 error를 던지고, 성공이면 snapshot 반환."""
        if self.error is not None:
            raise self.error
        if self.snapshot is None:
            raise RuntimeError(f"saga {self.saga_id} finished without a snapshot")
        return self.snapshot


# =============================================================================
# Coordinator
# =============================================================================

StepHandler = Callable[[SagaRun], Awaitable[SagaState]]


class UpdateCoordinator:
    """
    템플릿 업데이트 saga 실행기.

    전역 락 없음: 요청마다 독립 실행, 같은 레코드에 대한 동시 요청은
    조건부 쓰기에서 경합 (정확히 하나만 승리).
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
        mover: ObjectMover | None = None,
    ):
        self.settings = settings or CoordinatorSettings()
        self.records = records
        self.blobs = blobs
        self.layout = self.settings.layout
        self.audit = audit or LoggingAuditSink()
        self.escalations = escalations
        self.guard = ConcurrencyGuard(
            records,
            retry=self.settings.retry,
            write_timeout=self.settings.record_write_timeout,
        )
        self.mover = mover or ObjectMover(
            blobs, retry=self.settings.retry, orphans=orphans
        )
        self._handlers: dict[SagaState, StepHandler] = {
            SagaState.VALIDATING: self._validate,
            SagaState.RECORD_STAGED: self._stage_record,
            SagaState.OBJECT_RELOCATING: self._relocate,
            SagaState.COMPENSATING: self._compensate,
        }

    async def update(self, request: UpdateRequest) -> UpdateResult:
        """
        업데이트 실행.

        Args:
            request: UpdateRequest

        Returns:
            UpdateResult (예외를 던지지 않음. CompensationFailure도 결과로 반환하되
            requires_manual_intervention으로 구분)
        """
        run = SagaRun(saga_id=generate_saga_id(), request=request)

        while not run.state.is_terminal:
            handler = self._handlers[run.state]
            run.advance(await handler(run))

        await self._emit(run)
        return self._result(run)

    # =========================================================================
    # Steps
    # =========================================================================

    async def _validate(self, run: SagaRun) -> SagaState:
        """레코드 로드 (version 캡처) → 전이 정책 → 목적지 사전 검사."""
        request = run.request
        try:
            run.before, run.stamp = await self.guard.load(request.record_id)
            self.guard.check_expected(run.stamp, request.expected_version)
        except UpdateError as e:
            run.error = e
            return self._rejected_or_failed(e)

        decision = evaluate_transition(run.before, request.changes)
        run.decision = decision
        if isinstance(decision.rejected, UpdateError):
            run.error = decision.rejected
            return SagaState.REJECTED
        if decision.rejected is not None:
            raise TypeError(f"transition rejected with a non-UpdateError: {decision.rejected!r}")
        if decision.proposed is None:
            raise RuntimeError("transition accepted without proposed fields")

        try:
            run.target = materialize_fields(decision.proposed, self.layout)
            await self._preflight_destination(run)
        except UpdateError as e:
            run.error = e
            return self._rejected_or_failed(e)

        return SagaState.RECORD_STAGED

    async def _preflight_destination(self, run: SagaRun) -> None:
        """목적지에 다른 내용의 객체가 있으면 부작용 없이 거부."""
        before, target = run.require("before", "target")
        source = before.content_location
        destination = target.content_location
        if source == destination or not await self.blobs.exists(destination):
            return

        dst_checksum = await self.blobs.checksum(destination)
        if await self.blobs.exists(source):
            src_checksum = await self.blobs.checksum(source)
            if src_checksum == dst_checksum:
                return

        raise ConflictAtDestinationError(
            ErrorCodes.DESTINATION_OCCUPIED,
            "derived location is occupied by another object",
            field="content_location",
            step="validate",
            record_id=run.request.record_id,
            destination=destination,
        )

    async def _stage_record(self, run: SagaRun) -> SagaState:
        """
        조건부 쓰기 (캡처한 version 기준).

        이동 여부는 커밋된 content_location 기준 (Approved 취소는
        relocation_required=False지만 staging으로 돌아가야 함).
        위치가 그대로면 OBJECT_RELOCATING 없이 바로 FINALIZED.
        """
        before, stamp, target = run.require("before", "stamp", "target")
        try:
            committed = await self.guard.commit(stamp, target)
        except UpdateError as e:
            run.error = e
            if isinstance(e, CompensationFailureError):
                await self._escalate(run, e)
            return self._rejected_or_failed(e)

        run.committed = committed
        run.final = committed
        if committed.content_location == before.content_location:
            return SagaState.FINALIZED
        return SagaState.OBJECT_RELOCATING

    async def _relocate(self, run: SagaRun) -> SagaState:
        """객체를 레코드 위치로 이동. 실패/timeout → 보상."""
        before, committed = run.require("before", "committed")
        source = before.content_location
        destination = committed.content_location

        try:
            result = await asyncio.wait_for(
                self.mover.move(
                    source,
                    destination,
                    record_id=run.request.record_id,
                    saga_id=run.saga_id,
                ),
                timeout=self.settings.relocation_timeout,
            )
        except TimeoutError:
            run.relocation_timed_out = True
            run.error = InfrastructureError(
                ErrorCodes.STEP_TIMEOUT,
                "object relocation timed out",
                step="relocate",
                record_id=run.request.record_id,
                source=source,
                destination=destination,
                timeout=self.settings.relocation_timeout,
            )
        else:
            if result.success:
                return SagaState.FINALIZED
            if result.error is None:
                raise RuntimeError(f"move {source} -> {destination} failed without an error")
            run.error = result.error.with_context(step="relocate")

        if isinstance(run.error, ConflictAtDestinationError):
            return SagaState.COMPENSATING

        # 실패 보고 직전에 이동이 실제로 끝났다면 되돌리지 않음
        try:
            if await self.mover.landed(source, destination):
                logger.warning(
                    f"saga {run.saga_id}: relocation reported failure but "
                    f"{destination} is the only copy; finalizing"
                )
                run.error = None
                return SagaState.FINALIZED
        except UpdateError as e:
            logger.warning(f"saga {run.saga_id}: could not check relocation outcome: {e}")

        return SagaState.COMPENSATING

    async def _compensate(self, run: SagaRun) -> SagaState:
        """
        유일한 보상 동작: 레코드를 업데이트 전 값으로 되돌림.

        2단계에서 생성된 version 기준 조건부 쓰기.
        먼저 실패한 이동이 남긴 목적지를 정리 (원본이 살아 있을 때만).
        ConflictAtDestination이면 목적지는 다른 레코드의 객체 → 건드리지 않음.
        """
        before, committed = run.require("before", "committed")
        original_error = run.error
        source = before.content_location
        destination = committed.content_location

        if isinstance(original_error, ConflictAtDestinationError):
            logger.warning(
                f"saga {run.saga_id}: {destination} is occupied by another object; "
                f"leaving it in place and rolling back the record only"
            )
        else:
            await self.mover.discard_destination(
                source,
                destination,
                record_id=run.request.record_id,
                saga_id=run.saga_id,
                late_write_possible=run.relocation_timed_out,
            )

        rollback = before.materialized()
        try:
            run.final = await self.guard.commit(
                VersionStamp.of(committed),
                rollback,
                step="compensation",
            )
        except UpdateError as e:
            failure = CompensationFailureError(
                ErrorCodes.ROLLBACK_FAILED,
                "record rollback failed; record may not reflect blob state",
                step="compensate",
                record_id=run.request.record_id,
                committed_version=committed.version,
                cause=e.code,
                original=original_error.code if original_error else None,
            )
            failure.__cause__ = e
            run.error = failure
            run.final = committed
            await self._escalate(run, failure)
            return SagaState.FAILED

        logger.warning(
            f"saga {run.saga_id}: compensated {run.request.record_id} "
            f"back to its pre-update fields (version {run.final.version})"
        )
        if original_error is not None:
            run.error = original_error.with_context(compensated=True)
        return SagaState.FAILED

    # =========================================================================
    # Terminal handling
    # =========================================================================

    @staticmethod
    def _rejected_or_failed(error: UpdateError) -> SagaState:
        if error.category in (
            ErrorCategory.INVALID_INPUT,
            ErrorCategory.TERMINAL_STATE,
            ErrorCategory.CONCURRENT_MODIFICATION,
            ErrorCategory.CONFLICT_AT_DESTINATION,
        ):
            return SagaState.REJECTED
        return SagaState.FAILED

    async def _escalate(self, run: SagaRun, error: CompensationFailureError) -> None:
        """수동 정합화 대상 기록. 절대 조용히 삼키지 않음."""
        logger.critical(
            f"saga {run.saga_id}: MANUAL RECONCILIATION REQUIRED for "
            f"{run.request.record_id}: {error}"
        )
        if self.escalations is None:
            return
        try:
            await asyncio.to_thread(
                self.escalations.record_escalation,
                error,
                record_id=run.request.record_id,
                saga_id=run.saga_id,
                before=run.before,
                attempted=run.target,
            )
        except UpdateError as e:
            logger.critical(
                f"saga {run.saga_id}: escalation ledger write failed: {e}"
            )

    async def _emit(self, run: SagaRun) -> None:
        """saga당 감사 이벤트 1건. sink 쓰기는 스레드에서 (파일 락 대기가 루프를 막지 않음)."""
        if run.state == SagaState.FINALIZED:
            (decision,) = run.require("decision")
            action = decision.action
        elif run.state == SagaState.REJECTED:
            action = AuditAction.REJECTED
        else:
            action = AuditAction.FAILED

        event = create_audit_event(
            record_id=run.request.record_id,
            action=action,
            saga_id=run.saga_id,
            old_snapshot=run.before,
            new_snapshot=run.final if run.final is not None else run.before,
            error=run.error,
            history=[s.value for s in run.history],
        )
        await asyncio.to_thread(emit_audit_event, self.audit, event)

    @staticmethod
    def _result(run: SagaRun) -> UpdateResult:
        success = run.state == SagaState.FINALIZED
        snapshot = run.final if run.final is not None else run.before
        return UpdateResult(
            success=success,
            saga_id=run.saga_id,
            state=run.state,
            snapshot=snapshot,
            error=None if success else run.error,
            history=list(run.history),
            decision=run.decision,
        )
