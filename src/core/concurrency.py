"""
동시성 가드 (ConcurrencyGuard): 버전 기반 낙관적 동시성 제어

규칙:
- 프로세스 내 공유 락 없음. version-stamped 조건부 쓰기가 유일한 상호 배제 수단
- 같은 version에 대한 동시 쓰기는 정확히 하나만 성공, 나머지는 ConcurrentModification
- 자동 병합 금지: 호출자가 최신 레코드로 재시도
- 쓰기 timeout은 결과 모호 → 재조회로 판정 (결과를 모르는 쓰기를 맹목적으로 재시도하지 않음)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from src.core.settings import RetrySettings
from src.domain.errors import (
    CompensationFailureError,
    ConcurrentModificationError,
    ErrorCodes,
    InfrastructureError,
    UpdateError,
)
from src.domain.schemas import (
    MaterializedFields,
    TemplateSnapshot,
    VersionConflict,
    WriteCommitted,
    WriteOutcome,
)
from src.utils.retry import retry_with_exponential_backoff

if TYPE_CHECKING:
    from src.storage.base import RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VersionStamp:
    """로드 시점에 캡처한 record version."""
    record_id: str
    version: int

    @classmethod
    def of(cls, snapshot: TemplateSnapshot) -> "VersionStamp":
        return cls(record_id=snapshot.id, version=snapshot.version)


def detect_conflict(stamp: VersionStamp, current: TemplateSnapshot) -> bool:
    """캡처 이후 다른 쓰기가 커밋되었는지."""
    return current.version != stamp.version


@dataclass
class _CommitAttempt:
    """commit() 1회 호출 동안의 상태."""
    stamp: VersionStamp
    new_fields: MaterializedFields
    step: str
    ambiguous: bool = False


class ConcurrencyGuard:
    """
    RecordStore 위의 낙관적 동시성 가드.

    사용법:
        snapshot, stamp = await guard.load(record_id)
        committed = await guard.commit(stamp, new_fields)
    """

    def __init__(
        self,
        store: "RecordStore",
        *,
        retry: RetrySettings | None = None,
        write_timeout: float | None = None,
    ):
        """
        Args:
            store: RecordStore 어댑터
            retry: InfrastructureError 재시도 설정
            write_timeout: 조건부 쓰기 1회 timeout (초, None이면 무제한)
        """
        self.store = store
        self.retry = retry or RetrySettings()
        self.write_timeout = write_timeout

    # =========================================================================
    # Load
    # =========================================================================

    async def load(self, record_id: str) -> tuple[TemplateSnapshot, VersionStamp]:
        """레코드 로드 + version 캡처."""
        snapshot = await retry_with_exponential_backoff(
            self.store.load_by_id,
            record_id,
            policy=self.retry,
            operation=f"load:{record_id}",
        )
        return snapshot, VersionStamp.of(snapshot)

    @staticmethod
    def check_expected(stamp: VersionStamp, expected_version: int | None) -> None:
        """
        호출자가 제시한 version과 로드된 version 비교.

        Raises:
            ConcurrentModificationError: STALE_EXPECTED_VERSION
        """
        if expected_version is None or expected_version == stamp.version:
            return
        raise ConcurrentModificationError(
            ErrorCodes.STALE_EXPECTED_VERSION,
            "record changed since the caller read it",
            field="version",
            record_id=stamp.record_id,
            expected_version=expected_version,
            current_version=stamp.version,
        )

    # =========================================================================
    # Commit
    # =========================================================================

    async def commit(
        self,
        stamp: VersionStamp,
        new_fields: MaterializedFields,
        *,
        step: str = "record_write",
    ) -> TemplateSnapshot:
        """
        stamp.version 조건부 쓰기.

        Returns:
            커밋된 스냅샷 (version = stamp.version + 1)

        Raises:
            ConcurrentModificationError: 다른 쓰기가 먼저 커밋됨
            InfrastructureError: 재시도 소진
            CompensationFailureError: timeout 후 재조회로도 결과 판정 불가
        """
        attempt = _CommitAttempt(stamp=stamp, new_fields=new_fields, step=step)
        return await retry_with_exponential_backoff(
            self._attempt_commit,
            attempt,
            policy=self.retry,
            operation=f"{step}:{stamp.record_id}",
        )

    async def _attempt_commit(self, attempt: _CommitAttempt) -> TemplateSnapshot:
        stamp = attempt.stamp
        try:
            outcome = await asyncio.wait_for(
                self.store.conditional_update(
                    stamp.record_id, stamp.version, attempt.new_fields
                ),
                timeout=self.write_timeout,
            )
        except TimeoutError:
            attempt.ambiguous = True
            return await self._resolve_ambiguous(attempt)

        return await self._unwrap(attempt, outcome)

    async def _unwrap(self, attempt: _CommitAttempt, outcome: WriteOutcome) -> TemplateSnapshot:
        if isinstance(outcome, WriteCommitted):
            return outcome.snapshot

        if not isinstance(outcome, VersionConflict):
            raise TypeError(f"unexpected write outcome for {attempt.stamp.record_id}: {outcome!r}")

        # 이전 시도의 timeout된 쓰기가 뒤늦게 반영된 경우
        if attempt.ambiguous and outcome.current_version == attempt.stamp.version + 1:
            current = await self._reread(attempt)
            if current.version == attempt.stamp.version + 1 and current.matches(attempt.new_fields):
                logger.info(
                    f"{attempt.step}: earlier timed-out write on {attempt.stamp.record_id} "
                    f"landed as version {current.version}"
                )
                return current

        raise ConcurrentModificationError(
            ErrorCodes.VERSION_CONFLICT,
            "record was modified by a concurrent update",
            field="version",
            step=attempt.step,
            record_id=attempt.stamp.record_id,
            expected_version=outcome.expected_version,
            current_version=outcome.current_version,
        )

    async def _reread(self, attempt: _CommitAttempt) -> TemplateSnapshot:
        try:
            return await retry_with_exponential_backoff(
                self.store.load_by_id,
                attempt.stamp.record_id,
                policy=self.retry,
                operation=f"reread:{attempt.stamp.record_id}",
            )
        except UpdateError as e:
            raise CompensationFailureError(
                ErrorCodes.AMBIGUOUS_WRITE_UNRESOLVED,
                "could not determine whether a timed-out write was applied",
                step="resolve_ambiguous_write",
                record_id=attempt.stamp.record_id,
                expected_version=attempt.stamp.version,
                cause=e.code,
            ) from e

    async def _resolve_ambiguous(self, attempt: _CommitAttempt) -> TemplateSnapshot:
        """
        timeout된 조건부 쓰기의 실제 결과 판정.

        - version+1 이고 필드 일치 → 이미 반영됨, 그대로 진행
        - version 그대로 → 미반영, 재시도 안전 (retryable InfrastructureError)
        - 그 외 → 다른 쓰기가 이김
        """
        stamp = attempt.stamp
        logger.warning(
            f"{attempt.step}: conditional write on {stamp.record_id} timed out "
            f"after {self.write_timeout}s; re-reading to determine outcome"
        )
        current = await self._reread(attempt)

        if current.version == stamp.version + 1 and current.matches(attempt.new_fields):
            logger.info(f"{attempt.step}: timed-out write on {stamp.record_id} had landed")
            return current

        if current.version == stamp.version:
            raise InfrastructureError(
                ErrorCodes.STEP_TIMEOUT,
                "conditional write timed out and was not applied",
                step=attempt.step,
                record_id=stamp.record_id,
                timeout=self.write_timeout,
            )

        raise ConcurrentModificationError(
            ErrorCodes.VERSION_CONFLICT,
            "record was modified by a concurrent update",
            field="version",
            step=attempt.step,
            record_id=stamp.record_id,
            expected_version=stamp.version,
            current_version=current.version,
        )
