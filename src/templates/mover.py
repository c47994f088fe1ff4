"""
객체 이동 (ObjectMover): 검증된 copy → verify → delete

보장:
- 원본 삭제는 목적지 체크섬 검증 후에만
- 어느 시점에도 원본 또는 목적지(또는 둘 다)에 올바른 내용이 존재 (0개 금지)
- 각 단계는 같은 인자로 재시도해도 멱등
- 목적지에 다른 내용이 있으면 덮어쓰지 않고 ConflictAtDestination
- 원본 삭제 실패는 이동 실패가 아님: orphan으로 큐잉 후 백그라운드 정리

copy+verify는 한 묶음으로 지수 백오프 재시도 (retryable 에러만).
"""

import asyncio
import logging
from dataclasses import dataclass

from src.core.settings import RetrySettings
from src.domain.errors import (
    ConflictAtDestinationError,
    ErrorCodes,
    InfrastructureError,
    IntegrityError,
    UpdateError,
)
from src.domain.schemas import MoveResult
from src.storage.base import BlobStore
from src.storage.ledger import OrphanQueue
from src.utils.retry import retry_with_exponential_backoff

logger = logging.getLogger(__name__)


@dataclass
class _MoveProgress:
    """move() 1회 호출의 진행 상태."""
    phase: str = "copy"
    attempts: int = 0
    resumed: bool = False
    copied: bool = False  # 이번 시도의 copy가 목적지를 썼는지


class ObjectMover:
    """
    BlobStore 위의 검증된 객체 이동기.

    사용법:
        result = await mover.move(old_location, new_location)
        if not result.success:
            ...  # result.error (UpdateError)
    """

    def __init__(
        self,
        blobs: BlobStore,
        *,
        retry: RetrySettings | None = None,
        orphans: OrphanQueue | None = None,
    ):
        """
        Args:
            blobs: BlobStore 어댑터
            retry: 재시도 설정
            orphans: 삭제 실패 객체 큐 (None이면 로그만)
        """
        self.blobs = blobs
        self.retry = retry or RetrySettings()
        self.orphans = orphans

    # =========================================================================
    # Move
    # =========================================================================

    async def move(
        self,
        source: str,
        destination: str,
        expected_checksum: str | None = None,
        *,
        record_id: str | None = None,
        saga_id: str | None = None,
    ) -> MoveResult:
        """
        source → destination 이동.

        Args:
            source: 원본 위치
            destination: 목적지 위치
            expected_checksum: 원본이 가져야 할 체크섬 (선택)
            record_id: 로그/orphan 기록용
            saga_id: 로그/orphan 기록용

        Returns:
            MoveResult (success=False면 error에 UpdateError)
        """
        if source == destination:
            return MoveResult(success=True, src=source, dst=destination, operation="noop")

        progress = _MoveProgress()
        try:
            checksum = await retry_with_exponential_backoff(
                self._copy_and_verify,
                source,
                destination,
                expected_checksum,
                progress,
                policy=self.retry,
                operation=f"move {source} -> {destination}",
            )
        except UpdateError as e:
            logger.error(
                f"Move {source} -> {destination} failed in {progress.phase} "
                f"after {progress.attempts} attempt(s): {e}"
            )
            return MoveResult(
                success=False,
                src=source,
                dst=destination,
                operation=progress.phase,
                attempts=progress.attempts,
                error=e,
            )

        if progress.resumed:
            logger.info(f"Move {source} -> {destination} was already complete")
            return MoveResult(
                success=True,
                src=source,
                dst=destination,
                checksum=checksum,
                operation="resumed",
                attempts=progress.attempts,
                source_deleted=True,
            )

        progress.phase = "delete"
        deleted = await self._delete_source(source)
        queued = False
        if not deleted:
            queued = await self._queue_orphan(
                source, "source_delete_failed", record_id, saga_id
            )

        logger.info(f"Moved {source} -> {destination} ({checksum})")
        return MoveResult(
            success=True,
            src=source,
            dst=destination,
            checksum=checksum,
            operation="delete",
            attempts=progress.attempts,
            source_deleted=deleted,
            orphan_queued=queued,
        )

    async def _copy_and_verify(
        self,
        source: str,
        destination: str,
        expected_checksum: str | None,
        progress: _MoveProgress,
    ) -> str:
        progress.attempts += 1
        progress.phase = "copy"
        progress.copied = False
        checksum = await self._copy_phase(source, destination, expected_checksum, progress)
        if progress.resumed:
            return checksum

        progress.phase = "verify"
        await self._verify_phase(source, destination, checksum, progress)
        return checksum

    # =========================================================================
    # Phases
    # =========================================================================

    async def _copy_phase(
        self,
        source: str,
        destination: str,
        expected_checksum: str | None,
        progress: _MoveProgress,
    ) -> str:
        """
        원본 체크섬 계산 후 복제. 원본 체크섬 반환.

        목적지가 이미 존재:
        - 원본과 같은 내용 → 이전 시도의 복제본, 성공으로 간주
        - 다른 내용 → ConflictAtDestination
        복제 중 다른 쓰기가 먼저 게시하면 같은 규칙 적용 (덮어쓰기 없음)
        원본이 없고 목적지에 기대 내용 존재 → 이전 시도에서 이동 완료 (resumed)
        """
        if not await self.blobs.exists(source):
            if await self.blobs.exists(destination):
                dst_checksum = await self.blobs.checksum(destination)
                if expected_checksum is None or dst_checksum == expected_checksum:
                    progress.resumed = True
                    return dst_checksum
                raise ConflictAtDestinationError(
                    ErrorCodes.DESTINATION_OCCUPIED,
                    "source is gone and destination holds different content",
                    step="copy",
                    source=source,
                    destination=destination,
                )
            raise InfrastructureError(
                ErrorCodes.OBJECT_NOT_FOUND,
                "source object does not exist",
                retryable=False,
                step="copy",
                source=source,
            )

        src_checksum = await self.blobs.checksum(source)
        if expected_checksum is not None and src_checksum != expected_checksum:
            raise IntegrityError(
                ErrorCodes.SOURCE_CHECKSUM_MISMATCH,
                "source content differs from the expected checksum",
                retryable=False,
                step="copy",
                source=source,
                expected=expected_checksum,
                actual=src_checksum,
            )

        if await self.blobs.exists(destination):
            dst_checksum = await self.blobs.checksum(destination)
            if dst_checksum == src_checksum:
                return src_checksum
            raise ConflictAtDestinationError(
                ErrorCodes.DESTINATION_OCCUPIED,
                "destination holds different content",
                step="copy",
                source=source,
                destination=destination,
            )

        try:
            await self.blobs.copy(source, destination)
        except ConflictAtDestinationError:
            # 확인 이후 다른 쓰기가 먼저 게시됨
            if await self.blobs.checksum(destination) == src_checksum:
                return src_checksum
            raise
        progress.copied = True
        return src_checksum

    async def _verify_phase(
        self,
        source: str,
        destination: str,
        src_checksum: str,
        progress: _MoveProgress,
    ) -> None:
        """
        목적지 체크섬 검증.

        불일치:
        - 이번 시도가 쓴 복제본 → 삭제 (원본이 살아 있을 때만) 후 retryable IntegrityError
        - 그 외 → 다른 쓰기가 목적지를 바꿈, 건드리지 않고 ConflictAtDestination
        """
        dst_checksum = await self.blobs.checksum(destination)
        if dst_checksum == src_checksum:
            return

        if not progress.copied:
            raise ConflictAtDestinationError(
                ErrorCodes.DESTINATION_OCCUPIED,
                "destination changed after the existence check",
                step="verify",
                source=source,
                destination=destination,
            )

        if await self.blobs.exists(source):
            await self.blobs.delete(destination)

        raise IntegrityError(
            ErrorCodes.DESTINATION_CHECKSUM_MISMATCH,
            "destination checksum does not match source",
            step="verify",
            source=source,
            destination=destination,
            expected=src_checksum,
            actual=dst_checksum,
        )

    async def _delete_source(self, source: str) -> bool:
        """검증 후 원본 삭제. 실패 시 False (이동 자체는 완료)."""
        try:
            await retry_with_exponential_backoff(
                self.blobs.delete,
                source,
                policy=self.retry,
                operation=f"delete {source}",
            )
            return True
        except UpdateError as e:
            logger.warning(
                f"Source {source} could not be deleted after verified move: {e}. "
                f"Leaving it for background cleanup."
            )
            return False

    async def _queue_orphan(
        self,
        location: str,
        reason: str,
        record_id: str | None,
        saga_id: str | None,
    ) -> bool:
        if self.orphans is None:
            logger.warning(f"No orphan queue configured; {location} needs manual cleanup")
            return False
        try:
            await asyncio.to_thread(
                self.orphans.enqueue, location, reason, record_id, saga_id
            )
            return True
        except UpdateError as e:
            logger.error(f"Failed to queue orphan {location}: {e}")
            return False

    # =========================================================================
    # Compensation support
    # =========================================================================

    async def landed(self, source: str, destination: str) -> bool:
        """
        이동이 사실상 완료되었는지 (원본 없음 + 목적지 존재).

        실패/timeout 이후 보상 전에 확인: 목적지가 유일한 복제본이면 되돌리면 안 됨.
        """
        if source == destination:
            return True
        return (
            not await self.blobs.exists(source)
            and await self.blobs.exists(destination)
        )

    async def discard_destination(
        self,
        source: str,
        destination: str,
        *,
        record_id: str | None = None,
        saga_id: str | None = None,
        late_write_possible: bool = False,
    ) -> bool:
        """
        실패한 이동이 남긴 목적지 정리.

        원본이 존재할 때만 목적지를 삭제함 (유일한 복제본은 절대 삭제하지 않음).

        Args:
            late_write_possible: timeout으로 중단된 복제가 나중에 완료될 수 있음
                → 목적지를 orphan 큐에도 등록

        Returns:
            목적지가 남아 있지 않으면 True
        """
        if source == destination:
            return True

        try:
            if not await self.blobs.exists(source):
                logger.error(
                    f"Refusing to discard {destination}: source {source} is missing"
                )
                return False

            if await self.blobs.exists(destination):
                await retry_with_exponential_backoff(
                    self.blobs.delete,
                    destination,
                    policy=self.retry,
                    operation=f"discard {destination}",
                )
                logger.info(f"Discarded partial destination {destination}")
        except UpdateError as e:
            logger.warning(f"Could not discard destination {destination}: {e}")
            await self._queue_orphan(destination, "discard_failed", record_id, saga_id)
            return False

        if late_write_possible:
            await self._queue_orphan(destination, "possible_late_write", record_id, saga_id)
        return True
