"""
저장소 어댑터 추상 인터페이스.

코어는 이 좁은 인터페이스로만 외부 저장소를 호출함.
- RecordStore: 관계형 레코드 (조건부 쓰기 = 유일한 상호 배제 수단)
- BlobStore: 경로 주소 기반 객체 저장소
- AuditSink: terminal outcome 이벤트 수신자 (fire-and-forget)

모든 blob 연산은 같은 인자로 재시도해도 멱등이어야 함.
어댑터는 전송/IO 오류를 InfrastructureError로 변환해서 던짐.
"""

from abc import ABC, abstractmethod

from src.domain.schemas import (
    AuditEvent,
    MaterializedFields,
    TemplateSnapshot,
    WriteOutcome,
)


class RecordStore(ABC):
    """관계형 저장소 어댑터."""

    @abstractmethod
    async def load_by_id(self, record_id: str) -> TemplateSnapshot:
        """
        레코드 로드.

        Raises:
            InvalidInputError: TEMPLATE_NOT_FOUND
            InfrastructureError: 저장소 장애
        """

    @abstractmethod
    async def conditional_update(
        self,
        record_id: str,
        expected_version: int,
        new_fields: MaterializedFields,
    ) -> WriteOutcome:
        """
        version이 expected_version일 때만 쓰기.

        Returns:
            WriteCommitted(version + 1 스냅샷) 또는 VersionConflict

        Raises:
            InfrastructureError: 쓰기가 적용되지 않았음이 확실한 장애
        """

    @abstractmethod
    async def insert(self, snapshot: TemplateSnapshot) -> TemplateSnapshot:
        """
        신규 레코드 삽입.

        Raises:
            InvalidInputError: TEMPLATE_EXISTS
        """

    @abstractmethod
    async def list_records(self) -> list[TemplateSnapshot]:
        """전체 레코드 (orphan 정리 시 안전 확인용)."""


class BlobStore(ABC):
    """객체 저장소 어댑터."""

    @abstractmethod
    async def copy(self, src: str, dst: str) -> None:
        """
        src 객체를 dst로 복제. dst를 덮어쓰지 않음.

        Raises:
            ConflictAtDestinationError: dst에 이미 객체가 있음
            InfrastructureError: OBJECT_NOT_FOUND (retryable=False), 전송 장애
        """

    @abstractmethod
    async def checksum(self, location: str) -> str:
        """
        객체 체크섬.

        Raises:
            InfrastructureError: OBJECT_NOT_FOUND (retryable=False)
        """

    @abstractmethod
    async def delete(self, location: str) -> None:
        """객체 삭제. 없으면 no-op."""

    @abstractmethod
    async def exists(self, location: str) -> bool:
        """객체 존재 여부."""

    @abstractmethod
    async def put(self, location: str, data: bytes) -> None:
        """객체 쓰기 (등록 시 최초 업로드)."""

    @abstractmethod
    async def get(self, location: str) -> bytes:
        """객체 읽기."""

    @abstractmethod
    async def list_locations(self, prefix: str = "") -> list[str]:
        """prefix 아래 모든 객체 위치."""


class AuditSink(ABC):
    """감사 이벤트 수신자."""

    @abstractmethod
    def emit(self, event: AuditEvent) -> None:
        """이벤트 전달. 실패는 호출자 결과에 영향 없음."""
