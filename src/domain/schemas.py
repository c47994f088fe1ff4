"""
Data schemas for the update-coordination engine.

규칙:
- 레코드 스냅샷은 불변 (frozen dataclass)
- derived_name / content_location은 materialized view: 직접 설정 금지,
  항상 materialize_fields()로 재계산된 값만 기록
- created_at은 생성 시 1회 고정, 어떤 업데이트에서도 변경 불가
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

# =============================================================================
# Lifecycle
# =============================================================================

class TemplateStatus(str, Enum):
    """템플릿 상태. 닫힌 집합, Canceled는 terminal."""
    PENDING_APPROVAL = "PendingApproval"
    APPROVED = "Approved"
    CANCELED = "Canceled"

    @property
    def is_terminal(self) -> bool:
        return self is TemplateStatus.CANCELED


# =============================================================================
# Record Schemas
# =============================================================================

@dataclass(frozen=True)
class TemplateFields:
    """이름/경로 파생의 입력이 되는 1차 필드."""
    business_units: tuple[str, ...]
    template_type: str
    status: TemplateStatus
    created_at: datetime


@dataclass(frozen=True)
class MaterializedFields:
    """
    conditional_update에 전달되는 필드 묶음.

    1차 필드 + 파생 필드. materialize_fields()만 생성.
    """
    business_units: tuple[str, ...]
    template_type: str
    status: TemplateStatus
    derived_name: str
    content_location: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "business_units": list(self.business_units),
            "template_type": self.template_type,
            "status": self.status.value,
            "derived_name": self.derived_name,
            "content_location": self.content_location,
        }


@dataclass(frozen=True)
class TemplateSnapshot:
    """
    템플릿 레코드 스냅샷 (관계형 저장소 소유).

    version은 커밋된 조건부 쓰기마다 정확히 1 증가.
    """
    id: str
    business_units: tuple[str, ...]
    template_type: str
    status: TemplateStatus
    created_at: datetime
    derived_name: str
    content_location: str
    version: int = 0
    updated_at: str = ""

    @property
    def fields(self) -> TemplateFields:
        return TemplateFields(
            business_units=self.business_units,
            template_type=self.template_type,
            status=self.status,
            created_at=self.created_at,
        )

    def materialized(self) -> MaterializedFields:
        """현재 값 그대로의 MaterializedFields (보상 쓰기용)."""
        return MaterializedFields(
            business_units=self.business_units,
            template_type=self.template_type,
            status=self.status,
            derived_name=self.derived_name,
            content_location=self.content_location,
        )

    def matches(self, values: MaterializedFields) -> bool:
        """레코드가 주어진 필드 값을 담고 있는지."""
        return self.materialized() == values

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "business_units": list(self.business_units),
            "template_type": self.template_type,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "derived_name": self.derived_name,
            "content_location": self.content_location,
            "version": self.version,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TemplateSnapshot":
        return cls(
            id=data["id"],
            business_units=tuple(data["business_units"]),
            template_type=data["template_type"],
            status=TemplateStatus(data["status"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            derived_name=data["derived_name"],
            content_location=data["content_location"],
            version=int(data.get("version", 0)),
            updated_at=data.get("updated_at", ""),
        )


# =============================================================================
# Conditional Write Outcome (tagged)
# =============================================================================

@dataclass(frozen=True)
class WriteCommitted:
    """조건부 쓰기 성공."""
    snapshot: TemplateSnapshot


@dataclass(frozen=True)
class VersionConflict:
    """조건부 쓰기 실패: 저장된 version이 기대값과 다름."""
    expected_version: int
    current_version: int


WriteOutcome = WriteCommitted | VersionConflict


# =============================================================================
# Update Request / Decision
# =============================================================================

@dataclass(frozen=True)
class FieldChanges:
    """
    요청된 변경 사항.

    None = 변경 요청 없음.
    status는 APPROVED / CANCELED만 요청 가능.
    content_changed: 외부 업로드 협력자가 새 내용을 수락했음을 알림.
    """
    business_units: tuple[str, ...] | None = None
    template_type: str | None = None
    status: TemplateStatus | None = None
    content_changed: bool = False


@dataclass(frozen=True)
class UpdateRequest:
    """코디네이터 입력."""
    record_id: str
    changes: FieldChanges
    expected_version: int | None = None  # 호출자가 읽은 version (선택)


class AuditAction(str, Enum):
    """감사 이벤트 액션."""
    UPDATED = "Updated"
    APPROVED = "Approved"
    CANCELED = "Canceled"
    REJECTED = "Rejected"
    FAILED = "Failed"


@dataclass(frozen=True)
class TransitionDecision:
    """
    TransitionPolicy 결과.

    rejected가 설정되면 나머지 필드는 의미 없음.
    """
    new_status: TemplateStatus
    name_changed: bool = False
    relocation_required: bool = False
    rejected: Exception | None = None
    action: AuditAction = AuditAction.UPDATED
    proposed: TemplateFields | None = None

    @property
    def is_rejected(self) -> bool:
        return self.rejected is not None


# =============================================================================
# Object Relocation
# =============================================================================

@dataclass
class MoveResult:
    """
    ObjectMover.move() 결과.

    보장: 원본 삭제는 목적지 검증 후에만.
    source_deleted=False + orphan_queued=True → 원본은 정리 대기 중인 orphan.
    """
    success: bool
    src: str
    dst: str
    checksum: str | None = None
    operation: str | None = None  # copy, verify, delete, noop, resumed
    attempts: int = 0
    source_deleted: bool = False
    orphan_queued: bool = False
    error: Exception | None = None


# =============================================================================
# Audit
# =============================================================================

@dataclass
class AuditEvent:
    """
    terminal outcome당 1개 발행되는 구조화 이벤트.

    전달은 fire-and-forget. 내구성은 audit 협력자의 책임.
    """
    event_id: str
    record_id: str
    action: AuditAction
    timestamp: str
    saga_id: str
    old_snapshot: TemplateSnapshot | None = None
    new_snapshot: TemplateSnapshot | None = None
    error: dict[str, Any] | None = None
    history: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "record_id": self.record_id,
            "action": self.action.value,
            "timestamp": self.timestamp,
            "saga_id": self.saga_id,
            "old_snapshot": self.old_snapshot.to_dict() if self.old_snapshot else None,
            "new_snapshot": self.new_snapshot.to_dict() if self.new_snapshot else None,
            "error": self.error,
            "history": list(self.history),
        }
