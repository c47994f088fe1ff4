"""
Error definitions for the update-coordination engine.

규칙:
- 조용한 실패 금지 → UpdateError 계열로 명시적 실패
- 모든 에러는 category + code + context(field/step) 포함
- 호출자가 "즉시 재시도 / 나중에 재시도 / 재시도 금지 / 수동 개입"을 구분 가능해야 함
- CompensationFailure만 escalate 대상 (기록과 blob 상태 불일치 가능성)
"""

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """에러 분류 (taxonomy)."""
    INVALID_INPUT = "InvalidInput"
    TERMINAL_STATE = "TerminalState"
    CONCURRENT_MODIFICATION = "ConcurrentModification"
    CONFLICT_AT_DESTINATION = "ConflictAtDestination"
    INTEGRITY_ERROR = "IntegrityError"
    INFRASTRUCTURE_ERROR = "InfrastructureError"
    COMPENSATION_FAILURE = "CompensationFailure"


class RetryAdvice(str, Enum):
    """호출자용 재시도 가이드."""
    RETRY_IMMEDIATELY = "retry_immediately"  # 최신 레코드 재로드 후 즉시
    RETRY_LATER = "retry_later"              # 인프라 복구 후
    DO_NOT_RETRY = "do_not_retry"            # 입력 수정 필요
    ESCALATE = "escalate"                    # 운영자 수동 정합화


# 카테고리별 기본 재시도 가능 여부
_DEFAULT_RETRYABLE = {
    ErrorCategory.INVALID_INPUT: False,
    ErrorCategory.TERMINAL_STATE: False,
    ErrorCategory.CONCURRENT_MODIFICATION: False,
    ErrorCategory.CONFLICT_AT_DESTINATION: False,
    ErrorCategory.INTEGRITY_ERROR: True,
    ErrorCategory.INFRASTRUCTURE_ERROR: True,
    ErrorCategory.COMPENSATION_FAILURE: False,
}


class UpdateError(Exception):
    """
    업데이트 코디네이션 에러의 기반 클래스.

    Usage:
        raise InvalidInputError(ErrorCodes.EMPTY_BUSINESS_UNITS, field="business_units")

    Attributes:
        category: ErrorCategory
        code: 세부 에러 코드 (ErrorCodes)
        context: field, step 등 구조화된 상세 정보
        retryable: 코디네이터 내부 재시도 대상 여부
    """

    category: ErrorCategory = ErrorCategory.INFRASTRUCTURE_ERROR

    def __init__(
        self,
        code: str,
        message: str = "",
        *,
        retryable: bool | None = None,
        **context: Any,
    ) -> None:
        self.code = code
        self.message = message
        self.context = context
        if retryable is None:
            retryable = _DEFAULT_RETRYABLE[self.category]
        self.retryable = retryable
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = [f"[{self.category.value}:{self.code}]"]
        if self.message:
            parts.append(self.message)
        if self.context:
            parts.append(", ".join(f"{k}={v!r}" for k, v in self.context.items()))
        return " ".join(parts)

    @property
    def field(self) -> str | None:
        return self.context.get("field")

    @property
    def step(self) -> str | None:
        return self.context.get("step")

    @property
    def retry_advice(self) -> RetryAdvice:
        if self.category == ErrorCategory.COMPENSATION_FAILURE:
            return RetryAdvice.ESCALATE
        if self.category == ErrorCategory.CONCURRENT_MODIFICATION:
            return RetryAdvice.RETRY_IMMEDIATELY
        if self.retryable:
            return RetryAdvice.RETRY_LATER
        return RetryAdvice.DO_NOT_RETRY

    def with_context(self, **context: Any) -> "UpdateError":
        """context를 추가한 동일 에러 반환 (원본 불변)."""
        clone = type(self)(
            self.code,
            self.message,
            retryable=self.retryable,
            **{**self.context, **context},
        )
        clone.__cause__ = self.__cause__
        return clone

    def to_dict(self) -> dict[str, Any]:
        """로그/JSON 직렬화용."""
        return {
            "category": self.category.value,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "retry_advice": self.retry_advice.value,
            **{k: _jsonable(v) for k, v in self.context.items()},
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return str(value)


class InvalidInputError(UpdateError):
    """필드 형식 오류. 상태 변경 없이 즉시 실패."""
    category = ErrorCategory.INVALID_INPUT


class TerminalStateError(UpdateError):
    """Canceled 레코드에 대한 변경 요청."""
    category = ErrorCategory.TERMINAL_STATE


class ConcurrentModificationError(UpdateError):
    """낙관적 락 경합 패배. 최신 레코드로 재시도 필요."""
    category = ErrorCategory.CONCURRENT_MODIFICATION


class ConflictAtDestinationError(UpdateError):
    """목적지 경로에 다른 내용의 객체가 이미 존재."""
    category = ErrorCategory.CONFLICT_AT_DESTINATION


class IntegrityError(UpdateError):
    """체크섬 불일치."""
    category = ErrorCategory.INTEGRITY_ERROR


class InfrastructureError(UpdateError):
    """저장소/전송 계층 장애."""
    category = ErrorCategory.INFRASTRUCTURE_ERROR


class CompensationFailureError(UpdateError):
    """
    보상(rollback) 자체의 실패.

    레코드가 실제 blob 상태를 반영하지 않을 수 있음 → 수동 정합화 필요.
    """
    category = ErrorCategory.COMPENSATION_FAILURE


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCodes:
    """에러 코드 상수."""

    # === Input ===
    EMPTY_BUSINESS_UNITS = "EMPTY_BUSINESS_UNITS"
    DUPLICATE_BUSINESS_UNIT = "DUPLICATE_BUSINESS_UNIT"
    INVALID_CODE = "INVALID_CODE"
    INVALID_TIMESTAMP = "INVALID_TIMESTAMP"
    INVALID_STATUS_REQUEST = "INVALID_STATUS_REQUEST"
    CANCEL_WITH_EDITS = "CANCEL_WITH_EDITS"
    NO_CHANGES = "NO_CHANGES"
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"
    TEMPLATE_EXISTS = "TEMPLATE_EXISTS"

    # === Lifecycle ===
    TEMPLATE_CANCELED = "TEMPLATE_CANCELED"

    # === Concurrency ===
    VERSION_CONFLICT = "VERSION_CONFLICT"
    STALE_EXPECTED_VERSION = "STALE_EXPECTED_VERSION"

    # === Object relocation ===
    DESTINATION_OCCUPIED = "DESTINATION_OCCUPIED"
    SOURCE_CHECKSUM_MISMATCH = "SOURCE_CHECKSUM_MISMATCH"
    DESTINATION_CHECKSUM_MISMATCH = "DESTINATION_CHECKSUM_MISMATCH"
    OBJECT_NOT_FOUND = "OBJECT_NOT_FOUND"

    # === Infrastructure ===
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    STEP_TIMEOUT = "STEP_TIMEOUT"
    LOCK_TIMEOUT = "LOCK_TIMEOUT"
    RECORD_CORRUPT = "RECORD_CORRUPT"

    # === Compensation ===
    ROLLBACK_FAILED = "ROLLBACK_FAILED"
    AMBIGUOUS_WRITE_UNRESOLVED = "AMBIGUOUS_WRITE_UNRESOLVED"
