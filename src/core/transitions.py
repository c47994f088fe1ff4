"""
상태 전이 정책 (TransitionPolicy): 현재 스냅샷 + 요청 변경 → TransitionDecision

규칙 (순서대로 평가, 정확히 이 표대로):
1. 현재 Canceled → TerminalState로 거부. 이후 규칙 평가 없음.
2. PendingApproval에서 Approved 요청, 다른 필드 변경 없음
   → Approved, name_changed=False, relocation_required=True (staging → approved)
3. Canceled 요청 → Canceled, name_changed=False, relocation_required=False
4. 그 외 (필드 변경, Approved 레코드의 변경 포함)
   → Approved였으면 PendingApproval로 강등, 아니면 PendingApproval 유지
   → name_changed: 기존 이름 vs 제안된 units/type + 불변 created_at으로 재계산한 이름
   → relocation_required = name_changed OR units 변경 OR 상태 변경

요청 형태 검증 (규칙 1 이후):
- 변경 사항 없음 → NO_CHANGES
- PendingApproval은 요청 대상 상태가 아님
- 취소 + 필드 변경 동시 요청 → CANCEL_WITH_EDITS (편집이 조용히 버려지지 않도록)
- 승인 + 필드 변경 → 규칙 4 (편집 우선)
"""

from src.core.naming import derive_template_name, validate_business_units, validate_code
from src.domain.errors import (
    ErrorCodes,
    InvalidInputError,
    TerminalStateError,
    UpdateError,
)
from src.domain.schemas import (
    AuditAction,
    FieldChanges,
    TemplateFields,
    TemplateSnapshot,
    TemplateStatus,
    TransitionDecision,
)

_REQUESTABLE_STATUSES = (TemplateStatus.APPROVED, TemplateStatus.CANCELED)


def _reject(current: TemplateSnapshot, error: UpdateError) -> TransitionDecision:
    return TransitionDecision(
        new_status=current.status,
        rejected=error,
        action=AuditAction.REJECTED,
    )


def _proposed_values(
    current: TemplateSnapshot,
    changes: FieldChanges,
) -> tuple[tuple[str, ...], str]:
    """변경 요청을 반영한 units/type (검증 포함)."""
    units = current.business_units
    if changes.business_units is not None:
        units = validate_business_units(changes.business_units)

    template_type = current.template_type
    if changes.template_type is not None:
        validate_code(changes.template_type, "template_type")
        template_type = changes.template_type

    return units, template_type


def evaluate_transition(
    current: TemplateSnapshot,
    changes: FieldChanges,
) -> TransitionDecision:
    """
    전이 결정.

    순수 함수. 예외를 던지지 않고 거부 사유를 decision.rejected에 담아 반환.

    Args:
        current: 현재 레코드 스냅샷
        changes: 요청된 변경

    Returns:
        TransitionDecision
    """
    # 규칙 1: terminal
    if current.status.is_terminal:
        return _reject(
            current,
            TerminalStateError(
                ErrorCodes.TEMPLATE_CANCELED,
                "canceled templates accept no further changes",
                field="status",
                record_id=current.id,
            ),
        )

    try:
        units, template_type = _proposed_values(current, changes)
    except InvalidInputError as e:
        return _reject(current, e)

    units_changed = units != current.business_units
    type_changed = template_type != current.template_type
    has_edits = units_changed or type_changed or changes.content_changed

    requested = changes.status
    if requested is not None and requested not in _REQUESTABLE_STATUSES:
        return _reject(
            current,
            InvalidInputError(
                ErrorCodes.INVALID_STATUS_REQUEST,
                f"status '{TemplateStatus(requested).value}' cannot be requested",
                field="status",
            ),
        )

    if not has_edits and (requested is None or requested == current.status):
        return _reject(
            current,
            InvalidInputError(
                ErrorCodes.NO_CHANGES,
                "request does not change the template",
                field="changes",
            ),
        )

    # 규칙 2: 승인
    if (
        requested == TemplateStatus.APPROVED
        and current.status == TemplateStatus.PENDING_APPROVAL
        and not has_edits
    ):
        return TransitionDecision(
            new_status=TemplateStatus.APPROVED,
            name_changed=False,
            relocation_required=True,
            action=AuditAction.APPROVED,
            proposed=TemplateFields(
                business_units=current.business_units,
                template_type=current.template_type,
                status=TemplateStatus.APPROVED,
                created_at=current.created_at,
            ),
        )

    # 규칙 3: 취소
    if requested == TemplateStatus.CANCELED:
        if has_edits:
            return _reject(
                current,
                InvalidInputError(
                    ErrorCodes.CANCEL_WITH_EDITS,
                    "cancellation cannot be combined with field changes",
                    field="status",
                ),
            )
        return TransitionDecision(
            new_status=TemplateStatus.CANCELED,
            name_changed=False,
            relocation_required=False,
            action=AuditAction.CANCELED,
            proposed=TemplateFields(
                business_units=current.business_units,
                template_type=current.template_type,
                status=TemplateStatus.CANCELED,
                created_at=current.created_at,
            ),
        )

    # 규칙 4: 필드 변경 (Approved는 강등)
    new_status = TemplateStatus.PENDING_APPROVAL
    try:
        new_name = derive_template_name(units, template_type, current.created_at)
    except InvalidInputError as e:
        return _reject(current, e)

    name_changed = new_name != current.derived_name
    relocation_required = (
        name_changed or units_changed or current.status != new_status
    )

    return TransitionDecision(
        new_status=new_status,
        name_changed=name_changed,
        relocation_required=relocation_required,
        action=AuditAction.UPDATED,
        proposed=TemplateFields(
            business_units=units,
            template_type=template_type,
            status=new_status,
            created_at=current.created_at,
        ),
    )
