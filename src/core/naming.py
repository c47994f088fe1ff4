"""
이름 파생 (NameDeriver): business_units + template_type + created_at → derived_name

규칙:
- 순수 함수, 결정론적 (동일 입력 → 동일 이름)
- 유닛 대문자화 후 주어진 순서대로 "_" 결합
- 타입 대문자화
- created_at: 초 단위, 정렬 가능, 시간대 모호성 없음 (UTC 정규화는 호출자 책임)
- 잘못된 입력은 InvalidInputError로 즉시 실패

결정론이 핵심: 코디네이터는 이 함수의 재계산 결과로 rename 필요 여부를 판단함.
"""

import re
from collections.abc import Sequence
from datetime import datetime, timedelta

from src.domain.constants import CODE_PATTERN, CREATED_AT_FORMAT, NAME_SEPARATOR
from src.domain.errors import ErrorCodes, InvalidInputError

_CODE_RE = re.compile(CODE_PATTERN)


# =============================================================================
# Validation
# =============================================================================

def validate_code(value: str, field: str) -> None:
    """
    유닛/타입 코드 검증.

    Raises:
        InvalidInputError: INVALID_CODE
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(
            ErrorCodes.INVALID_CODE,
            f"{field} must be a non-empty code",
            field=field,
        )
    if not _CODE_RE.fullmatch(value):
        raise InvalidInputError(
            ErrorCodes.INVALID_CODE,
            f"{field} may only contain letters, digits and '-'",
            field=field,
            value=value,
            pattern=CODE_PATTERN,
        )


def validate_business_units(business_units: Sequence[str]) -> tuple[str, ...]:
    """
    business_units 검증 후 tuple로 반환.

    - 비어 있으면 안 됨
    - 각 코드 형식 검증
    - 중복 금지 (대소문자 무시: 이름에서 대문자화되므로)

    Raises:
        InvalidInputError: EMPTY_BUSINESS_UNITS, INVALID_CODE, DUPLICATE_BUSINESS_UNIT
    """
    if isinstance(business_units, str) or not business_units:
        raise InvalidInputError(
            ErrorCodes.EMPTY_BUSINESS_UNITS,
            "business_units must be a non-empty list of unit codes",
            field="business_units",
        )

    seen: set[str] = set()
    for unit in business_units:
        validate_code(unit, "business_units")
        key = unit.upper()
        if key in seen:
            raise InvalidInputError(
                ErrorCodes.DUPLICATE_BUSINESS_UNIT,
                f"business unit '{unit}' appears more than once",
                field="business_units",
                unit=unit,
            )
        seen.add(key)

    return tuple(business_units)


def validate_created_at(created_at: datetime) -> datetime:
    """
    created_at 검증.

    naive → 이미 정규화된 값으로 간주.
    aware → UTC offset 0만 허용 (변환하지 않음).
    """
    if not isinstance(created_at, datetime):
        raise InvalidInputError(
            ErrorCodes.INVALID_TIMESTAMP,
            "created_at must be a datetime",
            field="created_at",
        )
    offset = created_at.utcoffset()
    if offset is not None and offset != timedelta(0):
        raise InvalidInputError(
            ErrorCodes.INVALID_TIMESTAMP,
            "created_at must be normalized to UTC",
            field="created_at",
            offset=str(offset),
        )
    return created_at


# =============================================================================
# Derivation
# =============================================================================

def join_business_units(business_units: Sequence[str]) -> str:
    """
    유닛 세그먼트 생성. NameDeriver와 PathResolver가 공유.

    예: ["Commercial", "gbd"] → "COMMERCIAL_GBD"
    """
    return NAME_SEPARATOR.join(unit.upper() for unit in business_units)


def format_created_at(created_at: datetime) -> str:
    """예: 2024-11-15 10:30:15.123 → 2024-11-15T10-30-15"""
    return created_at.strftime(CREATED_AT_FORMAT)


def derive_template_name(
    business_units: Sequence[str],
    template_type: str,
    created_at: datetime,
) -> str:
    """
    템플릿 이름 파생.

    포맷: {UNITS}_{TYPE}_{YYYY-MM-DDTHH-MM-SS}

    Args:
        business_units: 순서 있는 유닛 코드 목록 (비어 있으면 안 됨)
        template_type: 분류 코드
        created_at: UTC 정규화된 생성 시각

    Returns:
        derived_name

    Raises:
        InvalidInputError: 입력 형식 오류
    """
    units = validate_business_units(business_units)
    validate_code(template_type, "template_type")
    validate_created_at(created_at)

    return NAME_SEPARATOR.join([
        join_business_units(units),
        template_type.upper(),
        format_created_at(created_at),
    ])
