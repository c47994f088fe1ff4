"""
레코드 불변식 검사.

1. derived_name == NameDeriver(business_units, template_type, created_at)
2. content_location == PathResolver(business_units, status, derived_name)
3. content_location에 객체 존재 (expected_checksum 주어지면 내용 일치)
4. 이전 위치들에 객체 없음
(5. Canceled 이후 변경 불가는 TransitionPolicy가 보장)
"""

from collections.abc import Iterable
from typing import TYPE_CHECKING

from src.core.naming import derive_template_name
from src.core.paths import ObjectLayout
from src.domain.errors import UpdateError
from src.domain.schemas import TemplateSnapshot

if TYPE_CHECKING:
    from src.storage.base import BlobStore


def check_derived_fields(snapshot: TemplateSnapshot, layout: ObjectLayout) -> list[str]:
    """불변식 1, 2 (순수)."""
    violations = []
    try:
        expected_name = derive_template_name(
            snapshot.business_units, snapshot.template_type, snapshot.created_at
        )
    except UpdateError as e:
        return [f"record fields cannot derive a name: {e}"]

    if snapshot.derived_name != expected_name:
        violations.append(
            f"derived_name {snapshot.derived_name!r} != expected {expected_name!r}"
        )

    expected_location = layout.resolve(
        snapshot.business_units, snapshot.status, snapshot.derived_name
    )
    if snapshot.content_location != expected_location:
        violations.append(
            f"content_location {snapshot.content_location!r} != expected {expected_location!r}"
        )
    return violations


async def check_invariants(
    snapshot: TemplateSnapshot,
    blobs: "BlobStore",
    layout: ObjectLayout,
    previous_locations: Iterable[str] = (),
    expected_checksum: str | None = None,
) -> list[str]:
    """
    레코드 + blob 상태의 불변식 위반 목록.

    Args:
        snapshot: 검사할 레코드
        blobs: BlobStore
        layout: PathResolver 설정
        previous_locations: 이전에 유효했던 위치들
        expected_checksum: 최신 수락 내용의 체크섬 (선택)

    Returns:
        위반 설명 목록 (비어 있으면 정상)
    """
    violations = check_derived_fields(snapshot, layout)

    if not await blobs.exists(snapshot.content_location):
        violations.append(f"no object at content_location {snapshot.content_location!r}")
    elif expected_checksum is not None:
        actual = await blobs.checksum(snapshot.content_location)
        if actual != expected_checksum:
            violations.append(
                f"object at {snapshot.content_location!r} has checksum {actual}, "
                f"expected {expected_checksum}"
            )

    for location in previous_locations:
        if location == snapshot.content_location:
            continue
        if await blobs.exists(location):
            violations.append(f"object still present at previous location {location!r}")

    return violations
