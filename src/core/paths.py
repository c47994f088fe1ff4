"""
경로 결정 (PathResolver): business_units + status + name → content_location

포맷: {bucket_root}/{unit_segment}/{status_segment}/{name}.{extension}

- PendingApproval, Canceled → staging
- Approved → approved
- Canceled는 staging을 재사용: 취소는 객체를 이동시키지 않음
"""

from collections.abc import Sequence
from dataclasses import dataclass

from src.core.naming import (
    derive_template_name,
    join_business_units,
    validate_business_units,
)
from src.domain.constants import (
    APPROVED_SEGMENT,
    DEFAULT_BUCKET_ROOT,
    DEFAULT_EXTENSION,
    STAGING_SEGMENT,
)
from src.domain.schemas import MaterializedFields, TemplateFields, TemplateStatus

STATUS_SEGMENTS = {
    TemplateStatus.PENDING_APPROVAL: STAGING_SEGMENT,
    TemplateStatus.APPROVED: APPROVED_SEGMENT,
    TemplateStatus.CANCELED: STAGING_SEGMENT,
}


def status_segment(status: TemplateStatus) -> str:
    return STATUS_SEGMENTS[TemplateStatus(status)]


def resolve_content_location(
    business_units: Sequence[str],
    status: TemplateStatus,
    name: str,
    *,
    bucket_root: str = DEFAULT_BUCKET_ROOT,
    extension: str = DEFAULT_EXTENSION,
) -> str:
    """
    객체 위치 계산.

    Args:
        business_units: 유닛 코드 목록 (NameDeriver와 동일 규칙으로 결합)
        status: 템플릿 상태
        name: derived_name
        bucket_root: 버킷 루트 prefix
        extension: 파일 확장자 (점 제외)

    Returns:
        예: templates/COMMERCIAL/staging/COMMERCIAL_EMAIL_2024-11-15T10-30-15.html
    """
    units = validate_business_units(business_units)
    ext = extension.lstrip(".")
    return "/".join([
        bucket_root.strip("/"),
        join_business_units(units),
        status_segment(status),
        f"{name}.{ext}",
    ])


@dataclass(frozen=True)
class ObjectLayout:
    """bucket_root/extension 설정을 묶은 PathResolver."""
    bucket_root: str = DEFAULT_BUCKET_ROOT
    extension: str = DEFAULT_EXTENSION

    def resolve(
        self,
        business_units: Sequence[str],
        status: TemplateStatus,
        name: str,
    ) -> str:
        return resolve_content_location(
            business_units,
            status,
            name,
            bucket_root=self.bucket_root,
            extension=self.extension,
        )


def materialize_fields(fields: TemplateFields, layout: ObjectLayout) -> MaterializedFields:
    """
    1차 필드로부터 파생 필드를 재계산.

    derived_name / content_location을 만드는 유일한 경로.
    """
    name = derive_template_name(fields.business_units, fields.template_type, fields.created_at)
    return MaterializedFields(
        business_units=tuple(fields.business_units),
        template_type=fields.template_type,
        status=fields.status,
        derived_name=name,
        content_location=layout.resolve(fields.business_units, fields.status, name),
    )
