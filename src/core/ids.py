"""
ID 생성: template_id, saga_id, event_id

규칙:
- template_id 수정 금지 (레코드 수명 동안 고정)
- saga_id는 업데이트 요청마다 새로 발급
"""

import uuid
from datetime import UTC, datetime

from src.domain.constants import EVENT_ID_PREFIX, SAGA_ID_PREFIX, TEMPLATE_ID_PREFIX


def _timestamp() -> str:
    return datetime.now(UTC).strftime("%Y%m%d%H%M%S")


def generate_template_id() -> str:
    """
    Template ID 생성.

    고유성 보장: UUID v4
    포맷: TPL-{uuid hex 12}
    """
    return f"{TEMPLATE_ID_PREFIX}{uuid.uuid4().hex[:12]}"


def generate_saga_id() -> str:
    """
    Saga ID 생성.

    포맷: SAGA-{timestamp}-{uuid[:8]}
    """
    return f"{SAGA_ID_PREFIX}{_timestamp()}-{uuid.uuid4().hex[:8]}"


def generate_event_id() -> str:
    """포맷: EVT-{timestamp}-{uuid[:8]}"""
    return f"{EVENT_ID_PREFIX}{_timestamp()}-{uuid.uuid4().hex[:8]}"


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()
