"""
Core layer: 결정론적 핵심 모듈.

이 모듈만 건드리면 레코드/객체 불일치 → 가장 보수적으로 관리

역할:
- 이름 파생, 경로 결정, 상태 전이 정책 (순수 함수)
- 해시, ID
- 동시성 가드 / 감사 이벤트 / 불변식 검사는 각 모듈에서 직접 import
  (storage 계층과의 순환 import 방지)
"""

from .hashing import compute_bytes_hash, compute_file_hash
from .ids import generate_event_id, generate_saga_id, generate_template_id
from .naming import derive_template_name, join_business_units
from .paths import ObjectLayout, materialize_fields, resolve_content_location
from .transitions import evaluate_transition

__all__ = [
    # naming
    "derive_template_name",
    "join_business_units",
    # paths
    "resolve_content_location",
    "materialize_fields",
    "ObjectLayout",
    # transitions
    "evaluate_transition",
    # hashing
    "compute_bytes_hash",
    "compute_file_hash",
    # ids
    "generate_template_id",
    "generate_saga_id",
    "generate_event_id",
]
