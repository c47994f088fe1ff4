"""
Domain Constants: 엔진 전역 상수.

이름/경로 규칙 등 파생 필드 계산에 쓰이는 값들.
NameDeriver와 PathResolver가 같은 값을 공유해야 두 결과가 어긋나지 않음.
"""

# =============================================================================
# Name Derivation (이름 파생 규칙)
# =============================================================================
# {UNIT1}_{UNIT2}_{TYPE}_{YYYY-MM-DDTHH-MM-SS}
# 예: COMMERCIAL_EMAIL_2024-11-15T10-30-15

NAME_SEPARATOR = "_"
CREATED_AT_FORMAT = "%Y-%m-%dT%H-%M-%S"

# 유닛/타입 코드 허용 문자 (구분자, 경로 문자 금지)
CODE_PATTERN = r"^[A-Za-z0-9-]+$"

# =============================================================================
# Object Layout (객체 경로 규칙)
# =============================================================================
# {bucket_root}/{unit_segment}/{status_segment}/{name}.{extension}
# 예: templates/COMMERCIAL/staging/COMMERCIAL_EMAIL_2024-11-15T10-30-15.html

STAGING_SEGMENT = "staging"
APPROVED_SEGMENT = "approved"

DEFAULT_BUCKET_ROOT = "templates"
DEFAULT_EXTENSION = "html"

# =============================================================================
# Local Storage Layout (로컬 어댑터 디렉토리 구조)
# =============================================================================
# data/
# ├── records/<template_id>.json
# ├── blobs/<bucket_root>/...
# └── ledger/
#     ├── orphans.json
#     ├── escalations.json
#     └── audit.jsonl

RECORD_SUFFIX = ".json"
LOCKS_DIR = ".locks"
ORPHANS_FILENAME = "orphans.json"
ESCALATIONS_FILENAME = "escalations.json"
AUDIT_LOG_FILENAME = "audit.jsonl"

# =============================================================================
# ID Prefixes
# =============================================================================

TEMPLATE_ID_PREFIX = "TPL-"
SAGA_ID_PREFIX = "SAGA-"
EVENT_ID_PREFIX = "EVT-"

# =============================================================================
# Checksum
# =============================================================================

CHECKSUM_ALGORITHM = "sha256"
