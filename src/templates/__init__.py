"""
Templates layer: 템플릿 업데이트 코디네이션.

역할:
- 검증된 객체 이동 (mover.py)
- 레코드 쓰기 + 객체 이동 saga (coordinator.py)
- 등록/업데이트 facade (manager.py)
"""

from .coordinator import (
    ALLOWED_TRANSITIONS,
    SagaRun,
    SagaState,
    UpdateCoordinator,
    UpdateResult,
)
from .manager import TemplateManager
from .mover import ObjectMover

__all__ = [
    # mover
    "ObjectMover",
    # coordinator
    "UpdateCoordinator",
    "UpdateResult",
    "SagaState",
    "SagaRun",
    "ALLOWED_TRANSITIONS",
    # manager
    "TemplateManager",
]
