"""
test_ids.py - ID 생성 테스트

DoD:
- template_id / saga_id / event_id 고유성: 매 호출 시 다른 값
- ID 포맷 검증
"""

import re
from datetime import datetime

from src.core.ids import (
    generate_event_id,
    generate_saga_id,
    generate_template_id,
    utc_now_iso,
)


class TestGenerateTemplateId:
    """generate_template_id 함수 테스트."""

    def test_format(self):
        assert re.fullmatch(r"TPL-[0-9a-f]{12}", generate_template_id())

    def test_unique(self):
        ids = {generate_template_id() for _ in range(100)}

        assert len(ids) == 100


class TestGenerateSagaId:
    """generate_saga_id 함수 테스트."""

    def test_format(self):
        assert re.fullmatch(r"SAGA-\d{14}-[0-9a-f]{8}", generate_saga_id())

    def test_unique(self):
        assert generate_saga_id() != generate_saga_id()


class TestGenerateEventId:
    """generate_event_id 함수 테스트."""

    def test_format(self):
        assert re.fullmatch(r"EVT-\d{14}-[0-9a-f]{8}", generate_event_id())


def test_utc_now_iso_is_aware():
    parsed = datetime.fromisoformat(utc_now_iso())

    assert parsed.utcoffset() is not None
    assert parsed.utcoffset().total_seconds() == 0
