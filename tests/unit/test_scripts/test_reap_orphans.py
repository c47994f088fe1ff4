"""
test_reap_orphans.py - reap_orphans.py 스크립트 테스트

테스트 케이스:
- TC1: dry-run 모드 (실제 삭제 / 대기열 변경 없음)
- TC2: --execute 삭제 + 대기열 정리
- TC3: 레코드가 참조 중인 위치는 삭제하지 않음
- TC4: 이미 없는 객체 / 삭제 실패
- TC5: main() CLI
"""

import sys
from pathlib import Path

import pytest
import yaml

# scripts 모듈 임포트를 위한 경로 추가
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent / "scripts"))

from reap_orphans import ReapResult, main, reap_orphans

ORPHAN = "templates/COMMERCIAL/staging/COMMERCIAL_EMAIL_2024-11-15T10-30-15.html"


@pytest.fixture
def queued_orphan(orphan_queue, blob_store):
    """삭제 대상 orphan 1개를 대기열에 등록."""

    async def _queue(location: str = ORPHAN, content: bytes = b"<html/>") -> str:
        await blob_store.put(location, content)
        orphan_queue.enqueue(location, "source_delete_failed", "TPL-1", "SAGA-1")
        return location

    return _queue


# =============================================================================
# TC1: dry-run
# =============================================================================

class TestDryRun:
    """dry-run 모드 테스트."""

    @pytest.mark.asyncio
    async def test_nothing_deleted(self, record_store, blob_store, orphan_queue, queued_orphan):
        location = await queued_orphan()

        result = await reap_orphans(record_store, blob_store, orphan_queue, execute=False)

        assert result.scanned == 1
        assert result.reaped == 1
        assert result.cleared_entries == 0
        assert await blob_store.exists(location)
        assert len(orphan_queue.pending()) == 1

    @pytest.mark.asyncio
    async def test_empty_queue(self, record_store, blob_store, orphan_queue):
        result = await reap_orphans(record_store, blob_store, orphan_queue, execute=True)

        assert result == ReapResult()


# =============================================================================
# TC2: 실행
# =============================================================================

class TestExecute:
    """--execute 테스트."""

    @pytest.mark.asyncio
    async def test_deletes_and_clears(self, record_store, blob_store, orphan_queue, queued_orphan):
        location = await queued_orphan()

        result = await reap_orphans(record_store, blob_store, orphan_queue, execute=True)

        assert result.reaped == 1
        assert result.cleared_entries == 1
        assert not await blob_store.exists(location)
        assert orphan_queue.pending() == []


# =============================================================================
# TC3: 참조 중인 위치
# =============================================================================

class TestReferenced:
    """레코드가 가리키는 객체는 보존."""

    @pytest.mark.asyncio
    async def test_referenced_location_kept(
        self, record_store, blob_store, orphan_queue, registered
    ):
        orphan_queue.enqueue(registered.content_location, "possible_late_write")

        result = await reap_orphans(record_store, blob_store, orphan_queue, execute=True)

        assert result.skipped_referenced == 1
        assert result.reaped == 0
        assert await blob_store.exists(registered.content_location)
        assert orphan_queue.pending() == []


# =============================================================================
# TC4: 이미 없음 / 삭제 실패
# =============================================================================

class TestEdgeCases:
    """엣지 케이스."""

    @pytest.mark.asyncio
    async def test_already_gone(self, record_store, blob_store, orphan_queue):
        orphan_queue.enqueue(ORPHAN, "possible_late_write")

        result = await reap_orphans(record_store, blob_store, orphan_queue, execute=True)

        assert result.already_gone == 1
        assert result.cleared_entries == 1

    @pytest.mark.asyncio
    async def test_delete_failure_keeps_entry(
        self, record_store, blob_store, orphan_queue, queued_orphan
    ):
        location = await queued_orphan()
        blob_store.fail_delete_locations = {location}

        result = await reap_orphans(record_store, blob_store, orphan_queue, execute=True)

        assert result.reaped == 0
        assert len(result.errors) == 1
        assert result.cleared_entries == 0
        assert [e["location"] for e in orphan_queue.pending()] == [location]


# =============================================================================
# TC5: CLI
# =============================================================================

class TestMain:
    """main() 테스트."""

    @pytest.fixture
    def config_file(self, tmp_path: Path, settings) -> Path:
        path = tmp_path / "reap.yaml"
        config = {"storage": {"data_dir": str(settings.data_dir)}}
        path.write_text(yaml.safe_dump(config), encoding="utf-8")
        return path

    def test_missing_config(self, tmp_path: Path):
        assert main(["--config", str(tmp_path / "none.yaml")]) == 1

    def test_dry_run(self, config_file: Path, orphan_queue):
        orphan_queue.enqueue(ORPHAN, "discard_failed")

        assert main(["--config", str(config_file)]) == 0

        assert len(orphan_queue.pending()) == 1

    def test_execute(self, config_file: Path, orphan_queue):
        orphan_queue.enqueue(ORPHAN, "discard_failed")

        assert main(["--config", str(config_file), "--execute"]) == 0

        assert orphan_queue.pending() == []
