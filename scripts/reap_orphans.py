#!/usr/bin/env python3
"""
reap_orphans.py - orphan 객체 정리 스크립트

ledger/orphans.json 대기열의 각 객체에 대해:
1. 어떤 레코드의 content_location이면 → 삭제하지 않고 대기열에서 제거 (사용 중)
2. 이미 없으면 → 대기열에서 제거
3. 그 외 → 삭제 후 대기열에서 제거 (실패 시 대기열에 남김)

대기열에 들어오는 경우:
- source_delete_failed: 검증된 이동 후 원본 삭제 실패
- discard_failed: 실패한 이동의 목적지 정리 실패
- possible_late_write: timeout된 복제가 나중에 완료되었을 수 있는 목적지

사용법:
    # 기본 실행 (dry-run)
    uv run python scripts/reap_orphans.py

    # 실제 삭제
    uv run python scripts/reap_orphans.py --execute

    # 설정 파일 지정
    uv run python scripts/reap_orphans.py --config custom.yaml --execute

    # cron 예시 (매시 정각)
    0 * * * * cd /path/to/project && uv run python scripts/reap_orphans.py --execute >> /var/log/reap_orphans.log 2>&1
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.core.settings import CoordinatorSettings, load_config  # noqa: E402
from src.domain.constants import ORPHANS_FILENAME  # noqa: E402
from src.domain.errors import UpdateError  # noqa: E402
from src.storage.base import BlobStore, RecordStore  # noqa: E402
from src.storage.blobs import LocalBlobStore  # noqa: E402
from src.storage.ledger import OrphanQueue  # noqa: E402
from src.storage.records import JsonRecordStore  # noqa: E402

# 로깅 설정
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@dataclass
class ReapResult:
    """Reap 결과."""
    scanned: int = 0
    reaped: int = 0
    skipped_referenced: int = 0
    already_gone: int = 0
    cleared_entries: int = 0
    errors: list[str] = field(default_factory=list)


async def reap_orphans(
    records: RecordStore,
    blobs: BlobStore,
    queue: OrphanQueue,
    execute: bool,
) -> ReapResult:
    """
    대기열의 orphan 정리.

    Args:
        records: 참조 여부 확인용 RecordStore
        blobs: 삭제 대상 BlobStore
        queue: OrphanQueue
        execute: False면 dry-run (삭제/대기열 변경 없음)

    Returns:
        ReapResult
    """
    result = ReapResult()
    entries = await asyncio.to_thread(queue.pending)
    if not entries:
        logger.info("정리할 orphan 없음")
        return result

    referenced = {r.content_location for r in await records.list_records()}
    resolved: set[str] = set()

    for entry in entries:
        result.scanned += 1
        location = entry["location"]
        entry_id = entry["entry_id"]

        if location in referenced:
            result.skipped_referenced += 1
            resolved.add(entry_id)
            logger.info(f"사용 중 (삭제 안 함): {location}")
            continue

        if not await blobs.exists(location):
            result.already_gone += 1
            resolved.add(entry_id)
            continue

        if not execute:
            logger.info(f"[DRY-RUN] 삭제 예정: {location} ({entry.get('reason')})")
            result.reaped += 1
            continue

        try:
            await blobs.delete(location)
        except UpdateError as e:
            result.errors.append(f"삭제 실패 {location}: {e}")
            logger.error(f"삭제 실패 {location}: {e}")
            continue

        result.reaped += 1
        resolved.add(entry_id)
        logger.info(f"삭제됨: {location} ({entry.get('reason')})")

    if execute:
        result.cleared_entries = await asyncio.to_thread(queue.remove, resolved)

    return result


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="orphan 객체 정리 스크립트",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--execute",
        action="store_true",
        help="실제 삭제 실행 (기본: dry-run)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="설정 파일 경로 (기본: TEMPLATE_SAGA_CONFIG 또는 default.yaml)",
    )

    args = parser.parse_args(argv)

    config_path = Path(args.config) if args.config else None
    if config_path is not None and not config_path.exists():
        logger.error(f"설정 파일 없음: {config_path}")
        return 1

    settings = CoordinatorSettings.from_config(load_config(config_path))
    records = JsonRecordStore(settings.records_path, settings.lock_timeout)
    blobs = LocalBlobStore(settings.blobs_path)
    queue = OrphanQueue(settings.ledger_path / ORPHANS_FILENAME, settings.lock_timeout)

    if not args.execute:
        logger.info("=" * 50)
        logger.info("DRY-RUN 모드 (실제 삭제 없음)")
        logger.info("실제 실행: --execute 옵션 추가")
        logger.info("=" * 50)

    try:
        result = asyncio.run(reap_orphans(records, blobs, queue, args.execute))
    except UpdateError as e:
        logger.error(f"orphan 정리 실패: {e}")
        return 1

    # 결과 출력
    logger.info("=" * 50)
    logger.info("Reap 결과:")
    logger.info(f"  스캔: {result.scanned} entries")
    logger.info(f"  정리: {result.reaped} objects")
    logger.info(f"  사용 중: {result.skipped_referenced}, 이미 없음: {result.already_gone}")
    if args.execute:
        logger.info(f"  대기열에서 제거: {result.cleared_entries} entries")
    if result.errors:
        logger.warning(f"  에러: {len(result.errors)}개")
        for err in result.errors[:5]:  # 최대 5개만 출력
            logger.warning(f"    - {err}")

    return 0 if not result.errors else 1


if __name__ == "__main__":
    sys.exit(main())
