"""
원자적 쓰기 + 파일 락

파일시스템 안정성 (best-effort):
- 중간 상태 없음: temp → rename
- fsync로 가능한 환경에서 내구성 강화 (파일 + 디렉토리)
- fsync 실패 시 경고 남기고 계속 진행
- 락 timeout → InfrastructureError(LOCK_TIMEOUT)
"""

import json
import logging
import os
import shutil
import tempfile
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from filelock import FileLock, Timeout

from src.domain.errors import ErrorCodes, InfrastructureError

logger = logging.getLogger(__name__)


# =============================================================================
# Lock
# =============================================================================

@contextmanager
def file_lock(lock_file: Path, timeout: float) -> Generator[None, None, None]:
    """
    락 파일 기반 상호 배제 (단일 연산 범위에서만 사용).

    Raises:
        InfrastructureError: LOCK_TIMEOUT
    """
    lock_file.parent.mkdir(parents=True, exist_ok=True)
    lock = FileLock(lock_file, timeout=timeout)

    try:
        lock.acquire()
    except Timeout as e:
        raise InfrastructureError(
            ErrorCodes.LOCK_TIMEOUT,
            f"Failed to acquire lock '{lock_file.name}'",
            lock_file=str(lock_file),
            timeout=timeout,
        ) from e

    try:
        yield
    finally:
        lock.release()


# =============================================================================
# Atomic Write
# =============================================================================

def _fsync_dir(dir_path: Path) -> None:
    """
    디렉토리 fsync (가능한 환경에서).

    rename 후 디렉토리 엔트리까지 내구성을 강화하려면 필요.
    """
    try:
        dir_fd = os.open(str(dir_path), os.O_RDONLY | os.O_DIRECTORY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
    except (OSError, AttributeError) as e:
        logger.warning(
            f"Directory fsync failed for {dir_path}: {e}. "
            f"Rename durability may not be guaranteed."
        )


@contextmanager
def _atomic_target(path: Path, overwrite: bool = True) -> Generator[Any, None, None]:
    """
    path 옆 temp 파일에 쓰고 성공 시 게시. 실패 시 temp 정리.

    overwrite=False: os.link로 게시 (이미 있으면 FileExistsError, 기존 파일 보존)
    """
    dir_path = path.parent
    dir_path.mkdir(parents=True, exist_ok=True)

    temp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb",
            dir=dir_path,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            temp_path = Path(f.name)
            yield f
            f.flush()  # Python 버퍼 → OS 버퍼
            try:
                os.fsync(f.fileno())  # OS 버퍼 → 디스크
            except OSError as e:
                logger.warning(
                    f"File fsync failed for {path}: {e}. "
                    f"Data may not be durable on power loss."
                )

        if overwrite:
            os.replace(temp_path, path)  # 원자적
        else:
            os.link(temp_path, path)  # 원자적, 덮어쓰기 없음
            temp_path.unlink()
        _fsync_dir(dir_path)

    except BaseException:
        if temp_path and temp_path.exists():
            try:
                temp_path.unlink()
            except OSError:
                pass
        raise


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """원자적 바이트 쓰기."""
    with _atomic_target(path) as f:
        f.write(data)


def atomic_copy_file(src: Path, dst: Path) -> None:
    """
    원자적 파일 복제.

    dst에는 완전한 복제본만 나타남 (부분 복제 노출 없음).
    dst가 이미 있으면 덮어쓰지 않고 FileExistsError.
    """
    with open(src, "rb") as source, _atomic_target(dst, overwrite=False) as target:
        shutil.copyfileobj(source, target)


def atomic_write_json(path: Path, data: dict) -> None:
    """원자적 JSON 쓰기."""
    payload = json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")
    atomic_write_bytes(path, payload)
