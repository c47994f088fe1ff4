"""
해시 계산: 객체 체크섬

규칙:
- SHA-256
- 포맷: "sha256:<hex>" (알고리즘 명시, 비교 시 문자열 동등성만 사용)
- 파일은 청크 단위로 읽음 (대용량 템플릿 대비)
"""

import hashlib
from pathlib import Path

from src.domain.constants import CHECKSUM_ALGORITHM


def format_checksum(hex_digest: str, algorithm: str = CHECKSUM_ALGORITHM) -> str:
    return f"{algorithm}:{hex_digest}"


def compute_bytes_hash(data: bytes, algorithm: str = CHECKSUM_ALGORITHM) -> str:
    """
    바이트 내용의 체크섬.

    Args:
        data: 내용
        algorithm: 해시 알고리즘 (기본: sha256)

    Returns:
        "sha256:<hex>"
    """
    h = hashlib.new(algorithm)
    h.update(data)
    return format_checksum(h.hexdigest(), algorithm)


def compute_file_hash(file_path: Path, algorithm: str = CHECKSUM_ALGORITHM) -> str:
    """
    파일 체크섬 계산.

    Args:
        file_path: 파일 경로
        algorithm: 해시 알고리즘 (기본: sha256)

    Returns:
        "sha256:<hex>"
    """
    h = hashlib.new(algorithm)
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return format_checksum(h.hexdigest(), algorithm)
