"""
설정 로드: default.yaml + 환경 변수

우선순위:
1. load_config(path) 인자
2. TEMPLATE_SAGA_CONFIG 환경 변수 (.env 지원)
3. 프로젝트 루트 default.yaml
파일이 없으면 빈 dict → 모든 값 기본값.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from src.core.paths import ObjectLayout
from src.domain.constants import DEFAULT_BUCKET_ROOT, DEFAULT_EXTENSION

CONFIG_ENV_VAR = "TEMPLATE_SAGA_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "default.yaml"


def load_config(config_path: Path | None = None) -> dict:
    """설정 파일 로드."""
    if config_path is None:
        load_dotenv()
        env_path = os.environ.get(CONFIG_ENV_VAR)
        config_path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        return {}

    with open(config_path, encoding="utf-8") as f:
        data: dict[Any, Any] = yaml.safe_load(f) or {}
        return data


@dataclass(frozen=True)
class RetrySettings:
    """지수 백오프 재시도 설정."""
    max_retries: int = 3
    initial_delay: float = 0.5
    max_delay: float = 10.0
    exponential_base: float = 2.0


@dataclass(frozen=True)
class CoordinatorSettings:
    """
    코디네이터/어댑터 설정.

    timeouts: None이면 무제한.
    """
    bucket_root: str = DEFAULT_BUCKET_ROOT
    extension: str = DEFAULT_EXTENSION

    data_dir: Path = Path("data")
    records_dir: str = "records"
    blobs_dir: str = "blobs"
    ledger_dir: str = "ledger"

    retry: RetrySettings = field(default_factory=RetrySettings)
    record_write_timeout: float | None = 5.0
    relocation_timeout: float | None = 30.0
    lock_timeout: float = 10.0

    @property
    def layout(self) -> ObjectLayout:
        return ObjectLayout(bucket_root=self.bucket_root, extension=self.extension)

    @property
    def records_path(self) -> Path:
        return self.data_dir / self.records_dir

    @property
    def blobs_path(self) -> Path:
        return self.data_dir / self.blobs_dir

    @property
    def ledger_path(self) -> Path:
        return self.data_dir / self.ledger_dir

    @classmethod
    def from_config(cls, config: dict) -> "CoordinatorSettings":
        storage = config.get("storage", {})
        retry = config.get("retry", {})
        timeouts = config.get("timeouts", {})
        locks = config.get("locks", {})

        return cls(
            bucket_root=storage.get("bucket_root", DEFAULT_BUCKET_ROOT),
            extension=storage.get("extension", DEFAULT_EXTENSION),
            data_dir=Path(storage.get("data_dir", "data")),
            records_dir=storage.get("records_dir", "records"),
            blobs_dir=storage.get("blobs_dir", "blobs"),
            ledger_dir=storage.get("ledger_dir", "ledger"),
            retry=RetrySettings(
                max_retries=int(retry.get("max_retries", 3)),
                initial_delay=float(retry.get("initial_delay", 0.5)),
                max_delay=float(retry.get("max_delay", 10.0)),
                exponential_base=float(retry.get("exponential_base", 2.0)),
            ),
            record_write_timeout=timeouts.get("record_write", 5.0),
            relocation_timeout=timeouts.get("relocation", 30.0),
            lock_timeout=float(locks.get("timeout", 10.0)),
        )
