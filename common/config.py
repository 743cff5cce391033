"""
설정 로드 모듈

config/ 디렉토리의 YAML 파일을 읽어 하나의 dict로 병합합니다.
디렉토리는 EMBEDFILL_CONFIG_DIR 환경변수로 변경할 수 있습니다.
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "EMBEDFILL_CONFIG_DIR"
DEFAULT_CONFIG_DIR = Path(__file__).parent.parent / "config"

CONFIG_FILES = (
    "database.yaml",
    "queue.yaml",
    "scheduler.yaml",
    "worker.yaml",
    "client.yaml",
    "logging.yaml",
)


def get_config_dir() -> Path:
    """설정 디렉토리 경로"""
    env_dir = os.environ.get(CONFIG_DIR_ENV)
    return Path(env_dir) if env_dir else DEFAULT_CONFIG_DIR


def load_config(config_dir: Path | str | None = None) -> dict[str, Any]:
    """
    설정 파일 로드 및 병합

    Args:
        config_dir: 설정 디렉토리 (None이면 환경변수 또는 기본 경로)

    Returns:
        최상위 키(databases, queue, scheduler, worker, client, logging) 병합 dict
    """
    config_path = Path(config_dir) if config_dir else get_config_dir()
    config: dict[str, Any] = {}

    for file_name in CONFIG_FILES:
        file_path = config_path / file_name
        if not file_path.exists():
            logger.debug(f"Config file not found, skipped: {file_path}")
            continue
        with open(file_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        config.update(data)

    return config
