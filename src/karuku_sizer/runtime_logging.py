"""ログ出力の設定と、実行結果サマリーの記録。

CLI 1回の実行につき、詳細ログを `karuku-sizer_<日時>.log` に、
結果の要約を `runs.jsonl` に1行ずつ追記する。古いファイルの削除は
loguru の retention に任せる。
"""

from __future__ import annotations

import json
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Optional

from loguru import logger

DEFAULT_RETENTION_DAYS = 30
LOG_DIR_ENV_VAR = "KARUKU_SIZER_LOG_DIR"
RUN_LOG_PATTERN = "karuku-sizer_{time:YYYYMMDD_HHmmss}.log"
RUN_SUMMARY_FILENAME = "runs.jsonl"

_SUMMARY_KEY = "run_summary"


def _is_summary(record) -> bool:
    return _SUMMARY_KEY in record["extra"]


def _is_not_summary(record) -> bool:
    return _SUMMARY_KEY not in record["extra"]


def resolve_log_dir(settings_path: Path, env: Optional[Mapping[str, str]] = None) -> Path:
    """ログの保存先。環境変数の指定がなければ設定ファイルと同じ場所の logs/"""
    resolved_env = os.environ if env is None else env
    override = resolved_env.get(LOG_DIR_ENV_VAR)
    if override:
        return Path(override)
    return settings_path.parent / "logs"


def setup_logging(
    console_level: str = "INFO",
    *,
    log_dir: Optional[Path] = None,
    file_level: str = "DEBUG",
    retention_days: int = DEFAULT_RETENTION_DAYS,
) -> None:
    """ロギングの設定を行います

    log_dir を省略した場合はコンソール出力のみ。
    """
    logger.remove()  # デフォルト設定を削除
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{function}</cyan>: <white>{message}</white>",
        colorize=True,
        level=console_level,
        filter=_is_not_summary,
    )
    if log_dir is None:
        return

    log_dir.mkdir(parents=True, exist_ok=True)
    retention = f"{max(1, int(retention_days))} days"
    logger.add(
        str(log_dir / RUN_LOG_PATTERN),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {function}: {message}",
        level=file_level,
        retention=retention,
        encoding="utf-8",
        filter=_is_not_summary,
    )
    logger.add(
        str(log_dir / RUN_SUMMARY_FILENAME),
        format="{message}",
        level="INFO",
        rotation="1 MB",
        retention=retention,
        encoding="utf-8",
        filter=_is_summary,
    )
    logger.debug(f"ログ出力先: {log_dir}")


def log_run_summary(payload: Mapping[str, Any]) -> None:
    """実行結果を1行のJSONとしてサマリーログへ送る"""
    record = {"finished_at": datetime.now().isoformat(timespec="seconds")}
    record.update(payload)
    logger.bind(**{_SUMMARY_KEY: True}).info(json.dumps(record, ensure_ascii=False))
