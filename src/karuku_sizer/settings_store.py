"""ユーザー設定（既定値）の永続化ストア。"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from loguru import logger

from karuku_sizer.runtime_logging import DEFAULT_RETENTION_DAYS
from karuku_sizer.size_budget_search import DEFAULT_ITERATIONS
from karuku_sizer.validators import ValueValidator

SCHEMA_VERSION = 1
_SETTINGS_FILENAME = "settings.json"
_APP_DIR_NAME = "KarukuSizer"
CONFIG_ENV_VAR = "KARUKU_SIZER_CONFIG"

DEFAULT_RESIZE_QUALITY = 0.9


def default_settings() -> dict[str, Any]:
    """設定のデフォルト値を返す。"""
    return {
        "schema_version": SCHEMA_VERSION,
        "process_mode": "resize",
        "resize_mode": "pixels",
        "maintain_aspect_ratio": True,
        "target_unit": "KB",
        "output_format": "auto",
        "search_iterations": DEFAULT_ITERATIONS,
        "resize_quality": DEFAULT_RESIZE_QUALITY,
        "log_retention_days": DEFAULT_RETENTION_DAYS,
    }


class SettingsStore:
    """設定のロード/保存を行う。"""

    def __init__(self, settings_path: Optional[Path] = None) -> None:
        self.settings_path = settings_path or self._build_default_settings_path()

    def load(self) -> dict[str, Any]:
        """設定を読み込む。読めない場合はデフォルト値を返す。"""
        settings = default_settings()
        loaded = self._read_json(self.settings_path)
        if loaded is not None:
            settings.update(loaded)
        settings["schema_version"] = SCHEMA_VERSION
        return settings

    def save(self, settings: Mapping[str, Any]) -> None:
        """設定を保存する。"""
        payload = default_settings()
        payload.update(dict(settings))
        payload["schema_version"] = SCHEMA_VERSION

        self.settings_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.settings_path.with_suffix(f"{self.settings_path.suffix}.tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            json.dump(payload, fh, ensure_ascii=False, indent=2)
        tmp_path.replace(self.settings_path)

    def load_search_iterations(self) -> int:
        value = self.load().get("search_iterations", DEFAULT_ITERATIONS)
        try:
            iterations = int(value)
        except (TypeError, ValueError):
            logger.warning(f"search_iterations が不正なため既定値を使用: {value!r}")
            return DEFAULT_ITERATIONS
        return int(ValueValidator.clamp(iterations, "search_iterations"))

    def load_resize_quality(self) -> float:
        value = self.load().get("resize_quality", DEFAULT_RESIZE_QUALITY)
        try:
            quality = float(value)
        except (TypeError, ValueError):
            logger.warning(f"resize_quality が不正なため既定値を使用: {value!r}")
            return DEFAULT_RESIZE_QUALITY
        if quality != quality:
            return DEFAULT_RESIZE_QUALITY
        return float(ValueValidator.clamp(quality, "quality"))

    @staticmethod
    def _read_json(path: Path) -> Optional[dict[str, Any]]:
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            logger.warning(f"設定ファイルを読み込めません: {path}: {e}")
            return None
        if not isinstance(data, dict):
            return None
        return data

    @staticmethod
    def _build_default_settings_path() -> Path:
        override = os.environ.get(CONFIG_ENV_VAR)
        if override:
            return Path(override)

        if os.name == "nt":
            app_data = os.environ.get("APPDATA")
            if app_data:
                return Path(app_data) / _APP_DIR_NAME / _SETTINGS_FILENAME
            return Path.home() / ".karukusizer" / _SETTINGS_FILENAME

        config_home = os.environ.get("XDG_CONFIG_HOME")
        if config_home:
            return Path(config_home) / "karukusizer" / _SETTINGS_FILENAME
        return Path.home() / ".config" / "karukusizer" / _SETTINGS_FILENAME
