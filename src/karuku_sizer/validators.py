"""
入力値検証のためのユーティリティモジュール
"""
import math
from typing import Optional, Union

from karuku_sizer.errors import ValidationError

Number = Union[int, float]

BYTES_PER_UNIT = {
    "KB": 1024,
    "MB": 1024 * 1024,
}


class ValueValidator:
    """数値検証クラス"""

    LIMITS = {
        "width": (1, 100000),
        "height": (1, 100000),
        "percentage": (1, 500),
        "quality": (0.0, 1.0),
        "search_iterations": (1, 30),
    }

    @classmethod
    def coerce_positive(cls, value: Union[Number, str, None]) -> Optional[float]:
        """フォーム入力を正の有限数に変換する。変換できない場合は None。

        入力途中の空文字やNaNは例外にせず None を返す。
        """
        if value is None or isinstance(value, bool):
            return None

        if isinstance(value, str):
            value = value.strip()
            if not value:
                return None
            try:
                value = float(value)
            except ValueError:
                return None

        if not isinstance(value, (int, float)):
            return None

        if not math.isfinite(value) or value <= 0:
            return None

        return float(value)

    @classmethod
    def clamp(cls, value: Number, mode: str) -> Number:
        """LIMITS の範囲に丸める"""
        min_val, max_val = cls.LIMITS[mode]
        return max(min_val, min(max_val, value))

    @classmethod
    def clamp_percentage(cls, value: Number) -> float:
        return float(cls.clamp(value, "percentage"))

    @classmethod
    def validate_quality(cls, value: Number) -> float:
        """品質値（0.0-1.0）を検証"""
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ValidationError(f"品質値が数値ではありません: {value!r}")
        min_val, max_val = cls.LIMITS["quality"]
        if not min_val <= value <= max_val:
            raise ValidationError(f"品質値は{min_val}から{max_val}の範囲で指定してください: {value}")
        return float(value)


def validate_target_size(value: Union[Number, str, None], unit: str = "KB") -> int:
    """目標サイズを検証してバイト数を返す"""
    unit_key = unit.upper() if isinstance(unit, str) else unit
    if unit_key not in BYTES_PER_UNIT:
        raise ValidationError(f"サイズの単位は KB または MB を指定してください: {unit}")

    size = ValueValidator.coerce_positive(value)
    if size is None:
        raise ValidationError(f"目標サイズは正の数値を入力してください: {value!r}")

    target_bytes = int(size * BYTES_PER_UNIT[unit_key])
    if target_bytes <= 0:
        raise ValidationError(f"目標サイズが小さすぎます: {value}{unit_key}")
    return target_bytes
