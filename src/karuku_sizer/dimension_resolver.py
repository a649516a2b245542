"""出力寸法（幅・高さ・倍率）の相互計算。

最後に編集されたフィールドだけを基準に他の値を導出する。
導出元以外のフィールドから再計算はしないので、値が振動しない。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Tuple, Union

from loguru import logger

from karuku_sizer.errors import ValidationError
from karuku_sizer.validators import ValueValidator

ResizeMode = Literal["pixels", "percentage"]

_RESIZE_MODES = ("pixels", "percentage")


@dataclass(frozen=True)
class OriginalImage:
    width: int
    height: int
    size_bytes: int
    mime_type: str
    file_name: str = ""

    def __post_init__(self) -> None:
        for name in ("width", "height", "size_bytes"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValidationError(f"{name} は正の整数である必要があります: {value!r}")

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height


@dataclass(frozen=True)
class ResizeIntent:
    resize_mode: ResizeMode
    width: int
    height: int
    percentage: float
    maintain_aspect_ratio: bool


def round_dimension(value: float) -> int:
    """ピクセル値を整数へ丸める（最小1）"""
    return max(1, int(round(value)))


class DimensionResolver:
    """幅・高さ・倍率の整合を保つ"""

    def __init__(self, original: OriginalImage) -> None:
        self.reset(original)

    @property
    def original(self) -> OriginalImage:
        return self._original

    @property
    def aspect_ratio(self) -> float:
        return self._original.aspect_ratio

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def percentage(self) -> float:
        return self._percentage

    @property
    def resize_mode(self) -> ResizeMode:
        return self._resize_mode

    @property
    def maintain_aspect_ratio(self) -> bool:
        return self._maintain_aspect_ratio

    def reset(self, original: OriginalImage) -> None:
        """新しい元画像で状態を初期化する"""
        self._original = original
        self._resize_mode = "pixels"
        self._maintain_aspect_ratio = True
        self._width = original.width
        self._height = original.height
        self._percentage = 100.0
        logger.debug(f"寸法をリセット: {original.width}x{original.height}")

    def set_width(self, new_width: Union[int, float, str, None]) -> bool:
        """幅を編集する。適用された場合は True"""
        if self._resize_mode != "pixels":
            logger.debug(f"倍率モード中の幅編集を無視: {new_width!r}")
            return False
        value = ValueValidator.coerce_positive(new_width)
        if value is None:
            return False

        self._width = round_dimension(value)
        if self._maintain_aspect_ratio:
            self._height = round_dimension(self._width / self.aspect_ratio)
        self._percentage = self._percentage_from_width(self._width)
        return True

    def set_height(self, new_height: Union[int, float, str, None]) -> bool:
        """高さを編集する。適用された場合は True"""
        if self._resize_mode != "pixels":
            logger.debug(f"倍率モード中の高さ編集を無視: {new_height!r}")
            return False
        value = ValueValidator.coerce_positive(new_height)
        if value is None:
            return False

        self._height = round_dimension(value)
        if self._maintain_aspect_ratio:
            self._width = round_dimension(self._height * self.aspect_ratio)
            # 倍率は常に幅を基準にする
            self._percentage = self._percentage_from_width(self._width)
        return True

    def set_percentage(self, new_percentage: Union[int, float, str, None]) -> bool:
        """倍率（%）を編集する。1-500に丸めて幅・高さを導出する"""
        if self._resize_mode != "percentage":
            logger.debug(f"ピクセルモード中の倍率編集を無視: {new_percentage!r}")
            return False
        value = ValueValidator.coerce_positive(new_percentage)
        if value is None:
            return False

        self._percentage = ValueValidator.clamp_percentage(value)
        scale = self._percentage / 100
        self._width = round_dimension(self._original.width * scale)
        self._height = round_dimension(self._original.height * scale)
        return True

    def toggle_aspect_lock(self, locked: bool) -> None:
        """縦横比ロックを切り替える。現在値は変更しない"""
        self._maintain_aspect_ratio = bool(locked)

    def switch_resize_mode(self, mode: str) -> None:
        if mode not in _RESIZE_MODES:
            raise ValidationError(f"不明なリサイズモード: {mode!r}")
        if mode == self._resize_mode:
            return
        self._resize_mode = mode  # type: ignore[assignment]
        if mode == "percentage":
            self._percentage = ValueValidator.clamp_percentage(self._percentage_from_width(self._width))
        logger.debug(f"リサイズモード変更: {mode} ({self._width}x{self._height}, {self._percentage}%)")

    def output_dimensions(self) -> Tuple[int, int]:
        return self._width, self._height

    def snapshot(self) -> ResizeIntent:
        return ResizeIntent(
            resize_mode=self._resize_mode,
            width=self._width,
            height=self._height,
            percentage=self._percentage,
            maintain_aspect_ratio=self._maintain_aspect_ratio,
        )

    def _percentage_from_width(self, width: int) -> float:
        return float(round(width / self._original.width * 100))

