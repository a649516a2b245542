"""目標ファイルサイズに収まる最大品質を二分探索で求める。

エンコード結果のサイズは品質に対して単調非減少であることを前提にする。
ロスレス形式（PNG）は品質とサイズの関係がないため探索対象外。
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Callable, Optional, Tuple, Union

from loguru import logger

from karuku_sizer.errors import SearchCancelledError, UnsupportedOperationError, ValidationError
from karuku_sizer.validators import validate_target_size

DEFAULT_ITERATIONS = 7
LOSSLESS_FORMATS = frozenset({"png"})

QualityEncoder = Callable[[float], bytes]


@dataclass(frozen=True)
class SearchTrial:
    quality: float
    size: int
    accepted: bool


@dataclass(frozen=True)
class BudgetHit:
    """目標サイズ以下に収まった結果"""

    quality: float
    data: bytes
    trials: Tuple[SearchTrial, ...] = ()

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class BudgetUnreachable:
    """品質0でも目標サイズを超える場合の結果"""

    min_bytes: int
    trials: Tuple[SearchTrial, ...] = ()


SearchResult = Union[BudgetHit, BudgetUnreachable]


def is_lossless_format(output_format: str) -> bool:
    return output_format.lower() in LOSSLESS_FORMATS


def require_lossy_format(output_format: str) -> None:
    """品質探索できない形式なら UnsupportedOperationError"""
    if is_lossless_format(output_format):
        raise UnsupportedOperationError(
            f"{output_format.upper()} はロスレス形式のため目標サイズでの圧縮はできません。JPEG または WebP を選択してください。"
        )


def target_size_to_bytes(target_size: Union[int, float, str], unit: str = "KB") -> int:
    """KB/MB 指定の目標サイズをバイト数に変換する（1KB = 1024バイト）"""
    return validate_target_size(target_size, unit)


class SizeBudgetSearcher:
    """品質パラメータの有界二分探索"""

    def __init__(self, iterations: int = DEFAULT_ITERATIONS) -> None:
        if isinstance(iterations, bool) or not isinstance(iterations, int) or iterations < 1:
            raise ValidationError(f"試行回数は1以上の整数を指定してください: {iterations!r}")
        self.iterations = iterations

    def run(
        self,
        encode: QualityEncoder,
        target_bytes: int,
        *,
        output_format: Optional[str] = None,
        cancel_check: Optional[Callable[[], bool]] = None,
        on_trial: Optional[Callable[[int, SearchTrial], None]] = None,
    ) -> SearchResult:
        """
        目標バイト数以下で最も高い品質を探す

        Args:
            encode: 品質(0.0-1.0)を受け取りエンコード結果を返す関数
            target_bytes: 目標サイズ（バイト）
            output_format: 指定された場合、ロスレス形式なら即座に失敗する
            cancel_check: 各試行の前に呼ばれ、True ならキャンセル
            on_trial: 試行ごとの進捗通知 (試行番号, 結果)

        Returns:
            BudgetHit または BudgetUnreachable

        Raises:
            ValidationError: 目標サイズが0以下
            UnsupportedOperationError: ロスレス形式が指定された
            SearchCancelledError: cancel_check が True を返した
        """
        if isinstance(target_bytes, bool) or not isinstance(target_bytes, (int, float)):
            raise ValidationError(f"目標サイズが数値ではありません: {target_bytes!r}")
        if not math.isfinite(target_bytes) or target_bytes <= 0:
            raise ValidationError(f"目標サイズは正の値を指定してください: {target_bytes}")
        if output_format is not None:
            require_lossy_format(output_format)

        lo, hi = 0.0, 1.0
        best: Optional[Tuple[float, bytes]] = None
        trials: list[SearchTrial] = []

        for attempt in range(self.iterations):
            if cancel_check is not None and cancel_check():
                logger.info(f"サイズ探索をキャンセル ({attempt}/{self.iterations})")
                raise SearchCancelledError("サイズ探索がキャンセルされました")

            mid = (lo + hi) / 2
            data = encode(mid)
            size = len(data)
            accepted = size <= target_bytes
            if accepted:
                # 受理された品質は単調に上がるので、最後の受理が最高品質
                lo = mid
                best = (mid, data)
            else:
                hi = mid

            trial = SearchTrial(quality=mid, size=size, accepted=accepted)
            trials.append(trial)
            logger.debug(
                f"品質{mid:.4f}で試行 ({attempt + 1}/{self.iterations}): {size}バイト "
                f"{'<=' if accepted else '>'} {target_bytes}"
            )
            if on_trial is not None:
                on_trial(attempt + 1, trial)

        if best is not None:
            quality, data = best
            logger.info(f"目標サイズ達成: 品質{quality:.4f}, {len(data)}バイト")
            return BudgetHit(quality=quality, data=data, trials=tuple(trials))

        if cancel_check is not None and cancel_check():
            raise SearchCancelledError("サイズ探索がキャンセルされました")
        min_bytes = len(encode(0.0))
        logger.warning(f"目標サイズ {target_bytes}バイトに到達できません（最小 {min_bytes}バイト）")
        return BudgetUnreachable(min_bytes=min_bytes, trials=tuple(trials))
