"""Pure text builders for result titles and messages."""

from __future__ import annotations

import math

_SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


def format_bytes(size_in_bytes: float, decimals: int = 2) -> str:
    """バイト数を 1024 基準の読みやすい表記にする（末尾の0は省く）"""
    if not size_in_bytes:
        return "0 Bytes"
    if size_in_bytes < 0:
        return "-" + format_bytes(-size_in_bytes, decimals)

    digits = max(0, decimals)
    index = int(math.floor(math.log(size_in_bytes) / math.log(1024)))
    index = max(0, min(index, len(_SIZE_UNITS) - 1))
    value = round(size_in_bytes / (1024 ** index), digits)
    return f"{value:g} {_SIZE_UNITS[index]}"


def build_resize_success_text(*, width: int, height: int, output_format: str, size_bytes: int) -> str:
    return f"{width}x{height} の {output_format.upper()} 画像を作成しました（{format_bytes(size_bytes)}）"


def build_compress_success_text(*, original_size: int, new_size: int) -> str:
    """Build message shown after a successful budget compression."""
    reduction = original_size - new_size
    percent = (reduction / original_size * 100) if original_size else 0.0
    return f"{format_bytes(reduction)} 削減しました（{percent:.2f}%）。新しいサイズ: {format_bytes(new_size)}"


def build_budget_unreachable_text(*, target_bytes: int, min_bytes: int) -> str:
    """Build message for a target size that cannot be reached."""
    return (
        f"目標サイズ {format_bytes(target_bytes)} まで圧縮できませんでした。"
        f"より大きなサイズを指定してください。最小は {format_bytes(min_bytes)} です。"
    )


def build_lossless_notice_text(output_format: str) -> str:
    return (
        f"{output_format.upper()} はロスレス圧縮です。"
        "サイズを小さくするには JPEG または WebP を選択してください。"
    )


def build_dimension_summary_text(*, width: int, height: int, percentage: float, locked: bool) -> str:
    lock_label = "縦横比固定" if locked else "縦横比自由"
    return f"{width} x {height} px / {percentage:g}% / {lock_label}"
