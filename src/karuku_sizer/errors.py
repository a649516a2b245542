"""
例外クラスとユーザー向けエラーメッセージ
"""

from __future__ import annotations

import errno

from PIL import Image, UnidentifiedImageError


class KarukuSizerError(Exception):
    """アプリケーション共通の基底例外"""


class ValidationError(KarukuSizerError, ValueError):
    """ユーザー入力が不正（目標サイズが0以下、寸法がNaNなど）"""


class UnsupportedOperationError(KarukuSizerError):
    """ロスレス形式に対する品質探索など、実行できない操作"""


class EncodeFailureError(KarukuSizerError):
    """エンコード処理そのものが失敗した"""


class SearchCancelledError(KarukuSizerError):
    """サイズ探索が途中でキャンセルされた"""


def describe_error(error: BaseException) -> str:
    """
    例外から日本語のエラーメッセージを生成します

    Args:
        error: 例外オブジェクト

    Returns:
        str: ユーザーに表示するメッセージ
    """
    error_msg = str(error)

    # アプリケーション固有のエラー
    if isinstance(error, ValidationError):
        return f"入力値が正しくありません: {error_msg}"
    if isinstance(error, UnsupportedOperationError):
        return f"この操作は実行できません: {error_msg}"
    if isinstance(error, SearchCancelledError):
        return "処理がキャンセルされました"
    if isinstance(error, EncodeFailureError):
        cause = error.__cause__
        if cause is not None:
            return f"画像の変換に失敗しました: {error_msg}（{describe_error(cause)}）"
        return f"画像の変換に失敗しました: {error_msg}"

    # ファイル関連エラー
    if isinstance(error, FileNotFoundError):
        return f"ファイルが見つかりません: {error_msg}"
    if isinstance(error, PermissionError):
        return f"アクセス権限がありません: {error_msg}"
    if isinstance(error, IsADirectoryError):
        return f"ディレクトリが指定されました（ファイルを指定してください）: {error_msg}"

    # 画像関連エラー
    if isinstance(error, UnidentifiedImageError):
        return f"画像ファイルとして認識できません: {error_msg}"
    if isinstance(error, Image.DecompressionBombError):
        return f"画像が大きすぎます（圧縮爆弾の可能性）: {error_msg}"

    if isinstance(error, OSError):
        if error.errno == errno.ENOSPC:
            return "ディスク容量が不足しています"
        return f"システムエラー: {error_msg}"

    if isinstance(error, MemoryError):
        return "メモリ不足エラー: 画像が大きすぎるか、使用可能なメモリが不足しています"

    if isinstance(error, ValueError):
        return f"無効な値: {error_msg}"

    return f"{type(error).__name__}: {error_msg}"
