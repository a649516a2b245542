"""Pillow によるエンコード・メタデータ読込・保存。

寸法と品質の決定はこのモジュールの外で行い、ここでは
`encode_image(source, width, height, format, quality) -> bytes` を提供する。
"""

from __future__ import annotations

import io
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Any, Dict, Literal, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from karuku_sizer.dimension_resolver import OriginalImage
from karuku_sizer.errors import EncodeFailureError, ValidationError
from karuku_sizer.validators import ValueValidator

SaveFormat = Literal["jpeg", "png", "webp"]

logger = logging.getLogger(__name__)

SUPPORTED_MIME_TYPES: Dict[str, SaveFormat] = {
    "image/png": "png",
    "image/jpeg": "jpeg",
    "image/webp": "webp",
}

_PIL_FORMAT_TO_MIME = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "MPO": "image/jpeg",
    "WEBP": "image/webp",
}

# EXIF Orientation のうち縦横が入れ替わる値（90度回転を含む）
_EXIF_ORIENTATION_TAG = 0x0112
_SWAPPED_ORIENTATIONS = frozenset({5, 6, 7, 8})

_FORMAT_EXTENSIONS: Dict[SaveFormat, str] = {
    "jpeg": ".jpg",
    "png": ".png",
    "webp": ".webp",
}


def normalize_output_format(value: str) -> SaveFormat:
    """出力形式名を正規化する（jpg は jpeg として扱う）"""
    requested = value.strip().lower()
    if requested == "jpg":
        requested = "jpeg"
    if requested not in _FORMAT_EXTENSIONS:
        raise ValidationError(f"未対応の出力形式です: {value}（jpeg / png / webp）")
    return requested  # type: ignore[return-value]


def format_from_mime_type(mime_type: str) -> SaveFormat:
    """アップロード時のMIMEタイプから初期出力形式を決める"""
    if mime_type == "image/png":
        return "png"
    if mime_type == "image/webp":
        return "webp"
    return "jpeg"


def build_encoder_save_kwargs(output_format: SaveFormat, quality: float) -> Dict[str, Any]:
    """出力形式に応じたエンコーダ設定を返す。品質は0.0-1.0。"""
    normalized = ValueValidator.validate_quality(quality)
    pil_quality = int(round(normalized * 100))

    if output_format == "jpeg":
        return {
            "format": "JPEG",
            "quality": pil_quality,
            "optimize": True,
        }
    if output_format == "png":
        # PNGはロスレス。品質指定は使わない。
        return {
            "format": "PNG",
            "optimize": True,
        }
    return {
        "format": "WEBP",
        "quality": pil_quality,
        "method": 4,
    }


def _prepare_for_format(image: Image.Image, output_format: SaveFormat) -> Image.Image:
    if output_format == "jpeg" and image.mode in {"RGBA", "LA", "P"}:
        # 透過を持つ画像は白背景へ合成する
        rgba = image.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        background.alpha_composite(rgba)
        return background.convert("RGB")
    if output_format == "jpeg" and image.mode not in {"RGB", "L"}:
        return image.convert("RGB")
    if output_format == "webp" and image.mode not in {"RGB", "RGBA", "L"}:
        return image.convert("RGBA" if "A" in image.getbands() else "RGB")
    return image


def encode_image(
    source: Image.Image,
    width: int,
    height: int,
    output_format: SaveFormat,
    quality: float,
) -> bytes:
    """画像を指定寸法に描画してエンコードしたバイト列を返す"""
    save_kwargs = build_encoder_save_kwargs(output_format, quality)
    try:
        if source.size != (width, height):
            canvas = source.resize((width, height), Image.Resampling.LANCZOS)
        else:
            canvas = source
        canvas = _prepare_for_format(canvas, output_format)
        buffer = io.BytesIO()
        canvas.save(buffer, **save_kwargs)
    except (OSError, ValueError, MemoryError) as e:
        logger.error("encode failed: format=%s size=%sx%s: %s", output_format, width, height, e)
        raise EncodeFailureError(f"{output_format.upper()} へのエンコードに失敗しました") from e
    return buffer.getvalue()


def make_encoder(source: Image.Image, width: int, height: int, output_format: SaveFormat):
    """品質だけを引数に取るエンコード関数を作る。

    同じ寸法への縮小を毎回やり直さないよう、描画済みキャンバスを保持する。
    """
    try:
        canvas = source.resize((width, height), Image.Resampling.LANCZOS) if source.size != (width, height) else source
    except (OSError, ValueError, MemoryError) as e:
        raise EncodeFailureError("画像の描画に失敗しました") from e

    def encode(quality: float) -> bytes:
        return encode_image(canvas, width, height, output_format, quality)

    return encode


def load_image_metadata(path: Union[str, Path]) -> OriginalImage:
    """画像ファイルの寸法・サイズ・MIMEタイプを読み込む

    寸法は EXIF の回転を適用した後の表示上のサイズ。
    """
    file_path = Path(path)
    size_bytes = file_path.stat().st_size
    with Image.open(file_path) as img:
        mime_type = _PIL_FORMAT_TO_MIME.get(img.format or "")
        width, height = img.size
        if img.getexif().get(_EXIF_ORIENTATION_TAG) in _SWAPPED_ORIENTATIONS:
            width, height = height, width
    if mime_type not in SUPPORTED_MIME_TYPES:
        raise ValidationError(f"未対応のファイル形式です（PNG / JPG / WebP のみ）: {file_path.name}")
    return OriginalImage(
        width=width,
        height=height,
        size_bytes=size_bytes,
        mime_type=mime_type,
        file_name=file_path.name,
    )


def open_pixel_source(path: Union[str, Path]) -> Image.Image:
    """エンコード元として画像を読み込む（EXIFの回転を適用、ファイルハンドルは閉じる）"""
    try:
        with Image.open(path) as img:
            img.load()
            return ImageOps.exif_transpose(img)
    except UnidentifiedImageError as e:
        raise EncodeFailureError(f"画像を読み込めません: {Path(path).name}") from e


def output_file_name(original_name: str, suffix: str, output_format: SaveFormat) -> str:
    """`<元の名前>-<suffix>.<拡張子>` 形式の出力ファイル名"""
    stem = Path(original_name).stem if original_name else "image"
    return f"{stem}-{suffix}{_FORMAT_EXTENSIONS[output_format]}"


def destination_with_extension(base_path: Path, output_format: SaveFormat) -> Path:
    """出力形式に合わせて拡張子を更新する。"""
    return base_path.with_suffix(_FORMAT_EXTENSIONS[output_format])


def _build_temp_save_path(target_path: Path) -> Path:
    """同一ディレクトリ内の一時保存パスを作る。"""
    base_name = target_path.name or "karuku_output"
    token = f"{os.getpid()}_{time.time_ns()}_{uuid.uuid4().hex[:10]}"
    return target_path.with_name(f".{base_name}.{token}.tmp")


def write_bytes_atomic(data: bytes, final_path: Path) -> Path:
    """一時ファイル→置換で書き込み、壊れた最終ファイルを残さない。"""
    final_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = _build_temp_save_path(final_path)
    try:
        tmp_path.write_bytes(data)
        os.replace(str(tmp_path), str(final_path))
    finally:
        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                logger.warning("一時保存ファイルの削除に失敗: %s", tmp_path)
    return final_path
