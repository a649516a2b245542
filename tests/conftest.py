#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
pytest設定ファイル
共通のフィクスチャやテスト設定を定義
"""

from pathlib import Path
import shutil
import tempfile

import pytest
from PIL import Image

from karuku_sizer.dimension_resolver import OriginalImage


@pytest.fixture
def temp_dir():
    """一時ディレクトリを作成・削除するフィクスチャ"""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture(autouse=True)
def isolated_app_dirs(tmp_path, monkeypatch):
    """設定・ログの保存先をテスト用ディレクトリに向ける"""
    monkeypatch.setenv("KARUKU_SIZER_CONFIG", str(tmp_path / "config" / "settings.json"))
    monkeypatch.setenv("KARUKU_SIZER_LOG_DIR", str(tmp_path / "logs"))


def _noisy_image(size, mode="RGB"):
    # 品質によってサイズが変わるようにノイズ画像を使う
    noise = Image.effect_noise(size, 60)
    return noise.convert(mode)


@pytest.fixture
def sample_images(temp_dir):
    """様々なフォーマットのサンプル画像を作成するフィクスチャ"""
    images = {}

    jpeg_path = temp_dir / "sample.jpg"
    _noisy_image((320, 180)).save(jpeg_path, "JPEG", quality=95)
    images["jpeg"] = jpeg_path

    png_path = temp_dir / "sample.png"
    _noisy_image((320, 180), "RGBA").save(png_path, "PNG")
    images["png"] = png_path

    webp_path = temp_dir / "sample.webp"
    _noisy_image((320, 180)).save(webp_path, "WEBP", quality=90)
    images["webp"] = webp_path

    gif_path = temp_dir / "sample.gif"
    Image.new("P", (80, 60), color=0).save(gif_path, "GIF")
    images["gif"] = gif_path

    portrait_path = temp_dir / "portrait.jpg"
    _noisy_image((90, 160)).save(portrait_path, "JPEG")
    images["portrait"] = portrait_path

    return images


@pytest.fixture
def full_hd():
    """1920x1080 の元画像メタデータ"""
    return OriginalImage(width=1920, height=1080, size_bytes=800_000, mime_type="image/jpeg", file_name="photo.jpg")


@pytest.fixture
def linear_encoder_factory():
    """size(q) = q * 800000 バイトを返す合成エンコーダ"""
    calls = []

    def factory(_source, width, height, output_format):
        def encode(quality):
            calls.append((width, height, output_format, quality))
            return b"\0" * int(round(quality * 800_000))

        return encode

    factory.calls = calls
    return factory
