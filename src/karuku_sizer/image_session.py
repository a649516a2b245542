"""
画像1枚分の編集セッション

アップロードされた元画像・寸法リゾルバ・圧縮条件をまとめて保持し、
リサイズ／目標サイズ圧縮の結果を ProcessOutcome として返します。
表示（トーストやダイアログ）は呼び出し側の責務です。
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Literal, Optional, Union

from loguru import logger
from PIL import Image

from karuku_sizer.dimension_resolver import DimensionResolver, OriginalImage
from karuku_sizer.errors import KarukuSizerError, SearchCancelledError, describe_error
from karuku_sizer.image_save_pipeline import (
    SaveFormat,
    format_from_mime_type,
    load_image_metadata,
    make_encoder,
    normalize_output_format,
    open_pixel_source,
    output_file_name,
)
from karuku_sizer.operation_flow import BackgroundJob, JobResult
from karuku_sizer.settings_store import DEFAULT_RESIZE_QUALITY
from karuku_sizer.size_budget_search import (
    BudgetHit,
    SizeBudgetSearcher,
    is_lossless_format,
)
from karuku_sizer.text_presenter import (
    build_budget_unreachable_text,
    build_compress_success_text,
    build_lossless_notice_text,
    build_resize_success_text,
)
from karuku_sizer.validators import BYTES_PER_UNIT, ValueValidator, validate_target_size

ProcessMode = Literal["resize", "compress"]
EncoderFactory = Callable[[Any, int, int, SaveFormat], Callable[[float], bytes]]

_HANDLED_ERRORS = (KarukuSizerError, OSError, ValueError, MemoryError, Image.DecompressionBombError)


@dataclass(frozen=True)
class CompressIntent:
    target_size: float
    target_unit: str = "KB"
    output_format: SaveFormat = "jpeg"

    @property
    def target_bytes(self) -> int:
        return validate_target_size(self.target_size, self.target_unit)

    @classmethod
    def for_original(cls, original: OriginalImage) -> "CompressIntent":
        """元画像のサイズと形式から初期値を作る"""
        return cls(
            target_size=max(1, round(original.size_bytes / 1024)),
            target_unit="KB",
            output_format=format_from_mime_type(original.mime_type),
        )


@dataclass(frozen=True)
class OutputSpec:
    width: int
    height: int
    output_format: SaveFormat
    quality: float


@dataclass(frozen=True)
class ProcessOutcome:
    success: bool
    title: str
    message: str
    output_spec: Optional[OutputSpec] = None
    data: Optional[bytes] = None
    file_name: Optional[str] = None
    min_bytes: Optional[int] = None
    cancelled: bool = False

    @property
    def size(self) -> int:
        return len(self.data) if self.data is not None else 0


def _failure(title: str, message: str, **kwargs: Any) -> ProcessOutcome:
    return ProcessOutcome(success=False, title=title, message=message, **kwargs)


class ImageSession:
    """元画像1枚に対する編集状態"""

    def __init__(
        self,
        *,
        searcher: Optional[SizeBudgetSearcher] = None,
        resize_quality: float = DEFAULT_RESIZE_QUALITY,
        encoder_factory: EncoderFactory = make_encoder,
    ) -> None:
        self.searcher = searcher or SizeBudgetSearcher()
        self.resize_quality = ValueValidator.validate_quality(resize_quality)
        self._encoder_factory = encoder_factory
        self._original: Optional[OriginalImage] = None
        self._pixel_source: Any = None
        self._resolver: Optional[DimensionResolver] = None
        self._compress_intent: Optional[CompressIntent] = None
        self._job: Optional[BackgroundJob[ProcessOutcome]] = None

    @property
    def has_image(self) -> bool:
        return self._original is not None

    @property
    def original(self) -> Optional[OriginalImage]:
        return self._original

    @property
    def resolver(self) -> Optional[DimensionResolver]:
        return self._resolver

    @property
    def compress_intent(self) -> Optional[CompressIntent]:
        return self._compress_intent

    @property
    def running_job(self) -> Optional[BackgroundJob[ProcessOutcome]]:
        if self._job is not None and self._job.active:
            return self._job
        return None

    def load(self, original: OriginalImage, pixel_source: Any) -> None:
        """元画像を差し替え、編集状態を初期値に戻す"""
        self._cancel_job()
        self._original = original
        self._pixel_source = pixel_source
        if self._resolver is None:
            self._resolver = DimensionResolver(original)
        else:
            self._resolver.reset(original)
        self._compress_intent = CompressIntent.for_original(original)
        logger.info(
            f"画像を読み込みました: {original.file_name or '(無名)'} "
            f"{original.width}x{original.height} {original.size_bytes}バイト {original.mime_type}"
        )

    def load_file(self, path: Union[str, Path]) -> ProcessOutcome:
        """ファイルから画像を読み込む（アップロード経路）"""
        try:
            original = load_image_metadata(path)
            pixel_source = open_pixel_source(path)
        except _HANDLED_ERRORS as e:
            logger.warning(f"画像の読み込みに失敗: {path}: {e}")
            return _failure("未対応のファイルです", describe_error(e))
        self.load(original, pixel_source)
        return ProcessOutcome(
            success=True,
            title="画像を読み込みました",
            message=f"{original.width} x {original.height} px / {original.mime_type}",
        )

    def clear(self) -> None:
        self._cancel_job()
        self._original = None
        self._pixel_source = None
        self._resolver = None
        self._compress_intent = None

    def set_target_size(self, target_size: Union[int, float, str, None], target_unit: Optional[str] = None) -> bool:
        """目標サイズを編集する。入力途中の不正値は無視して False を返す"""
        if self._compress_intent is None:
            return False
        unit = (target_unit or self._compress_intent.target_unit).upper()
        size = ValueValidator.coerce_positive(target_size)
        if size is None or unit not in BYTES_PER_UNIT:
            return False
        self._cancel_job()
        self._compress_intent = replace(self._compress_intent, target_size=size, target_unit=unit)
        return True

    def set_output_format(self, output_format: str) -> None:
        if self._compress_intent is None:
            return
        self._compress_intent = replace(self._compress_intent, output_format=normalize_output_format(output_format))

    def resolve_output_spec(self, mode: ProcessMode) -> OutputSpec:
        """現在の状態から出力仕様を決める（圧縮モードの品質は探索前の上限1.0）"""
        if self._original is None or self._resolver is None or self._compress_intent is None:
            raise KarukuSizerError("画像が読み込まれていません")
        output_format = self._compress_intent.output_format
        if mode == "resize":
            width, height = self._resolver.output_dimensions()
            quality = 1.0 if is_lossless_format(output_format) else self.resize_quality
            return OutputSpec(width=width, height=height, output_format=output_format, quality=quality)
        return OutputSpec(
            width=self._original.width,
            height=self._original.height,
            output_format=output_format,
            quality=1.0,
        )

    def process(self, mode: ProcessMode, *, cancel_check: Optional[Callable[[], bool]] = None) -> ProcessOutcome:
        if self._original is None or self._compress_intent is None:
            return _failure("エラー", "画像が選択されていません。まず画像を読み込んでください。")
        if mode == "resize":
            return self._resize(self._original, self.resolve_output_spec("resize"))
        if mode == "compress":
            return self._compress(
                self._original,
                self._pixel_source,
                self._compress_intent,
                self.resolve_output_spec("compress"),
                cancel_check,
            )
        return _failure("エラー", f"不明な処理モードです: {mode}")

    def start_compress(
        self,
        on_done: Optional[Callable[[JobResult[ProcessOutcome]], None]] = None,
    ) -> BackgroundJob[ProcessOutcome]:
        """目標サイズ圧縮をワーカースレッドで開始する。実行中のものはキャンセルする"""
        self._cancel_job()
        if self._original is None or self._compress_intent is None:
            job: BackgroundJob[ProcessOutcome] = BackgroundJob(lambda _cancel: self.process("compress"), on_done=on_done)
            self._job = job
            return job.start()

        # ワーカーは開始時点の状態だけを見る
        original = self._original
        pixel_source = self._pixel_source
        intent = self._compress_intent
        spec = self.resolve_output_spec("compress")
        job = BackgroundJob(
            lambda cancel: self._compress(original, pixel_source, intent, spec, cancel),
            on_done=on_done,
            name=f"compress-{original.file_name or 'image'}",
        )
        self._job = job
        return job.start()

    def _resize(self, original: OriginalImage, spec: OutputSpec) -> ProcessOutcome:
        try:
            encode = self._encoder_factory(self._pixel_source, spec.width, spec.height, spec.output_format)
            data = encode(spec.quality)
        except _HANDLED_ERRORS as e:
            logger.error(f"リサイズに失敗: {e}")
            return _failure("エラー", describe_error(e), output_spec=spec)

        logger.info(f"リサイズ完了: {spec.width}x{spec.height} {spec.output_format} {len(data)}バイト")
        return ProcessOutcome(
            success=True,
            title="画像をリサイズしました",
            message=build_resize_success_text(
                width=spec.width,
                height=spec.height,
                output_format=spec.output_format,
                size_bytes=len(data),
            ),
            output_spec=spec,
            data=data,
            file_name=output_file_name(original.file_name, "resized", spec.output_format),
        )

    def _compress(
        self,
        original: OriginalImage,
        pixel_source: Any,
        intent: CompressIntent,
        spec: OutputSpec,
        cancel_check: Optional[Callable[[], bool]],
    ) -> ProcessOutcome:
        if is_lossless_format(spec.output_format):
            logger.warning(f"{spec.output_format} は目標サイズ圧縮の対象外です")
            return _failure("圧縮できません", build_lossless_notice_text(spec.output_format), output_spec=spec)

        try:
            target_bytes = intent.target_bytes
            encode = self._encoder_factory(pixel_source, spec.width, spec.height, spec.output_format)
            result = self.searcher.run(
                encode,
                target_bytes,
                output_format=spec.output_format,
                cancel_check=cancel_check,
            )
        except SearchCancelledError as e:
            return _failure("キャンセル", describe_error(e), output_spec=spec, cancelled=True)
        except _HANDLED_ERRORS as e:
            logger.error(f"圧縮に失敗: {e}")
            return _failure("エラー", describe_error(e), output_spec=spec)

        if isinstance(result, BudgetHit):
            return ProcessOutcome(
                success=True,
                title="画像を圧縮しました",
                message=build_compress_success_text(original_size=original.size_bytes, new_size=result.size),
                output_spec=replace(spec, quality=result.quality),
                data=result.data,
                file_name=output_file_name(original.file_name, "compressed", spec.output_format),
            )

        return _failure(
            "圧縮できませんでした",
            build_budget_unreachable_text(target_bytes=target_bytes, min_bytes=result.min_bytes),
            output_spec=replace(spec, quality=0.0),
            min_bytes=result.min_bytes,
        )

    def _cancel_job(self) -> None:
        if self._job is not None and self._job.active:
            self._job.cancel()
        self._job = None
