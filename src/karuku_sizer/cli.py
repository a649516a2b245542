"""
コマンドラインインターフェース

画像1枚をリサイズ、または目標ファイルサイズ以下に圧縮して保存します。
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

from loguru import logger

from karuku_sizer.image_save_pipeline import SaveFormat, destination_with_extension, write_bytes_atomic
from karuku_sizer.image_session import ImageSession
from karuku_sizer.runtime_logging import DEFAULT_RETENTION_DAYS, log_run_summary, resolve_log_dir, setup_logging
from karuku_sizer.settings_store import SettingsStore
from karuku_sizer.size_budget_search import SizeBudgetSearcher
from karuku_sizer.text_presenter import build_dimension_summary_text


def _build_arg_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI use."""
    p = argparse.ArgumentParser(
        prog="karuku-sizer",
        description="画像をリサイズ / 目標サイズまで圧縮するコマンドラインツール",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p.add_argument("--verbose", "-v", action="count", default=0, help="詳細ログを増やす (重ね掛け可)")
    p.add_argument("--no-run-log", action="store_true", help="実行ログファイルを作成しない")
    sub = p.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("image", help="入力画像 (PNG / JPG / WebP)")
    common.add_argument("-o", "--output", help="出力先 (ファイルまたはフォルダー)。省略時は入力と同じフォルダー")
    common.add_argument(
        "-f",
        "--format",
        choices=["jpeg", "jpg", "png", "webp"],
        default=None,
        help="出力形式 (省略時は入力画像の形式)",
    )
    common.add_argument("--dry-run", action="store_true", help="ファイルを出力せずに処理をシミュレート")

    resize = sub.add_parser("resize", parents=[common], help="寸法を指定してリサイズ")
    resize.add_argument("--percentage", "-p", type=float, help="倍率 (1-500%%)")
    resize.add_argument("--width", "-W", type=float, help="幅 (px)")
    resize.add_argument("--height", "-H", type=float, help="高さ (px)")
    resize.add_argument("--no-lock", action="store_true", help="縦横比を固定しない")

    compress = sub.add_parser("compress", parents=[common], help="目標ファイルサイズ以下に圧縮")
    compress.add_argument("--target", "-t", type=float, required=True, help="目標サイズ")
    compress.add_argument("--unit", "-u", choices=["KB", "MB"], default=None, help="目標サイズの単位 (省略時は設定値)")
    compress.add_argument("--iterations", "-i", type=int, default=None, help="品質探索の試行回数 (省略時は設定値)")
    return p


def _apply_resize_args(session: ImageSession, args: argparse.Namespace, *, lock_default: bool = True) -> Optional[str]:
    """リサイズ指定をリゾルバへ反映する。エラー時はメッセージを返す"""
    resolver = session.resolver
    if resolver is None:
        return "画像が読み込まれていません"

    if args.percentage is not None:
        if args.width is not None or args.height is not None:
            return "--percentage と --width/--height は同時に指定できません"
        resolver.switch_resize_mode("percentage")
        if not resolver.set_percentage(args.percentage):
            return f"倍率が正しくありません: {args.percentage}"
        _log_dimensions(session)
        return None

    # 幅と高さの両方が指定された場合はそのまま使う
    both = args.width is not None and args.height is not None
    resolver.toggle_aspect_lock(lock_default and not (args.no_lock or both))
    if args.width is not None and not resolver.set_width(args.width):
        return f"幅が正しくありません: {args.width}"
    if args.height is not None and not resolver.set_height(args.height):
        return f"高さが正しくありません: {args.height}"
    _log_dimensions(session)
    return None


def _log_dimensions(session: ImageSession) -> None:
    resolver = session.resolver
    if resolver is None:
        return
    width, height = resolver.output_dimensions()
    logger.info(
        build_dimension_summary_text(
            width=width,
            height=height,
            percentage=resolver.percentage,
            locked=resolver.maintain_aspect_ratio,
        )
    )


def _resolve_output_path(args: argparse.Namespace, file_name: str, output_format: SaveFormat) -> Path:
    if not args.output:
        return Path(args.image).parent / file_name
    output = Path(args.output)
    if output.is_dir() or args.output.endswith(("/", "\\")):
        return output / file_name
    return destination_with_extension(output, output_format)


def run(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    console_level = "INFO"
    if args.verbose == 1:
        console_level = "DEBUG"
    elif args.verbose >= 2:
        console_level = "TRACE"

    store = SettingsStore()
    settings = store.load()
    setup_logging(
        console_level=console_level,
        log_dir=None if args.no_run_log else resolve_log_dir(store.settings_path),
        retention_days=int(settings.get("log_retention_days", DEFAULT_RETENTION_DAYS)),
    )

    iterations = store.load_search_iterations() if getattr(args, "iterations", None) is None else args.iterations
    try:
        searcher = SizeBudgetSearcher(iterations=iterations)
    except ValueError as e:
        logger.error(f"❌ {e}")
        return 1
    session = ImageSession(searcher=searcher, resize_quality=store.load_resize_quality())

    started = time.time()
    loaded = session.load_file(args.image)
    if not loaded.success:
        logger.error(f"❌ {loaded.title}: {loaded.message}")
        return 1

    # 形式の指定がなければ設定の既定値、それも auto なら入力画像の形式
    output_format = args.format or settings.get("output_format", "auto")
    if output_format != "auto":
        try:
            session.set_output_format(output_format)
        except ValueError as e:
            logger.error(f"❌ {e}")
            return 1

    if args.command == "resize":
        error = _apply_resize_args(
            session, args, lock_default=bool(settings.get("maintain_aspect_ratio", True))
        )
        if error:
            logger.error(f"❌ {error}")
            return 1
        outcome = session.process("resize")
    else:
        if not session.set_target_size(args.target, args.unit or settings.get("target_unit", "KB")):
            logger.error(f"❌ 目標サイズは正の数値を指定してください: {args.target}")
            return 1
        outcome = session.process("compress")

    spec = outcome.output_spec
    output_path: Optional[Path] = None
    if outcome.success and outcome.data is not None and outcome.file_name and spec is not None:
        output_path = _resolve_output_path(args, outcome.file_name, spec.output_format)
        if args.dry_run:
            logger.info(f"[dry-run] {output_path} ({outcome.size}バイト) は保存しません")
        else:
            try:
                write_bytes_atomic(outcome.data, output_path)
            except OSError as e:
                logger.error(f"❌ 保存に失敗しました: {output_path}: {e}")
                return 1
        logger.success(f"✔ {outcome.title}: {outcome.message}")
    else:
        logger.error(f"❌ {outcome.title}: {outcome.message}")

    log_run_summary(
        {
            "command": args.command,
            "source": str(args.image),
            "output": str(output_path) if output_path else None,
            "success": outcome.success,
            "dry_run": bool(args.dry_run),
            "message": outcome.message,
            "width": spec.width if spec else None,
            "height": spec.height if spec else None,
            "format": spec.output_format if spec else None,
            "quality": spec.quality if spec else None,
            "output_size": outcome.size,
            "min_bytes": outcome.min_bytes,
            "elapsed_sec": round(time.time() - started, 3),
        }
    )

    return 0 if outcome.success else 1


def main() -> None:  # noqa: D401
    """コンソールスクリプトのエントリポイント"""
    sys.exit(run())


if __name__ == "__main__":
    main()
