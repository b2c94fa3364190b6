from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from .batch import iter_compress, iter_images, summarize
from .cloudinary import CloudinaryClient
from .config import CloudinaryConfig, LibraryConfig
from .engine import output_name
from .errors import ImageLibraryError
from .library import Library, OperationReport
from .presets import PRESET_ORDER, PRESETS
from .report import build_report, save_report_csv, save_report_json
from .results import format_file_size
from .settings import UploadOptions
from .storage import LocalStore


log = logging.getLogger(__name__)


def _add_compression_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--preset",
        choices=PRESET_ORDER,
        default=None,
        help="Preset to use when progressive mode is off (default: balanced)",
    )
    p.add_argument(
        "--progressive",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Pick settings from size/dimensions; --no-progressive uses the preset as-is (default: $IMGLIB_PROGRESSIVE or on)",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="imglib",
        description="Image library manager with client-side compression",
    )
    p.add_argument("--data-dir", default=None, help="Library data directory (default: $IMGLIB_DATA_DIR or ./image_library)")
    p.add_argument("--remote", action="store_true", help="Store images on Cloudinary (credentials from env)")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    p.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")

    sub = p.add_subparsers(dest="command", required=True)

    # Compression only
    comp = sub.add_parser("compress", help="Compress files/folders into an output directory")
    comp.add_argument("inputs", nargs="+", help="Files and/or folders to process")
    comp.add_argument("--out", required=True, help="Output directory")
    comp.add_argument("--suffix", default="_compressed", help="Filename suffix (default: _compressed)")
    comp.add_argument("--no-recursive", action="store_true", help="Do not scan folders recursively")
    _add_compression_args(comp)

    sub.add_parser("presets", help="List compression presets")

    # Folders
    folders = sub.add_parser("folders", help="Manage folders")
    fsub = folders.add_subparsers(dest="action", required=True)
    fsub.add_parser("list", help="List folders")
    f_create = fsub.add_parser("create", help="Create a folder")
    f_create.add_argument("name")
    f_rename = fsub.add_parser("rename", help="Rename a folder")
    f_rename.add_argument("folder_id")
    f_rename.add_argument("name")
    f_delete = fsub.add_parser("delete", help="Delete a folder and its images")
    f_delete.add_argument("folder_id")

    # Images
    images = sub.add_parser("images", help="Manage images")
    isub = images.add_subparsers(dest="action", required=True)
    i_list = isub.add_parser("list", help="List images")
    i_list.add_argument("--folder", default=None, help="Only images in this folder id")
    i_rename = isub.add_parser("rename", help="Rename an image")
    i_rename.add_argument("image_id")
    i_rename.add_argument("name")
    i_delete = isub.add_parser("delete", help="Delete an image")
    i_delete.add_argument("image_id")

    up = sub.add_parser("upload", help="Compress and upload images into a folder")
    up.add_argument("folder_id")
    up.add_argument("inputs", nargs="+", help="Files and/or folders to upload")
    up.add_argument("--no-recursive", action="store_true", help="Do not scan folders recursively")
    _add_compression_args(up)

    sub.add_parser("sync", help="Rebuild the local records from Cloudinary")

    return p


def _configure_logging(args: argparse.Namespace) -> None:
    level = logging.INFO
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING

    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _upload_options(args: argparse.Namespace, defaults: UploadOptions) -> UploadOptions:
    progressive = defaults.progressive if args.progressive is None else args.progressive
    if args.preset and progressive:
        log.warning("--preset %s is ignored in progressive mode; add --no-progressive to use it", args.preset)

    return UploadOptions(preset=args.preset or defaults.preset, progressive=progressive)


def _print_report(op: OperationReport) -> None:
    for f in op.failures:
        print(f"  warning: {f.operation} {f.target}: {f.error}")


def _cmd_compress(args: argparse.Namespace, config: LibraryConfig) -> int:
    options = _upload_options(args, config.upload)
    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    sources = list(iter_images([Path(p) for p in args.inputs], recursive=not args.no_recursive, exclude_dir=out_dir))

    items = []
    outputs: Dict[Path, Path] = {}
    for item in iter_compress(sources, options):
        items.append(item)

        if item.result is None:
            print(f"[{item.index}/{item.total}] {item.source.name}: FAILED ({item.error})")
            continue

        r = item.result
        out_path = out_dir / output_name(r.file_name, r.format, suffix=args.suffix)
        out_path.write_bytes(r.compressed)
        outputs[item.source] = out_path

        print(
            f"[{item.index}/{item.total}] {item.source.name}: "
            f"{format_file_size(r.original_size)} -> {format_file_size(r.compressed_size)} "
            f"({r.compression_ratio:.1f}%)"
        )

    summary = summarize(items)

    print("\n=== Batch Summary ===")
    print("Total found:", summary.total_files)
    print("Compressed :", summary.compressed)
    print("Failed     :", summary.failed)
    print(f"Saved      : {format_file_size(summary.saved_bytes)} ({summary.saved_percent:.1f}%)")

    report = build_report(items, summary, outputs)

    json_path = out_dir / "report.json"
    save_report_json(report, json_path)

    csv_path = out_dir / "report.csv"
    save_report_csv(report, csv_path)

    print("\nReport written:", json_path)
    print("CSV written   :", csv_path)
    return 0 if summary.failed == 0 else 1


def _cmd_presets() -> int:
    for key in PRESET_ORDER:
        p = PRESETS[key]
        s = p.settings
        print(
            f"{key:<14} {p.name:<14} max {s.max_size_mb:g} MB, "
            f"{s.max_width_or_height}px, quality {s.quality:g}  - {p.description}"
        )
    return 0


def _open_library(config: LibraryConfig, remote: Optional[CloudinaryClient]) -> Library:
    store = LocalStore(config.data_dir)
    blobs = remote if remote is not None else store.blobs
    return Library(store.folders, store.images, blobs, options=config.upload)


def _cmd_folders(args: argparse.Namespace, lib: Library) -> int:
    if args.action == "list":
        for f in lib.list_folders():
            print(f"{f.id}  {f.name}  ({f.image_count} images)")
        return 0

    if args.action == "create":
        f = lib.create_folder(args.name)
        print(f"Created {f.name}: {f.id}")
        return 0

    if args.action == "rename":
        op = lib.rename_folder(args.folder_id, args.name)
        print(f"Renamed to {op.folder.name} ({len(op.images)} images)")
        _print_report(op)
        return 0 if op.ok else 1

    op = lib.delete_folder(args.folder_id)
    print(f"Deleted {op.folder.name} ({len(op.images)} images)")
    _print_report(op)
    return 0 if op.ok else 1


def _cmd_images(args: argparse.Namespace, lib: Library) -> int:
    if args.action == "list":
        for im in lib.list_images(args.folder):
            print(f"{im.id}  {im.name}  {im.width}x{im.height}  {format_file_size(im.size)}  {im.url}")
        return 0

    if args.action == "rename":
        im = lib.rename_image(args.image_id, args.name)
        print(f"Renamed to {im.name}")
        return 0

    im = lib.delete_image(args.image_id)
    print(f"Deleted {im.name}")
    return 0


def _cmd_upload(args: argparse.Namespace, lib: Library) -> int:
    options = _upload_options(args, lib.options)
    sources = list(iter_images([Path(p) for p in args.inputs], recursive=not args.no_recursive))

    failed = 0
    for item in lib.upload(sources, args.folder_id, options):
        if item.image is None:
            failed += 1
            print(f"[{item.index}/{item.total}] {item.source.name}: FAILED ({item.error})")
            continue

        r = item.compression
        print(
            f"[{item.index}/{item.total}] {item.source.name} -> {item.image.public_id} "
            f"(saved {r.compression_ratio:.1f}%)"
        )

    return 0 if failed == 0 else 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args)

    try:
        config = LibraryConfig.from_env()
        if args.data_dir:
            config = LibraryConfig(data_dir=Path(args.data_dir).expanduser(), upload=config.upload)

        if args.command == "compress":
            return _cmd_compress(args, config)

        if args.command == "presets":
            return _cmd_presets()

        remote: Optional[CloudinaryClient] = None
        if args.remote or args.command == "sync":
            remote = CloudinaryClient(CloudinaryConfig.from_env())

        try:
            lib = _open_library(config, remote)

            if args.command == "folders":
                return _cmd_folders(args, lib)
            if args.command == "images":
                return _cmd_images(args, lib)
            if args.command == "upload":
                return _cmd_upload(args, lib)
            if args.command == "sync":
                folders = lib.sync(remote)
                print(f"Synced {len(folders)} folders, {len(lib.list_images())} images")
                return 0
        finally:
            if remote is not None:
                remote.close()

    except ImageLibraryError as ex:
        print(f"error: {ex}", file=sys.stderr)
        return 1

    parser.print_help()
    return 2
