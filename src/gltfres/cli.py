"""Command line interface for gltfres."""

from __future__ import annotations

import argparse
import dataclasses
import sys
from pathlib import Path

from .api import process_gltf
from .config import WriteOptions, check_quality, load_options
from .errors import ResourceWriteError
from .logging import configure_logging
from .reporting import (
    PlainReporter,
    RichReporter,
    SilentReporter,
    get_reporter,
    set_reporter,
    set_verbosity,
)


def _options_from_args(args: argparse.Namespace) -> WriteOptions:
    opts = load_options(args.config) if args.config else WriteOptions()
    overrides = {}
    if args.separate:
        overrides.update(
            separate_buffers=True, separate_textures=True, separate_shaders=True
        )
    for flag in (
        "separate_buffers",
        "separate_textures",
        "separate_shaders",
        "data_uris",
        "encode_basis",
        "basis_linear",
        "decode_webp",
    ):
        if getattr(args, flag):
            overrides[flag] = True
    if args.basis_quality is not None:
        check_quality("basis_quality", args.basis_quality)
        overrides["basis_quality"] = args.basis_quality
    if args.jpeg_quality is not None:
        check_quality("jpeg_compression_ratio", args.jpeg_quality)
        overrides["jpeg_compression_ratio"] = args.jpeg_quality
    if args.name is not None:
        overrides["name"] = args.name
    return dataclasses.replace(opts, **overrides)


def _process_cmd(args: argparse.Namespace) -> int:
    options = _options_from_args(args)
    process_gltf(args.input, args.output, options)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="gltfres",
        description="Externalize glTF buffers, images and shaders",
    )
    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (repeatable)",
    )
    p.add_argument(
        "-r",
        "--reporter",
        choices=["plain", "rich", "silent"],
        default="plain",
        help="Select reporter backend: plain (default), rich, silent",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    pr = sub.add_parser("process", help="Rewrite a glTF/GLB file")
    pr.add_argument("input", type=Path)
    pr.add_argument("output", type=Path, help=".gltf or .glb output path")
    pr.add_argument(
        "--config", type=Path, help="JSON/YAML file with write options"
    )
    pr.add_argument("--name", help="Base name for generated file names")
    pr.add_argument(
        "-s",
        "--separate",
        action="store_true",
        help="Write buffers, textures and shaders as separate files",
    )
    pr.add_argument("--separate-buffers", action="store_true")
    pr.add_argument("--separate-textures", action="store_true")
    pr.add_argument("--separate-shaders", action="store_true")
    pr.add_argument(
        "--data-uris",
        action="store_true",
        help="Embed images and shaders as data URIs instead of bufferViews",
    )
    pr.add_argument(
        "--encode-basis",
        action="store_true",
        help="Encode textures to KTX2 with basisu",
    )
    pr.add_argument("--basis-quality", type=int, dest="basis_quality")
    pr.add_argument("--basis-linear", action="store_true")
    pr.add_argument(
        "--decode-webp", action="store_true", help="Decode WebP textures to PNG"
    )
    pr.add_argument(
        "--jpeg-quality",
        type=int,
        dest="jpeg_quality",
        help="Re-encode textures as JPEG at this quality (1-100)",
    )
    pr.set_defaults(func=_process_cmd)
    return p


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.reporter == "silent":
        set_reporter(SilentReporter())
    elif args.reporter == "rich" and sys.stderr.isatty():
        set_reporter(RichReporter())
    else:
        set_reporter(PlainReporter())
    set_verbosity(args.verbose)
    configure_logging(args.verbose)
    try:
        return args.func(args)
    except (ResourceWriteError, OSError, ValueError) as e:
        rep = get_reporter()
        rep.flush()
        rep.error(str(e))
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
