"""Command line entry point for archive inspection and conversion."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .chunks.tree import format_tree
from .config import EvershadeConfig, load_config
from .exceptions import EvershadeError
from .hashing import HASH_NAMES
from .io.archive import Archive, compress_archive, decompress_archive
from .logging_config import configure_logging, trace_to_file
from .script.loader import iter_script_modules
from .vm.emitter import emit_module

LOGGER = logging.getLogger(__name__)


def archive_paths(base: Path) -> Tuple[Path, Path]:
    """``(dict_path, data_path)`` for ``base`` given with or without a suffix."""

    base = Path(base)
    if base.suffix.lower() in (".dict", ".data"):
        base = base.with_suffix("")
    return base.with_suffix(".dict"), base.with_suffix(".data")


def _read_pair(base: Path) -> Tuple[bytes, bytes]:
    dict_path, data_path = archive_paths(base)
    return dict_path.read_bytes(), data_path.read_bytes()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="evershade", description="Archive and script tooling")
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration file")
    parser.add_argument("--hashes", type=Path, action="append", default=[], help="hash name file (repeatable)")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    parser.add_argument("--debug-log", type=Path, default=None, help="write the instruction trace to this file")
    sub = parser.add_subparsers(dest="command", required=True)

    tree = sub.add_parser("tree", help="list the chunk forest")
    tree.add_argument("base", type=Path)

    decompile = sub.add_parser("decompile", help="decompile every script module")
    decompile.add_argument("base", type=Path)
    decompile.add_argument("-o", "--output", type=Path, default=None, help="directory for listings")

    convert = sub.add_parser("convert", help="switch the block storage mode")
    convert.add_argument("base", type=Path)
    convert.add_argument("out", type=Path)
    mode = convert.add_mutually_exclusive_group(required=True)
    mode.add_argument("--compress", action="store_true")
    mode.add_argument("--decompress", action="store_true")
    return parser


def _run_tree(args: argparse.Namespace, config: EvershadeConfig) -> int:
    archive = Archive.open(*_read_pair(args.base), compression_level=config.compression_level)
    print(format_tree(archive.chunks()))
    return 0


def _run_decompile(args: argparse.Namespace, config: EvershadeConfig) -> int:
    archive = Archive.open(*_read_pair(args.base), compression_level=config.compression_level)
    output: Optional[Path] = args.output or config.output_dir
    if output is not None:
        output.mkdir(parents=True, exist_ok=True)

    failures = 0
    count = 0
    for node, result in iter_script_modules(archive.chunks()):
        if isinstance(result, EvershadeError):
            failures += 1
            continue
        text = emit_module(result)
        failures += 1 if result.errors else 0
        if output is None:
            print(text)
        else:
            target = output / f"script_{count:03d}_{node.offset:X}.txt"
            target.write_text(text, encoding="utf-8")
            LOGGER.info("wrote %s", target)
        count += 1
    LOGGER.info("decompiled %d module(s), %d with errors", count, failures)
    return 1 if failures else 0


def _run_convert(args: argparse.Namespace, config: EvershadeConfig) -> int:
    dict_bytes, data_bytes = _read_pair(args.base)
    if args.compress:
        new_dict, new_data = compress_archive(dict_bytes, data_bytes, level=config.compression_level)
    else:
        new_dict, new_data = decompress_archive(dict_bytes, data_bytes)
    dict_path, data_path = archive_paths(args.out)
    dict_path.parent.mkdir(parents=True, exist_ok=True)
    dict_path.write_bytes(new_dict)
    data_path.write_bytes(new_data)
    LOGGER.info("wrote %s and %s", dict_path, data_path)
    return 0


_COMMANDS = {
    "tree": _run_tree,
    "decompile": _run_decompile,
    "convert": _run_convert,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        print(f"evershade: bad config: {exc}", file=sys.stderr)
        return 2
    configure_logging(args.verbose, level=config.log_level)

    hash_files: List[Path] = list(config.hash_names) + list(args.hashes)
    trace_path = args.debug_log or config.debug_log
    try:
        for path in hash_files:
            HASH_NAMES.load_file(path)
        if trace_path is None:
            return _COMMANDS[args.command](args, config)
        with trace_to_file(trace_path):
            return _COMMANDS[args.command](args, config)
    except EvershadeError as exc:
        LOGGER.error("%s", exc)
        return 2
    except OSError as exc:
        LOGGER.error("I/O error: %s", exc)
        return 2


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
