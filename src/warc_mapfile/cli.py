"""CLI entrypoint.

Commands:
- `warc-mapfile build -p PREFIX -i INPUT -f FORMAT -o OUTPUT [--config configs/build.yaml] [...]`
- `warc-mapfile lookup --store OUTPUT KEY [--format FORMAT] [--json]`
- `warc-mapfile formats`

Options given on the command line override the YAML config file.

Exit codes:
- 0: success
- 1: argument error, unsupported format, malformed-record abort, job failure
- 2: argument parsing failure (argparse)
"""

from __future__ import annotations
import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from . import __version__
from .config import (
    EXECUTION_MODES,
    ON_MALFORMED_CHOICES,
    RESUME_MODES,
    BuildConfig,
    load_yaml,
    set_option,
)
from .errors import ArgumentError, MapFileError, UnsupportedFormatError
from .formats.registry import DEFAULT_REGISTRY, get_format, list_formats, resolve
from .logging_ import setup_logging
from .mapper.keys import KeyScope, KeyStyle
from .pipeline.build import build, preflight
from .store.reader import SortedStoreReader

log = logging.getLogger("warc_mapfile.cli")


def _parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="warc-mapfile", description="Convert WARC corpora into a sorted key-value store.")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = p.add_subparsers(dest="cmd", required=True)

    pb = sub.add_parser("build", help="Convert a WARC corpus into a sorted store")
    pb.add_argument("-p", "--prefix", help="Namespace prefix prepended to every key")
    pb.add_argument("-i", "--input", help="Input file, directory or glob of .warc / .warc.gz files")
    pb.add_argument("-f", "--format", help=f"Input corpus format ({', '.join(list_formats())})")
    pb.add_argument("-o", "--output", help="Output store path (must not exist)")
    pb.add_argument("--config", help="YAML config file; command-line options take precedence")
    pb.add_argument("--on-malformed", choices=ON_MALFORMED_CHOICES, help="Malformed-record policy (default: abort)")
    pb.add_argument("--key-scope", choices=[s.value for s in KeyScope], help="How the prefix combines with identifiers")
    pb.add_argument("--key-separator", help="Reserved separator between prefix/group and identifier")
    pb.add_argument("--key-style", choices=[s.value for s in KeyStyle], help="Plain keys or name-based UUIDs")
    pb.add_argument("--workers", type=int, help="Worker processes in local mode")
    pb.add_argument("--max-retries", type=int, help="Retries per failed split")
    pb.add_argument("--split-timeout", type=float, metavar="SECONDS", help="Kill and retry a split running longer than this")
    pb.add_argument("--split-size", type=int, metavar="BYTES", help="Cut plain .warc files into byte-range splits")
    pb.add_argument("--index-interval", type=int, help="Index every Nth key (default: 128)")
    pb.add_argument("--mode", choices=EXECUTION_MODES, help="Execution mode")
    pb.add_argument("--work-dir", help="Run work directory (default: <output>.work)")
    pb.add_argument("--log-dir", help="Directory for the run log file (default: <work-dir>/logs)")
    pb.add_argument("--run-id", help="Run identifier (default: <format>_<input name>)")
    pb.add_argument("--resume", choices=RESUME_MODES, help="Checkpoint resume mode")
    pb.add_argument("--keep-runs", action="store_true", default=None, help="Keep run files after publishing")
    pb.add_argument("--no-progress", action="store_true", help="Disable the progress bar")
    pb.set_defaults(subparser=pb)

    pl = sub.add_parser("lookup", help="Fetch one record from a published store")
    pl.add_argument("--store", required=True, help="Published store path")
    pl.add_argument("key")
    pl.add_argument("--format", help="Corpus format (default: taken from the store)")
    pl.add_argument("--json", action="store_true", help="Print headers and body as JSON")
    pl.set_defaults(subparser=pl)

    sub.add_parser("formats", help="List supported input formats")
    return p


def _config_from_args(args: argparse.Namespace) -> BuildConfig:
    cfg = load_yaml(args.config) if args.config else {}
    set_option(cfg, "keys", "prefix", args.prefix)
    set_option(cfg, "input", "path", args.input)
    set_option(cfg, "input", "format", args.format)
    set_option(cfg, "store", "output", args.output)
    set_option(cfg, "records", "on_malformed", args.on_malformed)
    set_option(cfg, "keys", "scope", args.key_scope)
    set_option(cfg, "keys", "separator", args.key_separator)
    set_option(cfg, "keys", "style", args.key_style)
    set_option(cfg, "execution", "workers", args.workers)
    set_option(cfg, "execution", "max_retries", args.max_retries)
    set_option(cfg, "execution", "split_timeout", args.split_timeout)
    set_option(cfg, "execution", "mode", args.mode)
    set_option(cfg, "input", "split_size", args.split_size)
    set_option(cfg, "store", "index_interval", args.index_interval)
    set_option(cfg, "run", "work_dir", args.work_dir)
    set_option(cfg, "run", "log_dir", args.log_dir)
    set_option(cfg, "run", "run_id", args.run_id)
    set_option(cfg, "run", "resume", args.resume)
    set_option(cfg, "run", "keep_runs", args.keep_runs)
    if args.no_progress:
        set_option(cfg, "execution", "progress", False)
    return BuildConfig.from_dict(cfg)


def _argument_error(parser: argparse.ArgumentParser, message: str) -> int:
    parser.print_usage(sys.stderr)
    print(f"Argument error: {message}", file=sys.stderr)
    return 1


def _cmd_build(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    try:
        cfg = _config_from_args(args)
    except (ArgumentError, OSError) as e:
        return _argument_error(parser, str(e))
    missing = cfg.missing_required()
    if missing:
        parser.error(f"the following arguments are required: {', '.join(missing)}")

    setup_logging(cfg.run_id)
    try:
        resolve(cfg.format)
        cfg.validate()
        splits = preflight(cfg)
    except UnsupportedFormatError as e:
        return _argument_error(parser, str(e).replace(". Supported", ".\nSupported", 1))
    except (ArgumentError, OSError) as e:
        return _argument_error(parser, str(e))

    log_dir = cfg.log_dir or os.path.join(cfg.resolved_work_dir(), "logs")
    log_path = setup_logging(cfg.run_id, log_dir=log_dir)
    log.info(f"Logging to {log_path}")
    try:
        result = build(cfg, splits=splits)
    except (MapFileError, OSError) as e:
        log.error(f"Build failed: {e}")
        return 1
    log.info(
        f"Done: {result.entries} entries from {result.splits} split(s) "
        f"(read={result.counts['records_read']} skipped={result.counts['skipped_records']} "
        f"rejected={result.counts['rejected_records']})"
    )
    return 0


def _cmd_lookup(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    try:
        reader = SortedStoreReader(args.store)
    except (MapFileError, OSError) as e:
        return _argument_error(parser, str(e))
    with reader:
        try:
            fmt = get_format(args.format or reader.meta.get("corpus_format", ""))
        except UnsupportedFormatError as e:
            return _argument_error(parser, str(e))
        value = reader.get(args.key)
        if value is None:
            print(f"Key not found: {args.key}", file=sys.stderr)
            return 1
        if not args.json:
            sys.stdout.flush()
            sys.stdout.buffer.write(value)
            sys.stdout.buffer.flush()
            return 0
        record = reader.get_record(args.key, fmt)
        print(
            json.dumps(
                {
                    "key": args.key,
                    "version": record.version,
                    "headers": [list(h) for h in record.headers],
                    "body": record.body.decode("utf-8", "replace"),
                },
                ensure_ascii=False,
                indent=2,
            )
        )
    return 0


def _cmd_formats() -> int:
    for name in list_formats():
        fmt = DEFAULT_REGISTRY.get(name)
        print(f"{name}\t{fmt.version}\t{fmt.description}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = _parser()
    args = parser.parse_args(argv)

    if args.cmd == "formats":
        return _cmd_formats()
    if args.cmd == "lookup":
        return _cmd_lookup(args, args.subparser)
    return _cmd_build(args, args.subparser)
