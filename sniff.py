#!/usr/bin/env python3
"""
larasniff - Laravel/PHP anti-pattern scanner

Usage:
    larasniff /path/to/project                     # Scan with larasniff.yml or defaults
    larasniff /path/to/project -f json -o out.json # Machine-readable report
    larasniff /path/to/project --only sql-injection,mass-assignment
    larasniff --list                               # Show available analyzers
"""

import argparse
import logging
import os
import sys
import time

from larasniff import __version__
from larasniff.analyzers import ANALYZER_CLASSES
from larasniff.config import load_config
from larasniff.errors import ConfigError
from larasniff.issues import Severity
from larasniff.report import FORMATTERS, color_enabled, format_text
from larasniff.runner import Engine

EXIT_OK = 0
EXIT_ISSUES = 1
EXIT_USAGE = 2

# ── Progress output (stderr) ─────────────────────────────────────────────────

_COLOR_ENABLED = color_enabled(sys.stderr)
_quiet = False


def _c(code: str, text: str) -> str:
    if not _COLOR_ENABLED:
        return text
    return f"\033[{code}m{text}\033[0m"


def _progress(msg: str, prefix: str = "[*]"):
    """Print progress/status to stderr (not mixed with results)."""
    if _quiet:
        return
    print(f"{_c('36', prefix)} {msg}", file=sys.stderr)


def _success(msg: str):
    _progress(msg, _c("32", "[+]"))


def _warn(msg: str):
    _progress(msg, _c("33", "[!]"))


def _error(msg: str):
    print(f"{_c('31', '[ERROR]')} {msg}", file=sys.stderr)


def _progress_bar(done: int, total: int):
    if _quiet or total <= 20:
        return
    bar_len = 30
    filled = int(bar_len * done / total)
    bar = '=' * filled + '-' * (bar_len - filled)
    end = '\n' if done == total else ''
    print(f"\r  [{bar}] {done}/{total} ({done / total:.0%})   ", end=end, file=sys.stderr)


# ── Helpers ──────────────────────────────────────────────────────────────────

def _id_list(value: str):
    return [v.strip() for v in value.split(',') if v.strip()]


def _severity(value: str) -> Severity:
    try:
        return Severity.parse(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid severity '{value}'")


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError('must be at least 1')
    return number


def list_analyzers():
    for cls in ANALYZER_CLASSES:
        meta = cls.metadata
        print(f"{meta.id:32} {meta.category.value:15} {meta.severity.value:9} {meta.name}")


def setup_logging(verbosity: int):
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, stream=sys.stderr,
                        format='%(levelname)s %(name)s: %(message)s')


# ── Main entry point ──────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='larasniff',
        description='larasniff - Laravel/PHP anti-pattern scanner',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Exit codes:
  0  no issue at or above --fail-on
  1  at least one issue at or above --fail-on
  2  configuration error or missing path

Output Formats:
  text   Console output grouped by analyzer [DEFAULT]
  json   Machine-readable for CI/CD pipelines
  sarif  GitHub Code Scanning integration
        '''
    )
    parser.add_argument('path', nargs='?', help='Laravel project directory (or a single PHP file)')
    parser.add_argument('-c', '--config', help='Config file (default: <path>/larasniff.yml)')
    parser.add_argument('-f', '--format', choices=sorted(FORMATTERS), default='text',
                        help='Output format (default: text)')
    parser.add_argument('-o', '--output', help='Output file path')
    parser.add_argument('--only', type=_id_list, help='Comma-separated analyzer ids to run')
    parser.add_argument('--skip', type=_id_list, help='Comma-separated analyzer ids to skip')
    parser.add_argument('--workers', type=_positive_int, help='Worker threads (default: CPU count)')
    parser.add_argument('--fail-on', type=_severity,
                        help='Lowest severity that makes the run fail (default: high)')
    parser.add_argument('--cache-dir', help='Directory for the persistent model registry cache')
    parser.add_argument('--list', action='store_true', help='List available analyzers and exit')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Log to stderr (-v info, -vv debug)')
    parser.add_argument('-q', '--quiet', action='store_true',
                        help='Suppress progress output (results only)')
    parser.add_argument('--version', action='version', version=f'larasniff {__version__}')
    return parser


def main(argv=None):
    """Main entry point."""
    global _quiet

    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    _quiet = args.quiet

    if args.list:
        list_analyzers()
        return EXIT_OK
    if not args.path:
        parser.print_usage(sys.stderr)
        _error("a project path is required")
        return EXIT_USAGE
    if not os.path.exists(args.path):
        _error(f"Target not found: {args.path}")
        return EXIT_USAGE

    target = os.path.abspath(args.path)
    files = None
    base_path = target
    if os.path.isfile(target):
        base_path = os.getcwd() if target.startswith(os.getcwd() + os.sep) else os.path.dirname(target)
        files = [target]

    try:
        config = load_config(args.config, base_path)
        if args.workers:
            config.workers = args.workers
        if args.fail_on:
            config.fail_on = args.fail_on
        if args.cache_dir:
            config.cache_dir = args.cache_dir

        _progress(f"Scanning: {target}")
        start = time.time()
        report = Engine(config, progress=_progress_bar).run(
            base_path, only=args.only, skip=args.skip, files=files)
    except ConfigError as e:
        _error(str(e))
        return EXIT_USAGE

    elapsed = time.time() - start
    _success(f"Analysed {report.files_scanned} files in {elapsed:.1f}s")
    if report.parse_failures:
        _warn(f"{len(report.parse_failures)} file(s) skipped due to syntax errors")

    if args.format == 'text':
        color = not args.output and color_enabled(sys.stdout)
        output = format_text(report, config.max_issues_per_check, color)
    else:
        output = FORMATTERS[args.format](report)

    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            f.write(output)
        _success(f"Results saved to: {args.output}")
    else:
        sys.stdout.write(output)

    if report.has_failures(config.fail_on):
        return EXIT_ISSUES
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
