"""
``covflow run``: execute a script under coverage.
"""

import argparse
import logging
import os
import sys
import traceback

from covflow.application.context import CoverageContext
from covflow.config import STRATEGIES, CoverageConfig
from covflow.runtime.stats import rss_megabytes
from covflow.util.application.console import Console
from covflow.util.io import formatting

LOG = logging.getLogger(__name__)


def add_run_parser(subparsers):
    """Add run subcommand parser."""
    run_parser = subparsers.add_parser("run", help="Run a Python script under coverage")
    run_parser.add_argument("script", help="Script to execute")
    run_parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments passed to the script")
    run_parser.add_argument(
        "--strategy", choices=STRATEGIES, default="runtime", help="How files are tracked by default"
    )
    run_parser.add_argument(
        "--instrument",
        action="append",
        default=[],
        metavar="PATTERN",
        help="Track files matching PATTERN by instrumentation (repeatable)",
    )
    run_parser.add_argument("--include", help="Comma-separated list of file patterns to track")
    run_parser.add_argument("--exclude", help="Comma-separated list of file patterns to skip")
    run_parser.add_argument("--root", help="Track files under this directory (default: cwd)")
    run_parser.add_argument("--exclude-tests", action="store_true", help="Do not track test files")
    run_parser.add_argument(
        "--no-discover", action="store_true", help="Leave tracked files that never ran out of the report"
    )
    run_parser.add_argument("--cache-dir", help="Directory for cached rewritten sources")
    run_parser.add_argument("--data-file", help="Save the raw coverage data to this JSON file")
    run_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    run_parser.add_argument("-d", "--debug", action="store_true", help="Debug output")


def _patterns(value):
    return [p.strip() for p in value.split(",") if p.strip()] if value else []


def config_from_args(args):
    config = CoverageConfig()
    config.set_option("strategy", args.strategy)
    config.set_option("strategy_overrides", [(pattern, "instrument") for pattern in args.instrument])
    config.set_option("include", _patterns(args.include))
    config.set_option("exclude", _patterns(args.exclude))
    config.set_option("exclude_test_files", args.exclude_tests)
    config.set_option("discover", not args.no_discover)
    config.set_option("cache_dir", args.cache_dir)
    config.set_option("root", args.root)
    return config


def report(console, snapshot, root):
    """Print the per-file table and the totals."""
    rows = []
    for path, item in sorted(snapshot.files.items()):
        rows.append(
            (
                os.path.relpath(path, root),
                formatting.percentage(item.lines.executed, item.lines.total).strip(),
                "%d/%d" % (item.functions.executed, item.functions.total),
                "%d/%d" % (item.blocks.executed, item.blocks.total),
                "%d/%d" % (item.conditions.covered, item.conditions.total),
            )
        )
    totals = snapshot.totals
    rows.append(
        (
            "TOTAL",
            formatting.percentage(totals.lines.executed, totals.lines.total).strip(),
            "%d/%d" % (totals.functions.executed, totals.functions.total),
            "%d/%d" % (totals.blocks.executed, totals.blocks.total),
            "%d/%d" % (totals.conditions.covered, totals.conditions.total),
        )
    )
    console.table(("File", "Lines", "Functions", "Blocks", "Conditions"), rows)


def run_coverage(args, out=None):
    """Run ``args.script`` under coverage and print a summary.

    Returns:
        The script's exit status.
    """
    level = logging.DEBUG if args.debug else logging.INFO if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")

    config = config_from_args(args)
    console = Console(out, verbose=args.verbose)
    context = CoverageContext(config)

    status = 0
    with console.scope("run"):
        context.start()
        try:
            context.run_path(args.script, args.args)
        except SystemExit as e:
            if e.code is None:
                status = 0
            elif isinstance(e.code, int):
                status = e.code
            else:
                print(e.code, file=sys.stderr)
                status = 1
        except Exception:
            traceback.print_exc()
            status = 1
        finally:
            context.stop()

    with console.scope("report"):
        report(console, context.snapshot(), config.root)
        console.output(context.summary(), 0)
        console.verbose_output("%s, rss: %d MB" % (context.tracker.stats.summary(), rss_megabytes()), 0)
        if args.data_file:
            context.store.save(args.data_file)
            console.output("coverage data written to %s" % args.data_file, 0)
    return status
