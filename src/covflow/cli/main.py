"""Main CLI dispatcher for covflow.

Parses the command line and hands the parsed arguments to the sub-command
modules.
"""

import argparse
import sys
from pathlib import Path

from covflow import __version__

from .inspection import add_inspection_parsers, run_inspection
from .merge import add_merge_parser, run_merge
from .run import add_run_parser, run_coverage


def build_parser():
    parser = argparse.ArgumentParser(
        description="covflow - line, block and condition coverage for Python", prog="covflow"
    )
    parser.add_argument("--version", action="version", version="covflow %s" % __version__)

    subparsers = parser.add_subparsers(dest="command", help="Available commands", required=True)
    add_run_parser(subparsers)
    add_inspection_parsers(subparsers)
    add_merge_parser(subparsers)
    return parser


def main(argv=None):
    """Main entry point for the covflow CLI.

    Returns:
        int: Exit code (0 for success, non-zero for error).
    """
    args = build_parser().parse_args(argv)

    if args.command == "run":
        input_path = Path(args.script)
    elif args.command == "merge":
        input_path = None
    else:
        input_path = Path(args.file)

    if input_path is not None and not input_path.exists():
        print(f"Error: Path '{input_path}' not found", file=sys.stderr)
        return 1

    if args.command == "run":
        return run_coverage(args)
    elif args.command == "merge":
        return run_merge(args)
    return run_inspection(args)


if __name__ == "__main__":
    sys.exit(main())
