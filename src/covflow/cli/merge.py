"""
``covflow merge``: combine coverage data files saved by ``covflow run``.
"""

import sys

from covflow.analysis import calculator
from covflow.data.store import CoverageStore
from covflow.errors import CoverageError


def add_merge_parser(subparsers):
    """Add merge subcommand parser."""
    merge_parser = subparsers.add_parser("merge", help="Merge saved coverage data files")
    merge_parser.add_argument("output", help="File to write the merged data to")
    merge_parser.add_argument("inputs", nargs="+", help="Coverage data files to merge")


def run_merge(args, out=None):
    out = out if out is not None else sys.stdout
    try:
        stores = [CoverageStore.load(path) for path in args.inputs]
    except CoverageError as e:
        print("Error: %s" % e.reason(), file=sys.stderr)
        return 1

    merged = stores[0]
    for store in stores[1:]:
        merged.merge(store)
    merged.save(args.output)

    totals = calculator.compute(merged).totals
    out.write("merged %d files from %d runs: lines %s\n" % (len(merged.files), len(merged.runs), totals.lines))
    return 0
