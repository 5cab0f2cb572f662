"""
``covflow classify``, ``covflow instrument`` and ``covflow codemap``: show
what the analyzers make of one file.
"""

import json
import sys

from covflow.analysis.classifier import classify_source
from covflow.analysis.structure import analyze
from covflow.errors import CoverageError
from covflow.frontend.lineindex import LineIndex
from covflow.instrumentation.transformer import instrument
from covflow.util.io.filesystem import FileAccessor


def add_inspection_parsers(subparsers):
    """Add the classify, instrument and codemap subcommand parsers."""
    for name, text in (
        ("classify", "Print the classification of every line"),
        ("instrument", "Print the instrumented source"),
        ("codemap", "Print the functions, blocks and conditions as JSON"),
    ):
        parser = subparsers.add_parser(name, help=text)
        parser.add_argument("file", help="Python source file")


def run_inspection(args, out=None):
    out = out if out is not None else sys.stdout
    try:
        content = FileAccessor().read(args.file)
        if args.command == "classify":
            index = LineIndex(content)
            for lineno, info in enumerate(classify_source(content), 1):
                out.write("%4d %-14s %s\n" % (lineno, info.classification.value, index.text(lineno)))
        elif args.command == "instrument":
            out.write(instrument(content, args.file).text)
        else:
            _, code_map = analyze(content, args.file)
            out.write(json.dumps(code_map.as_dict(), indent=2))
            out.write("\n")
    except CoverageError as e:
        print("Error: %s" % e.reason(), file=sys.stderr)
        return 1
    return 0
