"""
Console output and timing for the command line tools.

Phases of a run (analysis, execution, reporting) are timed in nested
scopes; the elapsed time of each scope is printed when it ends.
"""

import sys
import time

from covflow.util.io import formatting


class Scope(object):
    """A timed phase; scopes nest into a tree.

    Attributes:
        parent: Parent scope, or None for the root.
        name: Name of this scope.
        children: Child scopes, in creation order.
    """

    def __init__(self, parent, name):
        self.parent = parent
        self.name = name
        self.children = []
        self._start = None
        self._end = None

    def begin(self):
        self._start = time.perf_counter()

    def end(self):
        self._end = time.perf_counter()

    @property
    def elapsed(self):
        """Seconds between ``begin`` and ``end`` (or now, while running)."""
        end = self._end if self._end is not None else time.perf_counter()
        return end - self._start

    def path(self):
        if self.parent is None:
            return ()
        return self.parent.path() + (self.name,)

    def child(self, name):
        scope = Scope(self, name)
        self.children.append(scope)
        return scope


class ConsoleScopeManager(object):
    """Context manager form of ``Console.begin``/``Console.end``.

    Example:
        with console.scope("execute"):
            context.run_path(script)
    """

    __slots__ = "console", "name"

    def __init__(self, console, name):
        self.console = console
        self.name = name

    def __enter__(self):
        self.console.begin(self.name)

    def __exit__(self, type, value, tb):
        self.console.end()


class Console(object):
    """Structured console output with timed scopes.

    Scope begin/end messages are only printed in verbose mode; results are
    always printed.

    Attributes:
        out: Output stream (default: sys.stdout).
        root: Root scope of the hierarchy.
        current: Currently active scope.
        verbose: Print scope messages.
    """

    def __init__(self, out=None, verbose=False):
        if out is None:
            out = sys.stdout
        self.out = out

        self.root = Scope(None, "root")
        self.current = self.root
        self.verbose = verbose

    def path(self):
        """Current scope path, e.g. "[ run | execute ]"."""
        return "[ %s ]" % " | ".join(self.current.path())

    def begin(self, name):
        scope = self.current.child(name)
        scope.begin()
        self.current = scope
        self.verbose_output("begin %s" % self.path(), 0)

    def end(self):
        self.current.end()
        self.verbose_output(
            "end   %s %s" % (self.path(), formatting.elapsedTime(self.current.elapsed)),
            0,
        )
        self.current = self.current.parent

    def scope(self, name):
        return ConsoleScopeManager(self, name)

    def output(self, s, tabs=1):
        """Write one line, indented by ``tabs`` tab characters."""
        if tabs:
            self.out.write("\t" * tabs)
        self.out.write(s)
        self.out.write("\n")

    def verbose_output(self, s, tabs=1):
        if self.verbose:
            self.output(s, tabs)

    def table(self, header, rows):
        """Write rows as left-aligned columns under ``header``."""
        rows = [tuple(str(cell) for cell in row) for row in rows]
        widths = [len(cell) for cell in header]
        for row in rows:
            widths = [max(w, len(cell)) for w, cell in zip(widths, row)]
        for row in [tuple(header)] + rows:
            self.output("  ".join(cell.ljust(w) for cell, w in zip(row, widths)).rstrip(), 0)
