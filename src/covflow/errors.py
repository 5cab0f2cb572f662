"""
Exception classes for coverage collection.

The engine never lets one of these escape into the program being measured.
Each kind maps onto one way of degrading:

- ValidationError: bad caller input, raised straight back to the caller.
- ParseError: the file cannot be parsed, it is left untracked.
- CoverageIOError: the file cannot be read, it is excluded.
- HookError: a tracking hook failed, the single event is dropped.
- InstrumentationError: a rewrite failed validation, the file falls back
  to the runtime tracker.
"""


class CoverageError(Exception):
    """Base class for all coverage errors.

    Attributes:
        path: File the error relates to, or None.
    """

    kind = "error"

    def __init__(self, message, path=None):
        super().__init__(message)
        self.path = path

    def reason(self):
        """Short "Kind: message" string used in end-of-run summaries."""
        return "%s: %s" % (type(self).__name__, self)


class ValidationError(CoverageError):
    """Raised for bad caller input (missing path, non-positive line, ...)."""

    kind = "validation"


class ParseError(CoverageError):
    """Raised when a source file cannot be parsed.

    Attributes:
        lineno: Line reported by the parser, if known.
    """

    kind = "parse"

    def __init__(self, message, path=None, lineno=None):
        super().__init__(message, path)
        self.lineno = lineno


class CoverageIOError(CoverageError):
    """Raised when a source file cannot be read."""

    kind = "io"


class HookError(CoverageError):
    """Unexpected failure inside a tracking hook."""

    kind = "hook"


class InstrumentationError(CoverageError):
    """Raised when rewritten source fails validation."""

    kind = "instrumentation"
