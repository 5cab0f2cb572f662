"""
Failure collection and end-of-run reporting.

Coverage collection must never abort the measured program, so every problem
met while analyzing, instrumenting or reading a file is recorded here and
reported once, after the run, instead of being raised.
"""

import logging

from covflow import errors

LOG = logging.getLogger(__name__)


class Failure(object):
    """A file that could not be analyzed, instrumented or read.

    Attributes:
        path: Normalized file path.
        classification: Error kind ("parse", "io", "instrumentation", ...).
        message: Human readable reason.
    """

    __slots__ = "path", "classification", "message"

    def __init__(self, path, classification, message):
        self.path = path
        self.classification = classification
        self.message = message

    def __eq__(self, other):
        return isinstance(other, Failure) and (
            self.path,
            self.classification,
            self.message,
        ) == (other.path, other.classification, other.message)

    def __hash__(self):
        return hash((self.path, self.classification, self.message))

    def __repr__(self):
        return "Failure(%r, %r, %r)" % (self.path, self.classification, self.message)

    def as_dict(self):
        return {
            "path": self.path,
            "classification": self.classification,
            "message": self.message,
        }


class ErrorHandler(object):
    """Collects failures and warnings raised while collecting coverage.

    Each (path, classification) pair is logged only once, no matter how
    often it is reported, so a file that fails on every event does not
    flood the log.

    Attributes:
        warningCount: Number of warnings recorded.
        failures: Ordered mapping (path, classification) -> Failure.
    """

    def __init__(self):
        self.warningCount = 0
        self.failures = {}

    def failure(self, exc, path=None, level=logging.WARNING):
        """Record a failure for a file.

        Args:
            exc: CoverageError (or any exception) describing the problem.
            path: File the problem relates to; defaults to ``exc.path``.
            level: Log level of the first report.

        Returns:
            True if this is the first report for (path, classification).
        """
        path = path if path is not None else getattr(exc, "path", None)
        classification = getattr(exc, "kind", type(exc).__name__)
        if isinstance(exc, errors.CoverageError):
            message = exc.reason()
        else:
            message = "%s: %s" % (type(exc).__name__, exc)

        key = (path, classification)
        if key in self.failures:
            return False

        self.failures[key] = Failure(path, classification, message)
        LOG.log(level, "%s: %s", path, message)
        return True

    def add(self, failure):
        """Record an already built Failure (e.g. one loaded from disk)."""
        key = (failure.path, failure.classification)
        if key in self.failures:
            return False
        self.failures[key] = failure
        return True

    def warn(self, path, message):
        """Record a non-fatal warning about a file."""
        self.warningCount += 1
        LOG.warning("%s: %s", path, message)

    def forget(self, path):
        """Drop every failure recorded for ``path``."""
        for key in [k for k in self.failures if k[0] == path]:
            del self.failures[key]

    def clear(self):
        self.failures = {}
        self.warningCount = 0

    def failed(self, path):
        """Return the failures recorded for ``path``."""
        return [f for (p, _), f in self.failures.items() if p == path]

    def all_failures(self):
        return list(self.failures.values())

    def statusString(self):
        """Get formatted status string.

        Returns:
            String describing failure and warning counts.
        """
        return "%d with problems, %d warnings" % (len(self.failures), self.warningCount)

    def summary_lines(self):
        """Lines enumerating each failed file and its reason."""
        lines = []
        for failure in self.failures.values():
            lines.append("%s [%s] %s" % (failure.path, failure.classification, failure.message))
        return lines
