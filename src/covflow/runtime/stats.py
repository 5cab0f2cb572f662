"""
Hook latency and memory accounting.
"""

import os

import psutil

from covflow.util.io import formatting


def rss_megabytes():
    """Resident set size of the current process, in MB."""
    return psutil.Process(os.getpid()).memory_info().rss / 1024 / 1024


class HookStats(object):
    """Timing of tracking hook invocations.

    Attributes:
        calls: Number of hook invocations.
        total: Cumulative time spent in the hook, in seconds.
        last: Duration of the latest invocation.
        max: Longest invocation.
        errors: Invocations that failed and dropped their event.
        dropped: Events from other threads lost to a full queue.
    """

    __slots__ = "calls", "total", "last", "max", "errors", "dropped"

    def __init__(self):
        self.clear()

    def clear(self):
        self.calls = 0
        self.total = 0.0
        self.last = 0.0
        self.max = 0.0
        self.errors = 0
        self.dropped = 0

    def record(self, elapsed):
        self.calls += 1
        self.total += elapsed
        self.last = elapsed
        if elapsed > self.max:
            self.max = elapsed

    @property
    def average(self):
        return self.total / self.calls if self.calls else 0.0

    def as_dict(self):
        return {
            "calls": self.calls,
            "total": self.total,
            "average": self.average,
            "last": self.last,
            "max": self.max,
            "errors": self.errors,
            "dropped": self.dropped,
        }

    def summary(self):
        return "%d hook calls, %s total, %s average, %s max, %d errors, %d dropped" % (
            self.calls,
            formatting.elapsedTime(self.total).strip(),
            formatting.elapsedTime(self.average).strip(),
            formatting.elapsedTime(self.max).strip(),
            self.errors,
            self.dropped,
        )
