"""
Coverage configuration.

Options are kept in a plain dictionary seeded from ``DEFAULTS``. The command
line fills it through ``set_option``; library users can do the same or pass
overrides to the constructor.
"""

import copy
import logging
import os

from covflow.errors import ValidationError

LOG = logging.getLogger(__name__)

STRATEGIES = ("runtime", "instrument")

DEFAULTS = {
    # fnmatch patterns; an empty include list tracks every file under cwd
    "include": [],
    "exclude": [],
    # how files are tracked unless an override pattern matches
    "strategy": "runtime",
    # list of (pattern, strategy) pairs, first match wins
    "strategy_overrides": [],
    # directory for memoized rewrites, None keeps them in memory only
    "cache_dir": None,
    "exclude_test_files": False,
    # events accepted from foreign threads before they are dropped
    "queue_size": 10000,
    # on stop, add tracked files below root that never ran
    "discover": True,
    "root": None,
}


class CoverageConfig(object):
    """Coverage options.

    Example:
        cfg = CoverageConfig()
        cfg.set_option("strategy", "instrument")
        cfg.get_option("cache_dir")
    """

    def __init__(self, **overrides):
        self.options = copy.deepcopy(DEFAULTS)
        for name, value in overrides.items():
            self.set_option(name, value)

    def get_option(self, name):
        if name not in self.options:
            raise ValidationError("unknown option %r" % (name,))
        return self.options[name]

    def set_option(self, name, value):
        if name not in DEFAULTS:
            raise ValidationError("unknown option %r" % (name,))
        if name == "strategy" and value not in STRATEGIES:
            raise ValidationError("strategy must be one of %s, got %r" % (", ".join(STRATEGIES), value))
        if name == "strategy_overrides":
            value = [tuple(item) for item in value]
            for _, strategy in value:
                if strategy not in STRATEGIES:
                    raise ValidationError("unknown strategy %r in overrides" % (strategy,))
        if name == "queue_size" and (not isinstance(value, int) or value < 1):
            raise ValidationError("queue_size must be a positive integer")
        self.options[name] = value

    @property
    def root(self):
        return self.options["root"] or os.getcwd()

    def as_dict(self):
        return copy.deepcopy(self.options)
