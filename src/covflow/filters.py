"""
File selection: which files are tracked and with which strategy.
"""

import fnmatch
import logging
import os

from covflow.util.io.filesystem import normalizePath

LOG = logging.getLogger(__name__)

PACKAGE_DIR = os.path.dirname(normalizePath(__file__))

_TEST_NAMES = ("test_*.py", "*_test.py", "conftest.py")
_TEST_DIRS = ("tests", "test")


def is_test_file(path, root=None):
    """Return True for pytest/unittest style test modules.

    Only the directories below ``root`` (a prefix ending in a separator)
    are looked at when ``path`` lies under it.
    """
    name = os.path.basename(path)
    if any(fnmatch.fnmatch(name, pattern) for pattern in _TEST_NAMES):
        return True
    if root is not None and path.startswith(root):
        path = path[len(root):]
    parts = os.path.normpath(path).split(os.sep)
    return any(part in _TEST_DIRS for part in parts[:-1])


def _matches(path, patterns):
    for pattern in patterns:
        if fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(path, normalizePath(pattern)):
            return True
    return False


class FileFilter(object):
    """Decides whether a file is tracked.

    Results are cached per raw filename, since the runtime hook asks once
    for every new code object.
    """

    def __init__(self, config):
        self.config = config
        self.include = list(config.get_option("include"))
        self.exclude = list(config.get_option("exclude"))
        self.exclude_tests = config.get_option("exclude_test_files")
        self.root = normalizePath(config.root)
        self.prefix = self.root if self.root.endswith(os.sep) else self.root + os.sep
        self.cache = {}

    def wanted(self, filename):
        """Normalized path of ``filename`` if it is tracked, else None."""
        try:
            return self.cache[filename]
        except KeyError:
            pass
        result = self._decide(filename)
        self.cache[filename] = result
        return result

    def _decide(self, filename):
        if not filename or filename.startswith("<"):
            return None
        path = normalizePath(filename)
        if path.startswith(PACKAGE_DIR + os.sep):
            return None
        if self.include:
            if not _matches(path, self.include):
                return None
        elif not path.startswith(self.prefix):
            return None
        if _matches(path, self.exclude):
            return None
        if self.exclude_tests and is_test_file(path, self.prefix):
            return None
        return path

    def strategy(self, path):
        """Tracking strategy for ``path``: "runtime" or "instrument"."""
        for pattern, strategy in self.config.get_option("strategy_overrides"):
            if _matches(path, [pattern]):
                return strategy
        return self.config.get_option("strategy")
