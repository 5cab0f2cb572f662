"""
On-disk cache of rewritten sources, keyed by content hash.
"""

import json
import logging
import os

from covflow.instrumentation.transformer import RewrittenSource
from covflow.util.io.filesystem import ensureDirectoryExists, writeData

LOG = logging.getLogger(__name__)


class RewriteCache(object):
    """Stores one ``<hash>.json`` file per rewritten source.

    Unreadable or outdated entries are treated as misses; failing to write
    an entry is logged and otherwise ignored.
    """

    def __init__(self, directory):
        self.directory = directory
        ensureDirectoryExists(directory)

    def _path(self, key):
        return os.path.join(self.directory, key + ".json")

    def get(self, key):
        path = self._path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            result = RewrittenSource.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError):
            LOG.debug("ignoring unreadable cache entry %s", path, exc_info=True)
            return None
        if result is None or result.content_hash != key:
            LOG.debug("ignoring outdated cache entry %s", path)
            return None
        return result

    def put(self, key, result):
        try:
            writeData(self._path(key), json.dumps(result.as_dict()))
        except OSError as e:
            LOG.warning("cannot write cache entry for %s: %s", key, e)
