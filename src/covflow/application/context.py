"""
The control surface of a coverage run.

A CoverageContext owns one store, one runtime tracker and one
instrumenter. Several contexts may coexist; only one of them can have its
hooks installed at a time, since the interpreter has a single trace
function.
"""

import logging

from covflow.analysis import calculator
from covflow.config import CoverageConfig
from covflow.data.store import CoverageStore
from covflow.errors import CoverageError
from covflow.filters import FileFilter
from covflow.instrumentation import loader
from covflow.instrumentation.cache import RewriteCache
from covflow.instrumentation.probe import Probe
from covflow.instrumentation.transformer import Instrumenter
from covflow.runtime.tracker import RuntimeTracker
from covflow.util.application.errorhandler import ErrorHandler
from covflow.util.io import filesystem

LOG = logging.getLogger(__name__)


class CoverageContext(object):
    """Collects coverage for one run.

    Example:
        with CoverageContext(CoverageConfig(strategy="instrument")) as ctx:
            ctx.run_path("script.py")
        print(ctx.snapshot().totals.lines)

    Attributes:
        config: CoverageConfig of the run.
        store: CoverageStore receiving the data.
        filter: FileFilter selecting tracked files and their strategy.
        tracker: RuntimeTracker for runtime tracked files and probe calls.
        instrumenter: Instrumenter for files tracked by rewriting.
        hooks: Install the trace function and import hook on ``start``.
    """

    def __init__(self, config=None, store=None, accessor=None, hooks=True):
        self.config = config if config is not None else CoverageConfig()
        self.store = store if store is not None else CoverageStore(accessor, ErrorHandler())
        self.filter = FileFilter(self.config)
        self.tracker = RuntimeTracker(self.store, self.filter, self.config.get_option("queue_size"))

        cache_dir = self.config.get_option("cache_dir")
        self.instrumenter = Instrumenter(RewriteCache(cache_dir) if cache_dir else None)
        self.finder = loader.InstrumentingFinder(self)
        self.hooks = hooks

    # Lifecycle

    def start(self):
        self.tracker.start()
        if self.hooks:
            self.finder.install()
            self.tracker.install()
        LOG.debug("coverage started")

    def stop(self):
        self.tracker.stop()
        self.finder.uninstall()
        if self.config.get_option("discover"):
            self.discover()
        LOG.debug("coverage stopped, %s", self.tracker.stats.summary())

    def pause(self):
        self.tracker.pause()

    def resume(self):
        self.tracker.resume()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, type, value, tb):
        self.stop()

    def reset(self, path):
        """Clear the data of one file."""
        self.store.reset_file(path)
        self.tracker.forget(self.store.key(path))

    def full_reset(self):
        self.store.full_reset()
        self.tracker.reset()

    # Data

    def track_execution(self, path, line):
        """Mark a line executed, as a line event would."""
        return self.store.set_line_executed(path, line)

    def mark_covered(self, path, line):
        return self.store.set_line_covered(path, line)

    def is_covered(self, path, line):
        return self.store.is_covered(path, line)

    def raw_data(self):
        return self.store.raw_data()

    def snapshot(self, path=None):
        """CoverageSnapshot of one file, or of every file when ``path`` is None."""
        return calculator.compute(self.store, path)

    def failures(self):
        return self.store.failures()

    def summary(self):
        """End-of-run text listing the files that could not be tracked."""
        errors = self.store.errors
        lines = ["%d files tracked, %s" % (len(self.store.files), errors.statusString())]
        lines.extend("  " + line for line in errors.summary_lines())
        return "\n".join(lines)

    def discover(self):
        """Register tracked files below the root that never ran.

        They enter the data with nothing executed, so they count against
        the totals instead of being left out.

        Returns:
            The number of files added.
        """
        added = 0
        for filename in filesystem.sourceFiles(self.filter.root):
            key = self.filter.wanted(filename)
            if key is None or key in self.store.files or self.store.errors.failed(key):
                continue
            if self.store.initialize_file(key) is not None:
                added += 1
        LOG.debug("discovered %d files that never ran", added)
        return added

    # Strategy selection

    def prepare(self, path, content):
        """Compile a file for execution under the strategy it is tracked with.

        Returns:
            (code, probe): ``probe`` is the Probe to install as the
            module's ``__covflow__`` global, or None when the file runs
            unmodified. ``code`` is None when the file cannot be tracked
            because it does not parse.
        """
        key = self.filter.wanted(path)
        if key is None:
            return compile(content, path, "exec", dont_inherit=True), None

        source = self.store.initialize_file(key, content)
        if source is None:
            return None, None

        if self.filter.strategy(key) == "instrument":
            try:
                result = self.instrumenter.instrument(content, key)
                code = result.code(path)
            except CoverageError as e:
                self.store.errors.failure(e, key)
                LOG.info("%s falls back to runtime tracking", key)
            else:
                self.tracker.skip.add(key)
                return code, Probe(self.tracker, key, result.bundles, result.exit_bundle)

        self.tracker.skip.discard(key)
        return compile(content, path, "exec", dont_inherit=True), None

    def instrument_file(self, path):
        """Prepare a file and report how it is tracked.

        Returns:
            "instrument", "runtime", or None for a file that is not tracked
            (filtered out, unreadable or unparseable).
        """
        if self.filter.wanted(path) is None:
            return None
        key = self.store.key(path)
        try:
            content = self.store.accessor.read(key)
        except CoverageError as e:
            self.store.errors.failure(e, key)
            return None
        code, probe = self.prepare(path, content)
        if code is None:
            return None
        return "instrument" if probe is not None else "runtime"

    def run_path(self, path, argv=None, run_name="__main__"):
        """Execute a script under coverage; returns its globals."""
        return loader.run_path(self, path, argv, run_name)
