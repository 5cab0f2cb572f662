import importlib
import sys

import pytest

from covflow.application.context import CoverageContext
from covflow.config import CoverageConfig
from covflow.errors import CoverageIOError

SCRIPT = """
def classify(n):
    if n > 0:
        return "pos"
    return "other"

results = [classify(1), classify(-1)]
"""


def executed(context, path):
    return [r.number for r in context.store.get_file_data(path).lines if r.executed]


@pytest.mark.parametrize("strategy", ["runtime", "instrument"])
def test_run_path_records_coverage(sources, strategy):
    path = sources.write(SCRIPT)
    context = sources.context(hooks=True, strategy=strategy)
    with context:
        namespace = context.run_path(path)
    assert namespace["results"] == ["pos", "other"]
    assert namespace["__name__"] == "__main__"
    assert executed(context, path) == [1, 2, 3, 4, 6]

    source = context.store.get_file_data(path)
    assert source.functions[1].execution_count == 2
    assert source.conditions[1].fully_covered
    assert context.failures() == []


@pytest.mark.parametrize("strategy", ["runtime", "instrument"])
def test_multi_line_condition_outcome(sources, strategy):
    path = sources.write(
        """
        a = True
        b = True
        if (a and
                b):
            hit = 1
        """
    )
    context = sources.context(hooks=True, strategy=strategy)
    with context:
        namespace = context.run_path(path)
    assert namespace["hit"] == 1
    condition = context.store.get_file_data(path).conditions[1]
    assert (condition.executed_true, condition.executed_false) == (1, 0)


def test_instrumented_run_without_hooks(sources):
    path = sources.write(SCRIPT)
    context = sources.context(strategy="instrument")
    with context:
        context.run_path(path)
    lines = context.snapshot(path).files[path].lines
    assert (lines.total, lines.executed) == (5, 5)
    assert path in context.tracker.skip


def test_run_path_passes_arguments(sources):
    path = sources.write(
        """
        import sys
        args = sys.argv[1:]
        """
    )
    saved = list(sys.argv)
    context = sources.context(strategy="instrument")
    with context:
        namespace = context.run_path(path, ["a", "b"])
    assert namespace["args"] == ["a", "b"]
    assert sys.argv == saved


def test_run_path_unreadable_script(sources):
    context = sources.context()
    with pytest.raises(CoverageIOError):
        context.run_path(str(sources.root / "missing.py"))


def test_import_hook_instruments_modules(sources):
    sources.write(
        """
        def double(x):
            return x * 2
        """,
        "covflow_helper_mod.py",
    )
    main = sources.write(
        """
        import covflow_helper_mod

        value = covflow_helper_mod.double(4)
        """,
        "main.py",
    )
    helper = str(sources.root / "covflow_helper_mod.py")
    importlib.invalidate_caches()
    context = sources.context(hooks=True, strategy="instrument")
    try:
        with context:
            namespace = context.run_path(main)
    finally:
        sys.modules.pop("covflow_helper_mod", None)

    assert namespace["value"] == 8
    assert executed(context, helper) == [1, 2]
    assert context.store.get_file_data(helper).functions[1].execution_count == 1
    assert context.finder not in sys.meta_path


def test_failed_rewrite_falls_back_to_runtime(sources):
    path = sources.write(
        """
        # covflow: no-instrument
        total = sum([1, 2])
        """
    )
    context = sources.context(hooks=True, strategy="instrument")
    with context:
        namespace = context.run_path(path)
    assert namespace["total"] == 3
    assert executed(context, path) == [2]
    assert [f.classification for f in context.failures()] == ["instrumentation"]
    assert path not in context.tracker.skip


def test_stop_discovers_files_that_never_ran(sources):
    path = sources.write(SCRIPT)
    unused = sources.write(
        """
        def unused():
            return 1
        """,
        "pkg/unused.py",
    )
    sources.write("x = 1\n", "tests/helpers.py")
    context = sources.context(strategy="instrument", exclude_test_files=True)
    with context:
        context.run_path(path)

    lines = context.snapshot(unused).files[unused].lines
    assert (lines.total, lines.executed) == (2, 0)
    assert context.store.get_file_data(str(sources.root / "tests" / "helpers.py")) is None
    assert "2 files tracked, 0 with problems" in context.summary()

    quiet = sources.context(strategy="instrument", discover=False)
    with quiet:
        quiet.run_path(path)
    assert quiet.store.get_file_data(unused) is None


def test_malformed_file_is_reported_not_raised(sources):
    path = sources.write("def broken(:\n    pass\n", "broken.py")
    context = sources.context()
    with context:
        assert not context.track_execution(path, 1)
        namespace = context.run_path(path)
    assert "broken" not in namespace
    assert context.instrument_file(path) is None

    summary = context.summary()
    assert "0 files tracked, 1 with problems" in summary
    assert "broken.py [parse] ParseError" in summary
    assert context.snapshot(path).untracked[0].classification == "parse"


class TestInstrumentFile:
    def test_strategies(self, sources):
        fast = sources.write("x = 1\n", "fast.py")
        slow = sources.write("y = 2\n", "slow_mod.py")
        context = sources.context(strategy_overrides=[("*/slow_*.py", "instrument")])
        assert context.instrument_file(fast) == "runtime"
        assert context.instrument_file(slow) == "instrument"

    def test_untracked_files(self, sources, tmp_path_factory):
        outside = tmp_path_factory.mktemp("elsewhere") / "other.py"
        outside.write_text("x = 1\n", encoding="utf-8")
        context = sources.context()
        assert context.instrument_file(str(outside)) is None
        assert context.instrument_file(str(sources.root / "missing.py")) is None
        assert [f.classification for f in context.failures()] == ["io"]


class TestData:
    def test_mark_and_reset(self, sources):
        path = sources.write(SCRIPT)
        context = sources.context()
        assert context.track_execution(path, 6)
        assert context.mark_covered(path, 3)
        assert context.is_covered(path, 3)
        assert not context.is_covered(path, 6)
        assert path in context.raw_data()["files"]

        context.reset(path)
        assert not context.is_covered(path, 3)
        assert not context.store.is_executed(path, 6)

        context.track_execution(path, 6)
        context.full_reset()
        assert context.store.files == {}

    def test_contexts_are_independent(self, sources):
        path = sources.write(SCRIPT)
        first, second = sources.context(), sources.context()
        first.track_execution(path, 1)
        assert first.store.is_executed(path, 1)
        assert not second.store.is_executed(path, 1)

    def test_default_config(self):
        context = CoverageContext(hooks=False)
        assert isinstance(context.config, CoverageConfig)
        assert context.config.get_option("strategy") == "runtime"
