import pytest

from covflow import expect, verify

SCRIPT = """
def classify(n):
    if n > 0:
        return "pos"
    return "other"

results = [classify(1), classify(-1)]
"""


@pytest.fixture
def run(sources):
    path = sources.write(SCRIPT)
    context = sources.context(strategy="instrument")
    context.start()
    yield context, path
    context.stop()


def test_passing_region_covers_executed_lines(run):
    context, path = run
    with verify(context):
        namespace = context.run_path(path)
        expect(context, namespace["results"] == ["pos", "other"])
    for line in (1, 2, 3, 4, 6):
        assert context.is_covered(path, line)
    assert context.tracker.journal is None


def test_failing_region_leaves_lines_executed(run):
    context, path = run
    with pytest.raises(AssertionError, match="wrong result"):
        with verify(context):
            namespace = context.run_path(path)
            expect(context, namespace["results"] == [], "wrong result")
    assert context.store.is_executed(path, 3)
    assert not context.is_covered(path, 3)
    assert context.tracker.journal is None


def test_nested_regions(run):
    context, path = run
    with pytest.raises(RuntimeError):
        with verify(context):
            with verify(context):
                context.tracker.hit(path, lines=(1,))
            context.tracker.hit(path, lines=(6,))
            raise RuntimeError("outer fails")
    assert context.is_covered(path, 1)
    assert not context.is_covered(path, 6)


def test_expect_covers_lines_so_far(run):
    context, path = run
    with pytest.raises(AssertionError):
        with verify(context):
            context.tracker.hit(path, lines=(1,))
            expect(context, True)
            context.tracker.hit(path, lines=(6,))
            expect(context, False)
    assert context.is_covered(path, 1)
    assert not context.is_covered(path, 6)


def test_expect_outside_region(run):
    context, path = run
    context.tracker.hit(path, lines=(1,))
    assert expect(context, 42) == 42
    assert not context.is_covered(path, 1)
    with pytest.raises(AssertionError, match="expectation failed"):
        expect(context, 0)
