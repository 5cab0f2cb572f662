import logging
import threading
import unittest

import pytest

from covflow.data.store import CoverageStore
from covflow.errors import ValidationError
from covflow.runtime.tracker import RuntimeTracker, TraceEvent, TrackerState
from covflow.util.io.filesystem import MemoryFileAccessor

PATH = "/src/classify.py"

SOURCE = """\
def classify(n):
    if n > 0:
        return "pos"
    return "other"
"""


def running_tracker(files=None, queue_size=10000):
    store = CoverageStore(MemoryFileAccessor(files if files is not None else {PATH: SOURCE}))
    tracker = RuntimeTracker(store, queue_size=queue_size)
    tracker.start()
    return tracker


def feed(tracker, *events, path=PATH, frame=1):
    for kind, line, *name in events:
        tracker.handle(TraceEvent(kind, path, line, frame, name[0] if name else None))


class TestEvents(unittest.TestCase):
    def setUp(self):
        self.tracker = running_tracker()
        self.store = self.tracker.store

    def source(self):
        return self.store.get_file_data(PATH)

    def testTrueOutcome(self):
        feed(self.tracker, ("call", 1, "classify"), ("line", 2), ("line", 3), ("return", 3))
        source = self.source()
        self.assertEqual(source.functions[1].execution_count, 1)
        self.assertEqual([r.number for r in source.lines if r.executed], [2, 3])
        condition = source.conditions[1]
        self.assertEqual((condition.executed_true, condition.executed_false), (1, 0))

    def testFalseOutcomeAndFullCoverage(self):
        feed(self.tracker, ("call", 1, "classify"), ("line", 2), ("line", 3), ("return", 3))
        feed(self.tracker, ("call", 1, "classify"), ("line", 2), ("line", 4), ("return", 4), frame=2)
        self.assertTrue(self.source().conditions[1].fully_covered)
        self.assertEqual(self.source().functions[1].execution_count, 2)

    def testBlocksEntered(self):
        feed(self.tracker, ("line", 2), ("line", 3))
        labels = sorted(b.label for b in self.source().blocks.values() if b.executed)
        self.assertEqual(labels, ["if", "then"])

    def testReturnResolvesFalse(self):
        feed(self.tracker, ("line", 2), ("return", 2))
        self.assertEqual(self.source().conditions[1].executed_false, 1)

    def testExceptionDiscardsPending(self):
        feed(self.tracker, ("line", 2), ("exception", 2), ("return", 2))
        self.assertFalse(self.source().conditions[1].executed)

    def testFramesAreIndependent(self):
        feed(self.tracker, ("line", 2), frame=1)
        feed(self.tracker, ("line", 4), frame=2)
        feed(self.tracker, ("line", 3), frame=1)
        self.assertEqual(self.source().conditions[1].executed_true, 1)
        self.assertEqual(self.source().conditions[1].executed_false, 0)

    def testUnknownCallIsIgnored(self):
        feed(self.tracker, ("call", 1, "<module>"))
        self.assertFalse(self.source().functions[1].executed)

    def testHookStats(self):
        feed(self.tracker, ("line", 2), ("line", 3))
        self.assertEqual(self.tracker.stats.calls, 2)
        self.assertGreaterEqual(self.tracker.stats.max, self.tracker.stats.average)


class TestLineFolding(unittest.TestCase):
    def testContinuationLinesCountOnce(self):
        tracker = running_tracker({"/src/m.py": "x = add(\n    1,\n)\ny = x\n"})
        feed(tracker, ("line", 1), ("line", 2), ("line", 1), ("line", 4), path="/src/m.py")
        source = tracker.store.get_file_data("/src/m.py")
        self.assertEqual(source.line(1).execution_count, 1)
        self.assertFalse(source.line(2).executed)
        self.assertTrue(source.line(4).executed)

    def testMultiLineIfTest(self):
        content = "a = True\nb = True\nif (a and\n        b):\n    hit = 1\n"
        tracker = running_tracker({"/src/i.py": content})
        events = [("line", 1), ("line", 2), ("line", 3), ("line", 4), ("line", 3), ("line", 5)]
        feed(tracker, *events, path="/src/i.py")
        source = tracker.store.get_file_data("/src/i.py")
        condition = source.conditions[1]
        self.assertEqual((condition.executed_true, condition.executed_false), (1, 0))
        self.assertEqual(source.line(3).execution_count, 1)

    def testMultiLineWhileTest(self):
        content = "n = 2\nwhile (n and\n       n > 0):\n    n -= 1\nend = n\n"
        tracker = running_tracker({"/src/w.py": content})
        iteration = [("line", 2), ("line", 3), ("line", 4)]
        events = [("line", 1)] + iteration * 2 + [("line", 2), ("line", 3), ("line", 5)]
        feed(tracker, *events, path="/src/w.py")
        source = tracker.store.get_file_data("/src/w.py")
        condition = source.conditions[1]
        self.assertEqual((condition.executed_true, condition.executed_false), (2, 1))
        self.assertEqual(source.line(2).execution_count, 3)
        self.assertFalse(source.line(3).executed)

    def testOneLineLoopCountsEveryIteration(self):
        content = "total = 0\nfor i in range(3): total += i\n"
        tracker = running_tracker({"/src/l.py": content})
        feed(tracker, ("line", 1), ("line", 2), ("line", 2), ("line", 2), ("line", 2), path="/src/l.py")
        source = tracker.store.get_file_data("/src/l.py")
        self.assertEqual(source.line(2).execution_count, 4)

    def testImpliedTryHeader(self):
        content = "try:\n    a = 1\nexcept:\n    a = 2\n"
        tracker = running_tracker({"/src/t.py": content})
        feed(tracker, ("line", 1), ("line", 2), path="/src/t.py")
        feed(tracker, ("line", 2), path="/src/t.py", frame=2)
        source = tracker.store.get_file_data("/src/t.py")
        self.assertEqual(source.line(1).execution_count, 2)
        self.assertEqual(source.line(2).execution_count, 2)

    def testDecoratorMarksDefLine(self):
        content = "@decorate\ndef f():\n    pass\n"
        tracker = running_tracker({"/src/d.py": content})
        feed(tracker, ("line", 1), path="/src/d.py")
        self.assertTrue(tracker.store.is_executed("/src/d.py", 2))


class TestStateMachine(unittest.TestCase):
    def testTransitions(self):
        tracker = RuntimeTracker(CoverageStore(MemoryFileAccessor({PATH: SOURCE})))
        self.assertEqual(tracker.state, TrackerState.IDLE)
        with self.assertRaises(ValidationError):
            tracker.resume()
        tracker.start()
        with self.assertRaises(ValidationError):
            tracker.start()
        tracker.pause()
        self.assertFalse(tracker.handle(TraceEvent("line", PATH, 2, 1)))
        self.assertFalse(tracker.store.is_executed(PATH, 2))
        tracker.resume()
        self.assertTrue(tracker.handle(TraceEvent("line", PATH, 2, 1)))
        tracker.stop()
        self.assertEqual(tracker.state, TrackerState.STOPPED)
        with self.assertRaises(ValidationError):
            tracker.start()

    def testIdleTrackerRecordsNothing(self):
        tracker = RuntimeTracker(CoverageStore(MemoryFileAccessor({PATH: SOURCE})))
        self.assertFalse(tracker.handle(TraceEvent("line", PATH, 2, 1)))
        self.assertEqual(tracker.store.files, {})


def test_error_barrier_drops_single_event(caplog):
    tracker = running_tracker()
    with caplog.at_level(logging.DEBUG):
        assert not tracker.hit(PATH, blocks=(99,))
    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]
    assert tracker.stats.errors == 1
    assert [f.classification for f in tracker.store.failures()] == ["hook"]
    assert tracker.hit(PATH, lines=(2,))
    assert tracker.store.is_executed(PATH, 2)


def test_unparseable_file_does_not_raise():
    tracker = running_tracker({"/src/bad.py": "def (:\n"})
    assert tracker.handle(TraceEvent("line", "/src/bad.py", 1, 1))
    assert [f.classification for f in tracker.store.untracked()] == ["parse"]


def test_foreign_thread_events_are_queued():
    tracker = running_tracker()
    worker = threading.Thread(target=tracker.submit, args=(TraceEvent("line", PATH, 2, 7),))
    worker.start()
    worker.join()
    assert not tracker.store.is_executed(PATH, 2)
    tracker.submit(TraceEvent("line", PATH, 4, 1))
    assert tracker.store.is_executed(PATH, 2)
    assert tracker.store.is_executed(PATH, 4)


def test_full_queue_drops_events():
    tracker = running_tracker(queue_size=1)

    def submit_two():
        tracker.submit(TraceEvent("line", PATH, 2, 7))
        tracker.submit(TraceEvent("line", PATH, 3, 7))

    worker = threading.Thread(target=submit_two)
    worker.start()
    worker.join()
    assert tracker.stats.dropped == 1
    tracker.stop()
    assert tracker.store.is_executed(PATH, 2)
    assert not tracker.store.is_executed(PATH, 3)


def test_journal():
    tracker = running_tracker()
    mark = tracker.checkpoint()
    feed(tracker, ("line", 2), ("line", 3))
    assert tracker.journaled(mark) == [(PATH, 2), (PATH, 3)]
    assert tracker.release(mark) == [(PATH, 2), (PATH, 3)]
    assert tracker.journal is None


@pytest.mark.parametrize("outcome", [True, False])
def test_condition_hits_skip_inference_when_asked(outcome):
    tracker = running_tracker({"/src/c.py": "if a and b:\n    pass\n"})
    tracker.hit_condition("/src/c.py", 1, outcome, infer=False)
    components = tracker.store.get_file_data("/src/c.py").conditions
    assert not components[2].executed and not components[3].executed
