"""
Runtime tracker: coverage from interpreter trace events.

The tracker consumes an ordered stream of TraceEvents. ``install`` adapts
``sys.settrace``/``threading.settrace`` to that stream; tests and other
hosts may feed events directly through ``handle``.

**Event handling:**
- call: the function whose code object starts on the line is executed
- line: the line (folded onto the first line of its statement) is executed,
  together with the blocks entered there, the ``def`` line of a decorator
  and header lines implied by entering a ``try`` body
- return/exception: resolve or discard a pending condition outcome

**Condition outcomes:**
When a line event hits an ``if``/``elif``/``while`` header, the condition
becomes pending for that frame. The next line event in the frame decides
it: a line inside the branch means the test was true, any other line (or
a return) means false. Continuation lines of a multi-line test belong to
the header and decide nothing. An exception discards it. Component
outcomes follow by inference in the store.

**Threads:**
Only the thread that started the tracker mutates the store. Events from
other threads go into a bounded queue that the owner drains before its
own next event; when the queue is full they are dropped and counted.

**Error barrier:**
Nothing raised while handling an event reaches the traced program. The
exception is logged at DEBUG level, the single event is dropped, and the
first failure per file is listed in the end-of-run summary as a HookError
without a WARNING of its own.
"""

import logging
import queue
import sys
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from covflow.errors import HookError, ValidationError
from covflow.runtime.stats import HookStats

LOG = logging.getLogger(__name__)


class TrackerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


_TRANSITIONS = {
    "start": ((TrackerState.IDLE,), TrackerState.RUNNING),
    "pause": ((TrackerState.RUNNING,), TrackerState.PAUSED),
    "resume": ((TrackerState.PAUSED,), TrackerState.RUNNING),
    "stop": ((TrackerState.RUNNING, TrackerState.PAUSED), TrackerState.STOPPED),
}


@dataclass(frozen=True)
class TraceEvent:
    """One execution event.

    Attributes:
        kind: "call", "line", "return" or "exception".
        path: Normalized file path.
        line: Line number (the code object's first line for "call").
        frame_key: Identity of the frame the event belongs to.
        name: Code object name, for "call" events.
    """

    kind: str
    path: str
    line: int
    frame_key: Optional[int] = None
    name: Optional[str] = None


class RuntimeTracker(object):
    """Feeds execution events into a CoverageStore.

    Attributes:
        store: CoverageStore receiving the data.
        filter: FileFilter deciding which files are traced, or None to
            trace every file.
        state: Current TrackerState.
        stats: HookStats of every handled event and probe call.
        skip: Paths tracked by instrumentation, ignored by the trace hook.
    """

    def __init__(self, store, file_filter=None, queue_size=10000, clock=time.perf_counter):
        self.store = store
        self.filter = file_filter
        self.clock = clock
        self.state = TrackerState.IDLE
        self.stats = HookStats()
        self.skip = set()
        self.events = queue.Queue(maxsize=queue_size)
        self.owner = None
        self.installed = False
        self.previous = None

        self.sources = {}
        self.pending = {}
        self.last_line = {}
        self.journal = None
        self.checkpoints = 0

    # State machine

    def _transition(self, action):
        allowed, target = _TRANSITIONS[action]
        if self.state not in allowed:
            raise ValidationError("cannot %s a tracker that is %s" % (action, self.state.value))
        LOG.debug("tracker %s -> %s", self.state.value, target.value)
        self.state = target

    def start(self):
        self._transition("start")
        self.owner = threading.get_ident()

    def pause(self):
        self._transition("pause")

    def resume(self):
        self._transition("resume")

    def stop(self):
        if self.state is TrackerState.RUNNING:
            self.drain()
        self._transition("stop")
        self.uninstall()

    @property
    def active(self):
        return self.state is TrackerState.RUNNING

    def reset(self):
        """Forget cached files and pending outcomes (after a store reset)."""
        self.sources = {}
        self.pending = {}
        self.last_line = {}

    def forget(self, path):
        self.sources.pop(path, None)
        for key in [k for k in self.pending if k[0] == path]:
            del self.pending[key]

    # Event intake

    def submit(self, event):
        """Accept an event from any thread."""
        if threading.get_ident() == self.owner:
            if not self.events.empty():
                self.drain()
            self.handle(event)
        else:
            try:
                self.events.put_nowait(event)
            except queue.Full:
                self.stats.dropped += 1

    def drain(self):
        """Handle every queued event from other threads."""
        while True:
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                return
            self.handle(event)

    def handle(self, event):
        """Handle one event on the owning thread.

        Returns:
            True if the event was recorded.
        """
        return self._guarded(self._dispatch, event)

    def _guarded(self, func, *args):
        if self.state is not TrackerState.RUNNING:
            return False
        start = self.clock()
        try:
            func(*args)
        except Exception as e:
            self.stats.errors += 1
            LOG.debug("dropped coverage event %r", args, exc_info=True)
            path = args[0].path if isinstance(args[0], TraceEvent) else args[0]
            self.store.errors.failure(HookError("%s: %s" % (type(e).__name__, e), path), path, logging.DEBUG)
            return False
        finally:
            self.stats.record(self.clock() - start)
        return True

    def _source(self, path):
        try:
            return self.sources[path]
        except KeyError:
            pass
        source = self.store.get_file_data(path)
        if source is None:
            source = self.store.initialize_file(path)
        self.sources[path] = source
        return source

    def _dispatch(self, event):
        source = self._source(event.path)
        if source is None:
            return
        code_map = source.code_map
        key = (event.path, event.frame_key)

        if event.kind == "line":
            record = source.line(event.line)
            line = event.line
            if record is not None and record.logical_line is not None:
                line = record.logical_line
            previous, previous_raw = self.last_line.get(key, (None, None))
            self.last_line[key] = (line, event.line)
            if line != previous:
                self._resolve(key, line)
            elif event.line != line or previous_raw != line:
                # continuation lines of one statement count once
                return
            self._line(event.path, line, code_map, previous)
            header = code_map.header_condition(line)
            if header is not None:
                self.pending[key] = header

        elif event.kind == "call":
            functions = code_map.functions_at(event.line, event.name)
            if functions:
                self.store.track_function_execution(event.path, functions[0].id)

        elif event.kind == "return":
            self.last_line.pop(key, None)
            pending = self.pending.pop(key, None)
            if pending is not None:
                self.store.track_condition_execution(event.path, pending[0], False)

        elif event.kind == "exception":
            self.pending.pop(key, None)

    def _resolve(self, key, line):
        pending = self.pending.pop(key, None)
        if pending is None:
            return
        cid, start, end = pending
        self.store.track_condition_execution(key[0], cid, start <= line <= end)

    def _line(self, path, line, code_map, previous=None):
        if self.store.set_line_executed(path, line) and self.journal is not None:
            self.journal.append((path, line))
        for target in code_map.aliases.get(line, ()):
            self.store.set_line_executed(path, target)
        for header in code_map.implied.get(line, ()):
            if header != previous:
                self.store.set_line_executed(path, header)
        for block_id in code_map.blocks_entered_at(line):
            self.store.track_block_execution(path, block_id)

    # Probe calls from instrumented code

    def hit(self, path, lines=(), blocks=(), functions=()):
        """Record a bundle reported by an instrumented file."""
        return self._guarded(self._hit, path, lines, blocks, functions)

    def _hit(self, path, lines, blocks, functions):
        for line in lines:
            if self.store.set_line_executed(path, line) and self.journal is not None:
                self.journal.append((path, line))
        for block_id in blocks:
            self.store.track_block_execution(path, block_id)
        for function_id in functions:
            self.store.track_function_execution(path, function_id)

    def hit_condition(self, path, condition_id, outcome, infer=False):
        return self._guarded(self.store.track_condition_execution, path, condition_id, outcome, infer)

    # Execution journal

    def checkpoint(self):
        """Start (or nest) journaling executed lines; returns a mark."""
        if self.journal is None:
            self.journal = []
        self.checkpoints += 1
        return len(self.journal)

    def journaled(self, mark):
        """Lines executed since ``mark``, oldest first."""
        if self.journal is None:
            return []
        return self.journal[mark:]

    def release(self, mark):
        """End a checkpoint and return the lines executed since ``mark``."""
        lines = self.journaled(mark)
        self.checkpoints -= 1
        if self.checkpoints <= 0:
            self.checkpoints = 0
            self.journal = None
        return lines

    # Host adapter

    def install(self):
        """Route interpreter trace events of this and new threads to the tracker."""
        if self.installed:
            return
        self.previous = sys.gettrace()
        threading.settrace(self._trace)
        sys.settrace(self._trace)
        self.installed = True

    def uninstall(self):
        if not self.installed:
            return
        sys.settrace(self.previous)
        threading.settrace(None)
        self.previous = None
        self.installed = False

    def _wanted(self, filename):
        if self.filter is None:
            return filename
        return self.filter.wanted(filename)

    def _trace(self, frame, event, arg):
        path = self._wanted(frame.f_code.co_filename)
        if path is None or path in self.skip:
            return None
        if event == "call":
            code = frame.f_code
            self.submit(TraceEvent("call", path, code.co_firstlineno, id(frame), code.co_name))
            return self._local
        return self._local(frame, event, arg)

    def _local(self, frame, event, arg):
        if event in ("line", "return", "exception"):
            path = self._wanted(frame.f_code.co_filename)
            if path is not None:
                self.submit(TraceEvent(event, path, frame.f_lineno, id(frame)))
        return self._local
