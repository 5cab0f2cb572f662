"""
Coverage data store.

**CoverageStore** is the single mutable root of collected coverage. It is an
ordinary object owned by the caller, so several independent stores can
live in one process (one per test worker, for instance) and be merged
afterwards.

Every mutator validates its input, raising ValidationError for a missing
path, a non-positive line or an unknown record id. Files that cannot be
read or parsed are never raised to the caller: they are recorded in the
store's ErrorHandler and left untracked.
"""

import json
import logging
import uuid

from covflow.analysis.structure import analyze
from covflow.data.records import Classification, ConditionRecord, Operator
from covflow.data.source import SourceFile
from covflow.errors import CoverageError, CoverageIOError, ValidationError
from covflow.util.application.errorhandler import ErrorHandler, Failure
from covflow.util.io.filesystem import FileAccessor, dataHash, normalizePath, writeData

LOG = logging.getLogger(__name__)

FORMAT_VERSION = 1


def _check_line(line):
    if isinstance(line, bool) or not isinstance(line, int) or line < 1:
        raise ValidationError("line number must be a positive integer, got %r" % (line,))


class CoverageStore(object):
    """Per-file coverage records keyed by normalized path.

    Attributes:
        accessor: File accessor used to read sources on first reference.
        errors: ErrorHandler collecting files that could not be tracked.
        files: Mapping normalized path -> SourceFile.
        runs: Identifiers of the runs whose data this store holds.
    """

    def __init__(self, accessor=None, errors=None):
        self.accessor = accessor if accessor is not None else FileAccessor()
        self.errors = errors if errors is not None else ErrorHandler()
        self.files = {}
        self.runs = {uuid.uuid4().hex}

    def key(self, path):
        """Validate ``path`` and return its normalized form."""
        if path is None or path == "":
            raise ValidationError("a file path is required")
        return normalizePath(str(path))

    # Files

    def initialize_file(self, path, content=None):
        """Analyze a file and register it, unless its content is unchanged.

        Args:
            path: File path.
            content: Source text; read through the accessor when omitted.

        Returns:
            The SourceFile, or None if the file could not be read or parsed.
        """
        key = self.key(path)
        if content is None:
            try:
                content = self.accessor.read(key)
            except CoverageIOError as e:
                self.errors.failure(e, key)
                return None

        existing = self.files.get(key)
        if existing is not None and existing.content_hash == dataHash(content):
            return existing

        try:
            tree, code_map = analyze(content, key)
        except CoverageError as e:
            e.path = key
            self.errors.failure(e, key)
            self.files.pop(key, None)
            return None

        if existing is not None:
            LOG.debug("%s changed, rebuilding its records", key)
        self.errors.forget(key)
        source = SourceFile.create(key, content, tree, code_map)
        self.files[key] = source
        return source

    def get_file_data(self, path):
        """Return the SourceFile registered for ``path``, or None."""
        return self.files.get(self.key(path))

    def _source(self, path):
        key = self.key(path)
        source = self.files.get(key)
        if source is None and not self.untracked_path(key):
            source = self.initialize_file(key)
        return source

    def untracked_path(self, key):
        """True if ``key`` failed to be read or parsed."""
        return any(f.classification in ("parse", "io") for f in self.errors.failed(key))

    def untracked(self):
        """Failures of files that could not be read, parsed or instrumented."""
        return self.errors.all_failures()

    def failures(self):
        return self.untracked()

    # Lines

    def set_line_executed(self, path, line):
        """Mark a line executed.

        Returns:
            True if the line was recorded; False for a line that is not
            executable, past the end of the file, or in an untracked file.
        """
        _check_line(line)
        source = self._source(path)
        if source is None:
            return False
        record = source.line(line)
        if record is None or record.classification is not Classification.EXECUTABLE:
            return False
        record.executed = True
        record.execution_count += 1
        return True

    def set_line_covered(self, path, line):
        """Mark a line covered (and executed), with its enclosing function.

        A line that is not executable is left alone and a warning logged.
        """
        _check_line(line)
        source = self._source(path)
        if source is None:
            return False
        record = source.line(line)
        if record is None:
            return False
        if record.classification is not Classification.EXECUTABLE:
            LOG.warning("%s:%d is %s, not marking it covered", source.path, line, record.classification.value)
            return False
        record.executed = True
        record.covered = True
        function = source.code_map.enclosing_function(line)
        if function is not None:
            function.executed = True
            function.covered = True
        return True

    def is_executed(self, path, line):
        _check_line(line)
        source = self.get_file_data(path)
        record = source.line(line) if source is not None else None
        return record is not None and record.executed

    def is_covered(self, path, line):
        _check_line(line)
        source = self.get_file_data(path)
        record = source.line(line) if source is not None else None
        return record is not None and record.covered

    # Code map records

    def _record(self, path, table, record_id, what):
        source = self._source(path)
        if source is None:
            return None
        record = getattr(source, table).get(record_id)
        if record is None:
            raise ValidationError("unknown %s id %r in %s" % (what, record_id, source.path), source.path)
        return record

    def track_function_execution(self, path, function_id):
        """Record one execution of a function and of its body block."""
        function = self._record(path, "functions", function_id, "function")
        if function is None:
            return False
        function.executed = True
        function.execution_count += 1
        body = self.files[self.key(path)].blocks.get(function.block_id)
        if body is not None:
            body.executed = True
            body.execution_count += 1
        return True

    def track_block_execution(self, path, block_id):
        block = self._record(path, "blocks", block_id, "block")
        if block is None:
            return False
        block.executed = True
        block.execution_count += 1
        return True

    def track_condition_execution(self, path, condition_id, outcome, infer=True):
        """Record an observed outcome of a condition.

        With ``infer`` set, outcomes implied for the components of compound
        conditions are recorded too, marked as inferred:

        - ``and`` true: both components true
        - ``or`` false: both components false
        - ``not``: the component has the opposite outcome

        Args:
            path: File path.
            condition_id: Id of the observed condition.
            outcome: True or False.
            infer: Apply the inference rules to components.
        """
        if not isinstance(outcome, bool):
            raise ValidationError("condition outcome must be True or False, got %r" % (outcome,))
        condition = self._record(path, "conditions", condition_id, "condition")
        if condition is None:
            return False
        conditions = self.files[self.key(path)].conditions

        _observe(condition, outcome, inferred=False)
        if not infer:
            return True

        work = [(condition, outcome)]
        while work:
            current, value = work.pop()
            implied = _implied(current, value)
            if implied is None:
                continue
            for component_id in current.components:
                component = conditions[component_id]
                _observe(component, implied, inferred=True)
                work.append((component, implied))
        return True

    # Resets

    def reset_file(self, path):
        """Clear the execution data of one file, keeping its records."""
        source = self.get_file_data(path)
        if source is not None:
            source.reset()
        self.errors.forget(self.key(path))

    def full_reset(self):
        """Drop every file and start a new run."""
        self.files = {}
        self.errors.clear()
        self.runs = {uuid.uuid4().hex}

    # Merging and persistence

    def merge(self, other):
        """Merge another store into this one.

        Flags are combined with OR and counts are summed. Data of a run that
        is already part of this store is not added twice, so merging a
        store with itself (or with a copy) leaves it unchanged.
        """
        if other.runs <= self.runs:
            return self
        if other.runs & self.runs:
            LOG.warning("merging stores with partially overlapping runs, counts of shared runs are added twice")

        for key, theirs in other.files.items():
            ours = self.files.get(key)
            if ours is None:
                self.files[key] = SourceFile.from_dict(theirs.as_dict())
            elif ours.content_hash != theirs.content_hash:
                self.errors.warn(key, "content differs between merged runs, keeping the first")
            else:
                _merge_file(ours, theirs)

        for failure in other.errors.all_failures():
            self.errors.add(Failure(failure.path, failure.classification, failure.message))
        self.runs |= other.runs
        return self

    def raw_data(self):
        """All records as plain data, suitable for JSON."""
        return {
            "version": FORMAT_VERSION,
            "runs": sorted(self.runs),
            "files": {key: source.as_dict() for key, source in sorted(self.files.items())},
            "failures": [f.as_dict() for f in self.errors.all_failures()],
        }

    @classmethod
    def from_raw(cls, data, accessor=None):
        if data.get("version") != FORMAT_VERSION:
            raise ValidationError("unsupported coverage data version %r" % (data.get("version"),))
        store = cls(accessor)
        store.runs = set(data.get("runs", ()))
        for key, item in data.get("files", {}).items():
            store.files[key] = SourceFile.from_dict(item)
        for item in data.get("failures", ()):
            store.errors.add(Failure(item["path"], item["classification"], item["message"]))
        return store

    def save(self, path):
        writeData(path, json.dumps(self.raw_data(), indent=1, sort_keys=True))

    @classmethod
    def load(cls, path, accessor=None):
        """Load a store saved with ``save``.

        Raises:
            CoverageIOError: If the file cannot be read or is not valid JSON.
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise CoverageIOError("cannot load coverage data from %s: %s" % (path, e), path) from e
        return cls.from_raw(data, accessor)


def merge_stores(first, second):
    """Merge two stores into a new one, leaving both unchanged."""
    result = CoverageStore.from_raw(first.raw_data(), first.accessor)
    return result.merge(second)


def _implied(condition, outcome):
    if condition.operator is Operator.AND:
        return True if outcome else None
    if condition.operator is Operator.OR:
        return None if outcome else False
    if condition.operator is Operator.NOT:
        return not outcome
    return None


def _observe(condition, outcome, inferred):
    condition.executed = True
    if outcome:
        if not inferred:
            condition.true_inferred = False
        elif condition.executed_true == 0:
            condition.true_inferred = True
        condition.executed_true += 1
    else:
        if not inferred:
            condition.false_inferred = False
        elif condition.executed_false == 0:
            condition.false_inferred = True
        condition.executed_false += 1


def _merge_record(ours, theirs):
    for name in ours._mutable:
        if name in ("true_inferred", "false_inferred"):
            continue
        mine = getattr(ours, name)
        other = getattr(theirs, name)
        if isinstance(mine, bool):
            setattr(ours, name, mine or other)
        else:
            setattr(ours, name, mine + other)


def _merge_condition(ours, theirs):
    for count, flag in (("executed_true", "true_inferred"), ("executed_false", "false_inferred")):
        direct = (getattr(ours, count) and not getattr(ours, flag)) or (
            getattr(theirs, count) and not getattr(theirs, flag)
        )
        seen = getattr(ours, count) or getattr(theirs, count)
        setattr(ours, flag, bool(seen) and not direct)
    _merge_record(ours, theirs)


def _merge_file(ours, theirs):
    for mine, other in zip(ours.lines, theirs.lines):
        _merge_record(mine, other)
    for table in ("functions", "blocks", "conditions"):
        mine = getattr(ours, table)
        for record_id, other in getattr(theirs, table).items():
            record = mine.get(record_id)
            if record is None:
                continue
            if isinstance(record, ConditionRecord):
                _merge_condition(record, other)
            else:
                _merge_record(record, other)
