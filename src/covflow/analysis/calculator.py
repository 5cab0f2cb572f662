"""
Coverage statistics derived from a CoverageStore.

**Entities:**
- lines: executable lines; executed and covered come from the LineRecords
- functions: executed when called, covered once a covered line lies in
  their body
- blocks: covered when executed and one of their lines is covered
- conditions: covered when fully covered (both outcomes seen)

Percentages are ``covered / total * 100`` and 0 for an empty total.
``executed_percent`` gives the same ratio for execution alone.
"""

from dataclasses import dataclass, field
from typing import Dict, List

from covflow.data.records import Classification, LineState
from covflow.util.io import formatting

ENTITIES = ("lines", "functions", "blocks", "conditions")


def _percent(part, total):
    return part * 100.0 / total if total else 0.0


@dataclass
class EntityStats:
    total: int = 0
    executed: int = 0
    covered: int = 0

    @property
    def percent(self):
        return _percent(self.covered, self.total)

    @property
    def executed_percent(self):
        return _percent(self.executed, self.total)

    def add(self, other):
        self.total += other.total
        self.executed += other.executed
        self.covered += other.covered

    def as_dict(self):
        return {
            "total": self.total,
            "executed": self.executed,
            "covered": self.covered,
            "percent": self.percent,
            "executed_percent": self.executed_percent,
        }

    def __str__(self):
        return "%s executed, %s covered" % (
            formatting.percentage(self.executed, self.total).strip(),
            formatting.percentage(self.covered, self.total).strip(),
        )


@dataclass
class FileCoverage:
    path: str
    lines: EntityStats = field(default_factory=EntityStats)
    functions: EntityStats = field(default_factory=EntityStats)
    blocks: EntityStats = field(default_factory=EntityStats)
    conditions: EntityStats = field(default_factory=EntityStats)
    states: List[LineState] = field(default_factory=list)

    def as_dict(self):
        result = {name: getattr(self, name).as_dict() for name in ENTITIES}
        result["path"] = self.path
        result["states"] = [state.value for state in self.states]
        return result


@dataclass
class CoverageSnapshot:
    """Aggregates of one file or of every file in a store.

    Attributes:
        files: Mapping normalized path -> FileCoverage.
        totals: FileCoverage summed over ``files`` (path "<total>").
        untracked: Failures of files that could not be tracked.
    """

    files: Dict[str, FileCoverage] = field(default_factory=dict)
    totals: FileCoverage = field(default_factory=lambda: FileCoverage("<total>"))
    untracked: list = field(default_factory=list)

    def as_dict(self):
        return {
            "files": {path: item.as_dict() for path, item in sorted(self.files.items())},
            "totals": {name: getattr(self.totals, name).as_dict() for name in ENTITIES},
            "untracked": [f.as_dict() for f in self.untracked],
        }


def line_state(record) -> LineState:
    if record.classification is not Classification.EXECUTABLE:
        return LineState.NON_EXECUTABLE
    if record.covered:
        return LineState.COVERED
    if record.executed:
        return LineState.EXECUTED_NOT_COVERED
    return LineState.NOT_EXECUTED


def line_states(source) -> List[LineState]:
    """Four-state classification of every line of a SourceFile.

    Comment lines count as non-executable.
    """
    return [line_state(record) for record in source.lines]


def file_coverage(source) -> FileCoverage:
    result = FileCoverage(source.path)
    covered_lines = set()
    for record in source.executable_lines():
        result.lines.total += 1
        if record.executed:
            result.lines.executed += 1
        if record.covered:
            result.lines.covered += 1
            covered_lines.add(record.number)
    result.states = line_states(source)

    for function in source.functions.values():
        result.functions.total += 1
        result.functions.executed += function.executed
        result.functions.covered += function.covered

    for block in source.blocks.values():
        result.blocks.total += 1
        if block.executed:
            result.blocks.executed += 1
            if any(block.start_line <= line <= block.end_line for line in covered_lines):
                result.blocks.covered += 1

    for condition in source.conditions.values():
        result.conditions.total += 1
        result.conditions.executed += condition.executed
        result.conditions.covered += condition.fully_covered
    return result


def compute(store, path=None) -> CoverageSnapshot:
    """Compute statistics for one file, or for every file when ``path`` is None.

    A path that is not tracked gives an empty snapshot; its failure, if
    any, is listed under ``untracked``.
    """
    snapshot = CoverageSnapshot()
    if path is None:
        sources = list(store.files.values())
        snapshot.untracked = store.untracked()
    else:
        key = store.key(path)
        source = store.get_file_data(key)
        sources = [source] if source is not None else []
        snapshot.untracked = store.errors.failed(key)

    for source in sources:
        item = file_coverage(source)
        snapshot.files[source.path] = item
        for name in ENTITIES:
            getattr(snapshot.totals, name).add(getattr(item, name))
    return snapshot
