"""
Records of the coverage data model.

A SourceFile owns one LineRecord per line and the function, block and
condition records of its code map. Records are created once by static
analysis and afterwards only have their execution fields mutated.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Dict, List, Optional, Tuple

ROOT = 0


class Classification(str, Enum):
    EXECUTABLE = "executable"
    NON_EXECUTABLE = "non_executable"
    COMMENT = "comment"


class FunctionKind(str, Enum):
    GLOBAL = "global"
    LOCAL = "local"
    METHOD = "method"
    MODULE = "module"
    ANONYMOUS = "anonymous"


class BlockKind(str, Enum):
    CONDITIONAL = "conditional"
    LOOP_WHILE = "loop_while"
    LOOP_REPEAT = "loop_repeat"
    LOOP_FOR = "loop_for"
    FUNCTION = "function"
    DO = "do"


class ConditionKind(str, Enum):
    SIMPLE = "simple"
    COMPOUND = "compound"


class Operator(str, Enum):
    AND = "and"
    OR = "or"
    NOT = "not"
    NONE = "none"


class LineState(str, Enum):
    NON_EXECUTABLE = "non_executable"
    NOT_EXECUTED = "not_executed"
    EXECUTED_NOT_COVERED = "executed_not_covered"
    COVERED = "covered"


class _Record(object):
    """Shared (de)serialization and reset for the record dataclasses."""

    _mutable = ()
    _kind_enum = None

    def reset(self):
        for name in self._mutable:
            setattr(self, name, type(getattr(self, name))())

    def as_dict(self):
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, (list, tuple)):
                value = list(value)
            result[f.name] = value
        return result

    @classmethod
    def from_dict(cls, data):
        kwargs = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            if f.name == "classification":
                value = Classification(value)
            elif f.name == "operator":
                value = Operator(value)
            elif f.name == "kind" and cls._kind_enum is not None:
                value = cls._kind_enum(value)
            elif f.name == "params":
                value = tuple(value)
            kwargs[f.name] = value
        return cls(**kwargs)


@dataclass
class LineRecord(_Record):
    """One source line.

    ``logical_line`` is set on continuation lines of a multi-line statement
    and names the statement's first line.
    """

    number: int
    classification: Classification
    logical_line: Optional[int] = None
    executed: bool = False
    covered: bool = False
    execution_count: int = 0

    _mutable = ("executed", "covered", "execution_count")


@dataclass
class FunctionRecord(_Record):
    """A ``def`` or ``lambda``.

    ``first_line`` includes decorators; ``start_line`` is the ``def`` (or
    ``lambda``) line.
    """

    id: int
    kind: FunctionKind
    name: str
    start_line: int
    end_line: int
    first_line: int = 0
    params: Tuple[str, ...] = ()
    variadic: bool = False
    block_id: int = ROOT
    executed: bool = False
    covered: bool = False
    execution_count: int = 0

    _mutable = ("executed", "covered", "execution_count")
    _kind_enum = FunctionKind


@dataclass
class BlockRecord(_Record):
    """A syntactic region with its own control flow.

    Attributes:
        label: Role of a ``do`` block ("then", "else", "with", "try",
            "except", "finally", "class", "case", ...).
        header_line: Line of the statement that opens the block.
        entry_line: First line executed when control enters the block
            (None for an empty or comment-only body).
        branches: Ids of the then/else branch blocks of a conditional.
        conditions: Ids of the top-level conditions attached to the block.
    """

    id: int
    kind: BlockKind
    start_line: int
    end_line: int
    parent_id: int = ROOT
    label: str = ""
    header_line: int = 0
    entry_line: Optional[int] = None
    children: List[int] = field(default_factory=list)
    branches: List[int] = field(default_factory=list)
    conditions: List[int] = field(default_factory=list)
    executed: bool = False
    execution_count: int = 0

    _mutable = ("executed", "execution_count")
    _kind_enum = BlockKind


@dataclass
class ConditionRecord(_Record):
    """A boolean condition or one component of a compound condition.

    ``parent_id`` is the enclosing compound condition (ROOT for a clause
    test) and ``block_id`` the block the test belongs to. ``branch_id`` is
    the block entered when a clause test is true.

    ``true_inferred``/``false_inferred`` are set while an outcome is only
    known through inference from a compound parent; a direct observation
    of the same outcome clears them.
    """

    id: int
    kind: ConditionKind
    operator: Operator = Operator.NONE
    line: int = 0
    end_line: int = 0
    parent_id: int = ROOT
    block_id: int = ROOT
    branch_id: Optional[int] = None
    components: List[int] = field(default_factory=list)
    executed: bool = False
    executed_true: int = 0
    executed_false: int = 0
    true_inferred: bool = False
    false_inferred: bool = False

    _mutable = ("executed", "executed_true", "executed_false", "true_inferred", "false_inferred")
    _kind_enum = ConditionKind

    @property
    def fully_covered(self):
        return self.executed_true > 0 and self.executed_false > 0


def records_from_dict(cls, items) -> Dict[int, object]:
    result = {}
    for item in items:
        record = cls.from_dict(item)
        result[record.id] = record
    return result
