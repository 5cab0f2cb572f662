"""
Tagged tree nodes produced by the frontend.

The structural analyzer and the instrumentation transformer never look at
the ``ast`` module directly: they walk this closed set of node classes.
Every node exposes a ``kind`` tag, a ``span`` (character offsets into the
source, end exclusive), its first and last line, and ``children()`` in
source order. Per-kind fields carry what the coverage components need
(condition expressions, decorator slots, clause lines, ...).
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class Span:
    """Character offsets ``[start, end)`` into the source text."""

    start: int
    end: int

    def __len__(self):
        return self.end - self.start

    def contains(self, other):
        return self.start <= other.start and other.end <= self.end


@dataclass(eq=False)
class Node:
    span: Span
    line: int
    end_line: int

    kind = "node"

    def children(self):
        return ()


# Expressions


@dataclass(eq=False)
class Expr(Node):
    """An expression treated as a unit (a leaf condition or a slot)."""

    kind = "expr"


@dataclass(eq=False)
class BoolOp(Expr):
    """Binary ``and``/``or``; longer chains are left-associated."""

    op: str = "and"
    left: Optional[Expr] = None
    right: Optional[Expr] = None

    kind = "boolop"

    def children(self):
        return (self.left, self.right)


@dataclass(eq=False)
class Not(Expr):
    operand: Optional[Expr] = None

    kind = "not"

    def children(self):
        return (self.operand,)


@dataclass(eq=False)
class Lambda(Expr):
    """A lambda expression.

    Attributes:
        binding: How the lambda is bound: "module", "function" or "class"
            for a plain name assignment in that scope, "attribute" for an
            attribute target, None when used inline.
        body: The expression returned by the lambda.
    """

    params: Tuple[str, ...] = ()
    variadic: bool = False
    binding: Optional[str] = None
    body: Optional[Expr] = None

    kind = "lambda"

    def children(self):
        return (self.body,)


# Statements


@dataclass(eq=False)
class Stmt(Node):
    """Base class of statements.

    Attributes:
        lambdas: Lambdas appearing in this statement's own expressions (not
            in nested statement bodies), outermost first.
    """

    lambdas: List[Lambda] = field(default_factory=list)

    kind = "stmt"

    def blocks(self):
        """Nested statement lists, in source order."""
        return ()

    def children(self):
        result = list(self.lambdas)
        for body in self.blocks():
            result.extend(body)
        return tuple(result)


@dataclass(eq=False)
class Simple(Stmt):
    """A simple statement.

    Attributes:
        keyword: Statement class name from the parser ("Assign", "Return", ...).
        docstring: Only string literals (never executed as code).
        declaration: ``global``/``nonlocal`` (no runtime effect).
        future: ``from __future__ import ...``.
    """

    keyword: str = ""
    docstring: bool = False
    declaration: bool = False
    future: bool = False

    kind = "simple"


@dataclass(eq=False)
class FunctionDef(Stmt):
    """``def`` / ``async def``.

    ``line`` is the ``def`` line; ``first_line`` includes decorators, which
    is where the interpreter places the code object's first line.
    """

    name: str = ""
    params: Tuple[str, ...] = ()
    variadic: bool = False
    is_async: bool = False
    scope: str = "module"
    static: bool = False
    first_line: int = 0
    decorators: List[Expr] = field(default_factory=list)
    defaults: List[Expr] = field(default_factory=list)
    body: List[Stmt] = field(default_factory=list)

    kind = "function"

    def blocks(self):
        return (self.body,)


@dataclass(eq=False)
class ClassDef(Stmt):
    name: str = ""
    first_line: int = 0
    decorators: List[Expr] = field(default_factory=list)
    body: List[Stmt] = field(default_factory=list)

    kind = "class"

    def blocks(self):
        return (self.body,)


@dataclass(eq=False)
class Clause:
    """One ``if``/``elif`` clause or one ``case`` of a ``match``."""

    line: int
    keyword: str
    test: Optional[Expr]
    body: List[Stmt]


@dataclass(eq=False)
class If(Stmt):
    """An ``if``/``elif``/``else`` chain flattened into clauses."""

    clauses: List[Clause] = field(default_factory=list)
    orelse: List[Stmt] = field(default_factory=list)
    else_line: Optional[int] = None

    kind = "if"

    def blocks(self):
        return tuple(c.body for c in self.clauses) + ((self.orelse,) if self.orelse else ())


@dataclass(eq=False)
class While(Stmt):
    """``while`` loop; ``constant`` is set for ``while True:`` style loops."""

    test: Optional[Expr] = None
    constant: bool = False
    body: List[Stmt] = field(default_factory=list)
    orelse: List[Stmt] = field(default_factory=list)
    else_line: Optional[int] = None

    kind = "while"

    def blocks(self):
        return (self.body, self.orelse) if self.orelse else (self.body,)


@dataclass(eq=False)
class For(Stmt):
    iter: Optional[Expr] = None
    is_async: bool = False
    body: List[Stmt] = field(default_factory=list)
    orelse: List[Stmt] = field(default_factory=list)
    else_line: Optional[int] = None

    kind = "for"

    def blocks(self):
        return (self.body, self.orelse) if self.orelse else (self.body,)


@dataclass(eq=False)
class With(Stmt):
    items: List[Expr] = field(default_factory=list)
    is_async: bool = False
    body: List[Stmt] = field(default_factory=list)

    kind = "with"

    def blocks(self):
        return (self.body,)


@dataclass(eq=False)
class Handler:
    """One ``except`` clause; ``type`` is None for a bare ``except:``."""

    line: int
    type: Optional[Expr]
    body: List[Stmt]


@dataclass(eq=False)
class Try(Stmt):
    body: List[Stmt] = field(default_factory=list)
    handlers: List[Handler] = field(default_factory=list)
    orelse: List[Stmt] = field(default_factory=list)
    else_line: Optional[int] = None
    finalbody: List[Stmt] = field(default_factory=list)
    finally_line: Optional[int] = None

    kind = "try"

    def blocks(self):
        result = [self.body]
        result.extend(h.body for h in self.handlers)
        if self.orelse:
            result.append(self.orelse)
        if self.finalbody:
            result.append(self.finalbody)
        return tuple(result)


@dataclass(eq=False)
class Match(Stmt):
    subject: Optional[Expr] = None
    cases: List[Clause] = field(default_factory=list)

    kind = "match"

    def blocks(self):
        return tuple(c.body for c in self.cases)


@dataclass(eq=False)
class Module(Node):
    """Root of a file's tree.

    Attributes:
        risky: Reasons the file must not be rewritten (empty when safe).
    """

    body: List[Stmt] = field(default_factory=list)
    risky: List[str] = field(default_factory=list)

    kind = "module"

    def children(self):
        return tuple(self.body)


COMPOUND = (FunctionDef, ClassDef, If, While, For, With, Try, Match)


def iter_statements(body):
    """Yield every statement in ``body`` and nested bodies, pre-order."""
    stack = list(reversed(body))
    while stack:
        stmt = stack.pop()
        yield stmt
        nested = []
        for block in stmt.blocks():
            nested.extend(block)
        stack.extend(reversed(nested))
