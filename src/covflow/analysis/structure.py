"""
Structural analysis: builds the code map of a file.

The code map holds the FunctionRecords, BlockRecords and ConditionRecords
of one file plus the indexes the trackers look events up in. It is built
from the tagged tree of ``covflow.frontend.nodes`` with an explicit work
stack: each work item carries the id of the block it belongs to, so the
block hierarchy is linked through parent ids instead of native recursion.

Boolean tests are decomposed the same way. ``and``/``or`` become compound
records with two components, ``not`` a compound record with one, any other
expression a simple record.
"""

import logging
from typing import Dict, List, Optional, Tuple

from covflow.analysis.classifier import classify_source
from covflow.data.records import (
    ROOT,
    BlockKind,
    BlockRecord,
    ConditionKind,
    ConditionRecord,
    FunctionKind,
    FunctionRecord,
    Operator,
    records_from_dict,
)
from covflow.frontend import converter, nodes
from covflow.util.typedispatch import TypeDispatcher, defaultdispatch, dispatch

LOG = logging.getLogger(__name__)

_OPERATORS = {"and": Operator.AND, "or": Operator.OR}
_RECEIVERS = ("self", "cls")


class CodeMap(object):
    """Functions, blocks and conditions of one file, with lookup indexes.

    Attributes:
        functions: Mapping id -> FunctionRecord.
        blocks: Mapping id -> BlockRecord.
        conditions: Mapping id -> ConditionRecord.
        aliases: Decorator line -> lines also executed with it (the
            ``def``/``class`` line).
        implied: Body entry line -> header lines the interpreter may not
            report on their own (``try:``, bare ``except:``).
        anchors: ``id(node)`` -> [(record kind, record id)] for the tree the
            map was built from. Only valid while that tree is alive.
    """

    def __init__(self, functions=None, blocks=None, conditions=None, aliases=None, implied=None):
        self.functions: Dict[int, FunctionRecord] = functions or {}
        self.blocks: Dict[int, BlockRecord] = blocks or {}
        self.conditions: Dict[int, ConditionRecord] = conditions or {}
        self.aliases: Dict[int, List[int]] = aliases or {}
        self.implied: Dict[int, List[int]] = implied or {}
        self.anchors: Dict[int, List[Tuple[str, int]]] = {}
        self.reindex()

    def reindex(self):
        """Rebuild the line indexes from the records."""
        self.entries: Dict[int, List[int]] = {}
        self.headers: Dict[int, Tuple[int, int, int]] = {}
        self.starts: Dict[int, List[int]] = {}

        for block in self.blocks.values():
            if block.kind is not BlockKind.FUNCTION and block.entry_line is not None:
                self.entries.setdefault(block.entry_line, []).append(block.id)

        for cond in self.conditions.values():
            if cond.parent_id != ROOT or cond.branch_id is None:
                continue
            branch = self.blocks[cond.branch_id]
            owner = self.blocks.get(cond.block_id)
            if owner is not None and owner.label == "match":
                continue
            # one-line bodies give no separate line event to decide on
            if branch.entry_line is None or branch.entry_line <= cond.end_line:
                continue
            # a loop block starts at its own header; only the body decides
            start = max(branch.start_line, cond.end_line + 1)
            self.headers[branch.header_line or cond.line] = (cond.id, start, branch.end_line)

        for function in self.functions.values():
            self.starts.setdefault(function.first_line, []).append(function.id)

    def functions_at(self, line, name=None) -> List[FunctionRecord]:
        """Functions whose code object starts on ``line``, matching ``name``."""
        found = [self.functions[i] for i in self.starts.get(line, ())]
        if name is not None:
            return [f for f in found if f.name == name]
        return found

    def blocks_entered_at(self, line) -> List[int]:
        return self.entries.get(line, [])

    def header_condition(self, line):
        """Return (condition id, branch start, branch end) for a header line."""
        return self.headers.get(line)

    def enclosing_function(self, line) -> Optional[FunctionRecord]:
        """Innermost ``def`` whose body contains ``line``."""
        best = None
        for function in self.functions.values():
            if function.name == "<lambda>":
                continue
            body = self.blocks.get(function.block_id)
            if body is None or not body.start_line <= line <= body.end_line:
                continue
            if best is None or body.start_line >= self.blocks[best.block_id].start_line:
                best = function
        return best

    def as_dict(self):
        return {
            "functions": [f.as_dict() for f in self.functions.values()],
            "blocks": [b.as_dict() for b in self.blocks.values()],
            "conditions": [c.as_dict() for c in self.conditions.values()],
            "aliases": {str(k): v for k, v in self.aliases.items()},
            "implied": {str(k): v for k, v in self.implied.items()},
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            functions=records_from_dict(FunctionRecord, data.get("functions", ())),
            blocks=records_from_dict(BlockRecord, data.get("blocks", ())),
            conditions=records_from_dict(ConditionRecord, data.get("conditions", ())),
            aliases={int(k): list(v) for k, v in data.get("aliases", {}).items()},
            implied={int(k): list(v) for k, v in data.get("implied", {}).items()},
        )


def _body_range(body, fallback):
    if not body:
        return fallback, fallback
    return _first_line(body[0]), body[-1].end_line


def _first_line(stmt):
    if isinstance(stmt, (nodes.FunctionDef, nodes.ClassDef)):
        return stmt.first_line
    return stmt.line


class StructureBuilder(TypeDispatcher):
    """Builds a CodeMap from a tagged tree.

    Each handler is called with a statement and the id of the block that
    contains it, creates the records for the statement, and pushes the
    statement's bodies onto the work stack.
    """

    def __init__(self, content):
        self.classified = classify_source(content)
        self.code_map = CodeMap()
        self.next_ids = {"function": 1, "block": 1, "condition": 1}
        self.stack = []

    def build(self, module) -> CodeMap:
        self._push(module.body, ROOT)
        while self.stack:
            stmt, parent = self.stack.pop()
            self._lambdas(stmt, parent)
            self(stmt, parent)
        self.code_map.reindex()
        return self.code_map

    # Helpers

    def _new_id(self, kind):
        value = self.next_ids[kind]
        self.next_ids[kind] = value + 1
        return value

    def _push(self, body, parent):
        for stmt in reversed(body):
            self.stack.append((stmt, parent))

    def _anchor(self, node, kind, record_id):
        self.code_map.anchors.setdefault(id(node), []).append((kind, record_id))

    def _entry(self, body):
        """First statement executed when ``body`` is entered, and its line."""
        stmts = body
        i = 0
        while i < len(stmts):
            stmt = stmts[i]
            if isinstance(stmt, nodes.Simple) and (stmt.docstring or stmt.declaration):
                i += 1
                continue
            if isinstance(stmt, nodes.Try):
                stmts, i = stmt.body, 0
                continue
            return stmt, _first_line(stmt)
        return None, None

    def _block(self, kind, parent, start, end, header, body=None, label="", entry=True):
        bid = self._new_id("block")
        record = BlockRecord(
            id=bid,
            kind=kind,
            start_line=start,
            end_line=end,
            parent_id=parent,
            label=label,
            header_line=header,
        )
        if body is not None and entry:
            stmt, line = self._entry(body)
            record.entry_line = line
            if stmt is not None:
                self._anchor(stmt, "block", bid)
        self.code_map.blocks[bid] = record
        if parent != ROOT:
            self.code_map.blocks[parent].children.append(bid)
        return record

    def _body_block(self, body, parent, header, label, kind=BlockKind.DO):
        start, end = _body_range(body, header)
        block = self._block(kind, parent, start, end, header, body, label)
        self._push(body, block.id)
        return block

    def _condition(self, expr, block_id) -> int:
        """Create records for a boolean test, returning the root's id."""
        root = None
        work = [(expr, ROOT)]
        while work:
            node, parent = work.pop()
            cid = self._new_id("condition")
            if isinstance(node, nodes.BoolOp):
                kind, operator, components = ConditionKind.COMPOUND, _OPERATORS[node.op], [node.left, node.right]
            elif isinstance(node, nodes.Not):
                kind, operator, components = ConditionKind.COMPOUND, Operator.NOT, [node.operand]
            else:
                kind, operator, components = ConditionKind.SIMPLE, Operator.NONE, []
            self.code_map.conditions[cid] = ConditionRecord(
                id=cid,
                kind=kind,
                operator=operator,
                line=node.line,
                end_line=node.end_line,
                parent_id=parent,
                block_id=block_id,
            )
            self._anchor(node, "condition", cid)
            if parent == ROOT:
                root = cid
            else:
                self.code_map.conditions[parent].components.append(cid)
            for component in reversed(components):
                work.append((component, cid))
        self.code_map.blocks[block_id].conditions.append(root)
        return root

    def _function(self, kind, name, node, first_line, params, variadic, body_start, body_end, parent):
        fid = self._new_id("function")
        block = self._block(BlockKind.FUNCTION, parent, body_start, body_end, node.line, entry=False)
        self.code_map.functions[fid] = FunctionRecord(
            id=fid,
            kind=kind,
            name=name,
            start_line=node.line,
            end_line=node.end_line,
            first_line=first_line,
            params=tuple(params),
            variadic=variadic,
            block_id=block.id,
        )
        return fid, block

    def _lambdas(self, stmt, parent):
        for lam in stmt.lambdas:
            kind = _lambda_kind(lam)
            fid, block = self._function(
                kind, "<lambda>", lam, lam.line, lam.params, lam.variadic, lam.body.line, lam.body.end_line, parent
            )
            block.entry_line = lam.body.line
            self._anchor(lam, "function", fid)

    def _decorators(self, stmt):
        for decorator in stmt.decorators:
            for line in range(decorator.line, decorator.end_line + 1):
                self.code_map.aliases.setdefault(line, []).append(stmt.line)

    # Statements

    @dispatch(nodes.Simple)
    def visitSimple(self, stmt, parent):
        pass

    @dispatch(nodes.FunctionDef)
    def visitFunctionDef(self, stmt, parent):
        self._decorators(stmt)
        start, end = _body_range(stmt.body, stmt.line)
        fid, block = self._function(
            _def_kind(stmt), stmt.name, stmt, stmt.first_line, stmt.params, stmt.variadic, start, end, parent
        )
        entry, line = self._entry(stmt.body)
        block.entry_line = line
        if entry is not None:
            self._anchor(entry, "function", fid)
        self._push(stmt.body, block.id)

    @dispatch(nodes.ClassDef)
    def visitClassDef(self, stmt, parent):
        self._decorators(stmt)
        self._body_block(stmt.body, parent, stmt.line, "class")

    @dispatch(nodes.If)
    def visitIf(self, stmt, parent):
        conditional = self._block(BlockKind.CONDITIONAL, parent, stmt.line, stmt.end_line, stmt.line, label="if")
        conditional.entry_line = stmt.line
        self._anchor(stmt, "block", conditional.id)
        bodies = []
        for clause in stmt.clauses:
            cid = self._condition(clause.test, conditional.id)
            start, end = _body_range(clause.body, clause.line)
            label = "then" if clause.keyword == "if" else "elif"
            branch = self._block(BlockKind.DO, conditional.id, start, end, clause.line, clause.body, label)
            self.code_map.conditions[cid].branch_id = branch.id
            conditional.branches.append(branch.id)
            bodies.append((clause.body, branch.id))
        if stmt.orelse:
            start, end = _body_range(stmt.orelse, stmt.else_line or stmt.line)
            branch = self._block(
                BlockKind.DO, conditional.id, start, end, stmt.else_line or 0, stmt.orelse, "else"
            )
            conditional.branches.append(branch.id)
            bodies.append((stmt.orelse, branch.id))
        for body, bid in reversed(bodies):
            self._push(body, bid)

    @dispatch(nodes.While)
    def visitWhile(self, stmt, parent):
        kind = BlockKind.LOOP_REPEAT if stmt.constant else BlockKind.LOOP_WHILE
        loop = self._loop(stmt, parent, kind)
        if not stmt.constant:
            cid = self._condition(stmt.test, loop.id)
            self.code_map.conditions[cid].branch_id = loop.id

    @dispatch(nodes.For)
    def visitFor(self, stmt, parent):
        self._loop(stmt, parent, BlockKind.LOOP_FOR)

    def _loop(self, stmt, parent, kind):
        _, end = _body_range(stmt.body, stmt.line)
        loop = self._block(kind, parent, stmt.line, end, stmt.line, stmt.body, "loop")
        if stmt.orelse:
            start, end = _body_range(stmt.orelse, stmt.else_line or stmt.line)
            orelse = self._block(BlockKind.DO, loop.id, start, end, stmt.else_line or 0, stmt.orelse, "else")
            self._push(stmt.orelse, orelse.id)
        self._push(stmt.body, loop.id)
        return loop

    @dispatch(nodes.With)
    def visitWith(self, stmt, parent):
        self._body_block(stmt.body, parent, stmt.line, "with")

    @dispatch(nodes.Try)
    def visitTry(self, stmt, parent):
        sections = [(stmt.body, stmt.line, "try")]
        sections.extend((h.body, h.line, "except") for h in stmt.handlers)
        if stmt.orelse:
            sections.append((stmt.orelse, stmt.else_line or 0, "else"))
        if stmt.finalbody:
            sections.append((stmt.finalbody, stmt.finally_line or 0, "finally"))

        implied = [(stmt.body, stmt.line)]
        implied.extend((h.body, h.line) for h in stmt.handlers if h.type is None)
        for body, header in implied:
            _, line = self._entry(body)
            if line is not None and line != header:
                self.code_map.implied.setdefault(line, []).append(header)

        blocks = []
        for body, header, label in sections:
            start, end = _body_range(body, header)
            blocks.append((body, self._block(BlockKind.DO, parent, start, end, header, body, label).id))
        for body, bid in reversed(blocks):
            self._push(body, bid)

    @dispatch(nodes.Match)
    def visitMatch(self, stmt, parent):
        conditional = self._block(BlockKind.CONDITIONAL, parent, stmt.line, stmt.end_line, stmt.line, label="match")
        conditional.entry_line = stmt.line
        self._anchor(stmt, "block", conditional.id)
        bodies = []
        for case in stmt.cases:
            start, end = _body_range(case.body, case.line)
            branch = self._block(BlockKind.DO, conditional.id, start, end, case.line, case.body, "case")
            conditional.branches.append(branch.id)
            if case.test is not None:
                cid = self._condition(case.test, conditional.id)
                self.code_map.conditions[cid].branch_id = branch.id
            bodies.append((case.body, branch.id))
        for body, bid in reversed(bodies):
            self._push(body, bid)

    @defaultdispatch
    def visitDefault(self, stmt, parent):
        LOG.debug("no structure for %s on line %d", stmt.kind, stmt.line)


def _def_kind(stmt) -> FunctionKind:
    if stmt.scope == "class":
        return FunctionKind.MODULE if stmt.static else FunctionKind.METHOD
    if stmt.params and stmt.params[0] in _RECEIVERS:
        return FunctionKind.METHOD
    if stmt.scope == "module":
        return FunctionKind.GLOBAL
    return FunctionKind.LOCAL


def _lambda_kind(lam) -> FunctionKind:
    if lam.binding == "attribute":
        return FunctionKind.MODULE
    if lam.binding is None:
        return FunctionKind.ANONYMOUS
    if lam.binding == "class" or (lam.params and lam.params[0] in _RECEIVERS):
        return FunctionKind.METHOD
    if lam.binding == "module":
        return FunctionKind.GLOBAL
    return FunctionKind.LOCAL


def build_code_map(tree, content) -> CodeMap:
    """Build the code map of a parsed file.

    Args:
        tree: Module node from ``covflow.frontend.converter.parse``.
        content: Source text the tree was parsed from.
    """
    return StructureBuilder(content).build(tree)


def analyze(content, path="<unknown>"):
    """Parse ``content`` and build its code map.

    Returns:
        (tree, code_map) tuple.

    Raises:
        ParseError: If the source cannot be parsed.
    """
    tree = converter.parse(content, path)
    return tree, build_code_map(tree, content)
