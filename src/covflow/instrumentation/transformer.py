"""
Source rewriting that makes a file report its own execution.

Each insertion site gets a bundle number. The bundle lists the lines,
blocks and functions that are known to have executed when the site runs;
the inserted call passes only the number, and the Probe looks the bundle
up. Insertions never contain a newline, so the rewritten file has exactly
the lines of the original and tracebacks keep their line numbers.

Rewrites are validated before use:

- the line count is unchanged;
- brackets and strings are balanced;
- the text compiles;
- it holds as many compound statements as the original;
- lines inside ``[``/``{`` literals are byte-identical.

Anything else raises InstrumentationError, and the caller falls back to
the runtime tracker for the file.
"""

import logging
import re

from covflow.analysis.classifier import classify_source
from covflow.analysis.structure import analyze
from covflow.data.records import Classification
from covflow.errors import CoverageError, InstrumentationError
from covflow.frontend import converter, nodes
from covflow.frontend.lineindex import LineIndex, split_lines
from covflow.instrumentation.rules import Action, Role, action_for
from covflow.util.io.filesystem import dataHash
from covflow.util.typedispatch import TypeDispatcher, defaultdispatch, dispatch

LOG = logging.getLogger(__name__)

PROBE_NAME = converter.PROBE_NAME

PRAGMA = re.compile(r"#\s*covflow:\s*no-instrument\b")

FORMAT_VERSION = 1


class RewrittenSource(object):
    """Result of instrumenting one source text.

    Attributes:
        text: The rewritten source.
        bundles: Bundle number -> (lines, block ids, function ids). Bundle 0
            is empty.
        content_hash: Hash of the original source.
        exit_bundle: Bundle to report once the module body has run to its
            end (statements at the end of the module that leave no
            insertion site after them), or 0.
    """

    def __init__(self, text, bundles, content_hash, exit_bundle=0):
        self.text = text
        self.exit_bundle = exit_bundle
        self.bundles = [tuple(tuple(part) for part in bundle) for bundle in bundles]
        self.content_hash = content_hash
        self.codes = {}

    def code(self, path):
        """Code object of the rewritten text, compiled for ``path``."""
        try:
            return self.codes[path]
        except KeyError:
            code = compile(self.text, path, "exec", dont_inherit=True)
            self.codes[path] = code
            return code

    def as_dict(self):
        return {
            "version": FORMAT_VERSION,
            "content_hash": self.content_hash,
            "exit_bundle": self.exit_bundle,
            "text": self.text,
            "bundles": [[list(part) for part in bundle] for bundle in self.bundles],
        }

    @classmethod
    def from_dict(cls, data):
        if data.get("version") != FORMAT_VERSION:
            return None
        return cls(data["text"], data["bundles"], data["content_hash"], data.get("exit_bundle", 0))


class _Payload(object):
    """Events a site reports: lines, entered blocks and called functions."""

    __slots__ = "lines", "blocks", "functions"

    def __init__(self):
        self.lines = []
        self.blocks = []
        self.functions = []

    def __bool__(self):
        return bool(self.lines or self.blocks or self.functions)

    def extend(self, other):
        if other is None:
            return
        for line in other.lines:
            self.add_line(line)
        self.blocks.extend(b for b in other.blocks if b not in self.blocks)
        self.functions.extend(f for f in other.functions if f not in self.functions)

    def add_line(self, line):
        if line not in self.lines:
            self.lines.append(line)


class Transformer(TypeDispatcher):
    """Plans and applies the insertions for one file.

    Statement handlers are called with the payload carried over from the
    previous statement (or from the header of the enclosing body) and the
    list collecting function definitions of the current body. They return
    the payload left for the next statement, or None.
    """

    def __init__(self, content, tree, code_map):
        self.content = content
        self.tree = tree
        self.code_map = code_map
        self.classified = classify_source(content)
        self.index = LineIndex(content)
        self.edits = []
        self.bundles = [((), (), ())]
        self.owned = set()
        self.sequence = 0

    def run(self):
        leftover = self._body(self.tree.body, None, flows=True)
        exit_bundle = self._bundle(leftover) if leftover else 0
        return RewrittenSource(self._apply(), self.bundles, dataHash(self.content), exit_bundle)

    # Planning helpers

    def _literal(self, *spans):
        """True if an insertion at the ends of ``spans`` touches a literal line."""
        for span in spans:
            for offset in (span.start, span.end):
                line = self.index.line_of(offset)
                if 1 <= line <= len(self.classified) and self.classified.line(line).in_literal:
                    return True
        return False

    def _line_literal(self, line):
        return self.classified.line(line).in_literal

    def _own(self, payload, *lines):
        for line in lines:
            if line in self.owned or not 1 <= line <= len(self.classified):
                continue
            if self.classified.classification(line) is Classification.EXECUTABLE:
                payload.add_line(line)

    def _anchors(self, node, payload):
        for kind, record_id in self.code_map.anchors.get(id(node), ()):
            if kind == "block" and record_id not in payload.blocks:
                payload.blocks.append(record_id)
            elif kind == "function" and record_id not in payload.functions:
                payload.functions.append(record_id)

    def _bundle(self, payload):
        lines = tuple(sorted(l for l in payload.lines if l not in self.owned))
        self.owned.update(lines)
        self.bundles.append((lines, tuple(payload.blocks), tuple(payload.functions)))
        return len(self.bundles) - 1

    def _insert(self, offset, phase, size, text):
        self.sequence += 1
        order = self.sequence if phase else -self.sequence
        self.edits.append((offset, phase, size, order, text))

    def _prefix(self, stmt, payload):
        n = self._bundle(payload)
        self._insert(stmt.span.start, 1, -(len(self.content) + 1), "%s(%d); " % (PROBE_NAME, n))

    def _wrap(self, span, opening, closing):
        length = len(span)
        self._insert(span.start, 1, -length, opening)
        self._insert(span.end, 0, length, closing)

    def _wrap_expression(self, expr, payload):
        n = self._bundle(payload)
        self._wrap(expr.span, "%s.wrap(%d, (" % (PROBE_NAME, n), "))")

    def _condition_id(self, expr):
        for kind, record_id in self.code_map.anchors.get(id(expr), ()):
            if kind == "condition":
                return record_id
        return None

    def _wrap_condition(self, expr, payload):
        n = self._bundle(payload)
        cid = self._condition_id(expr)

        components = []
        work = list(expr.children()) if isinstance(expr, (nodes.BoolOp, nodes.Not)) else []
        while work:
            node = work.pop()
            components.append(node)
            if isinstance(node, (nodes.BoolOp, nodes.Not)):
                work.extend(node.children())

        direct = all(self._condition_id(c) is not None for c in components) and not self._literal(
            *(c.span for c in components)
        )
        if direct:
            for component in components:
                self._wrap(component.span, "%s.part(%d, (" % (PROBE_NAME, self._condition_id(component)), "))")
        closing = "))" if direct else "), 1)"
        self._wrap(expr.span, "%s.cond(%d, %d, (" % (PROBE_NAME, n, cid), closing)

    def _lambdas(self, stmt):
        for lam in stmt.lambdas:
            payload = _Payload()
            self._anchors(lam, payload)
            if action_for(Role.LAMBDA, self._literal(lam.body.span)) is Action.WRAP_EXPRESSION:
                self._wrap_expression(lam.body, payload)

    def _body(self, stmts, inherited, flows=False):
        """Plan one statement list; returns the payload left at its end.

        When the leftover does not flow on to the caller, a trailing ``def``
        line is reported by the body of that function instead.
        """
        carry = inherited
        definitions = []
        for stmt in stmts:
            payload = _Payload()
            payload.extend(carry)
            self._lambdas(stmt)
            self._anchors(stmt, payload)
            carry = self(stmt, payload, definitions)

        for stmt in definitions:
            inherited = _Payload()
            if not flows and carry is not None and stmt.line in carry.lines:
                inherited.add_line(stmt.line)
            self._body(stmt.body, inherited)
        return carry

    def _header(self, role, expr, payload):
        """Apply the rule for a header slot; returns the payload to defer."""
        action = action_for(role, self._literal(expr.span))
        if action is Action.WRAP_CONDITION:
            self._wrap_condition(expr, payload)
            return None
        if action is Action.WRAP_EXPRESSION:
            self._wrap_expression(expr, payload)
            return None
        return payload

    # Statements

    @dispatch(nodes.Simple)
    def visitSimple(self, stmt, payload, definitions):
        if stmt.docstring:
            role = Role.DOCSTRING
        elif stmt.declaration:
            role = Role.DECLARATION
        elif stmt.future:
            role = Role.FUTURE
        else:
            role = Role.STATEMENT

        action = action_for(role, self._line_literal(stmt.line))
        if action is Action.PREFIX:
            self._own(payload, stmt.line)
            self._prefix(stmt, payload)
            return None
        if action is Action.DEFER_TO_NEXT:
            self._own(payload, stmt.line)
        return payload or None

    @dispatch(nodes.FunctionDef)
    def visitFunctionDef(self, stmt, payload, definitions):
        definitions.append(stmt)
        self._own(payload, *[d.line for d in stmt.decorators])
        self._own(payload, stmt.line)
        if stmt.decorators:
            return self._header(Role.DECORATOR, stmt.decorators[0], payload)
        if stmt.defaults:
            return self._header(Role.DEFAULT, stmt.defaults[0], payload)
        return payload

    @dispatch(nodes.ClassDef)
    def visitClassDef(self, stmt, payload, definitions):
        self._own(payload, *[d.line for d in stmt.decorators])
        self._own(payload, stmt.line)
        if stmt.decorators:
            deferred = self._header(Role.DECORATOR, stmt.decorators[0], payload)
            leftover = self._body(stmt.body, None, flows=True)
            if deferred is not None:
                deferred.extend(leftover)
                return deferred
            return leftover
        return self._body(stmt.body, payload, flows=True)

    @dispatch(nodes.If)
    def visitIf(self, stmt, payload, definitions):
        for i, clause in enumerate(stmt.clauses):
            clause_payload = payload if i == 0 else _Payload()
            self._own(clause_payload, clause.line)
            deferred = self._header(Role.CONDITION, clause.test, clause_payload)
            self._body(clause.body, deferred)
        self._body(stmt.orelse, None)
        return None

    @dispatch(nodes.While)
    def visitWhile(self, stmt, payload, definitions):
        self._own(payload, stmt.line)
        role = Role.CONSTANT_LOOP if stmt.constant else Role.CONDITION
        deferred = self._header(role, stmt.test, payload)
        self._body(stmt.body, deferred)
        self._body(stmt.orelse, None)
        return None

    @dispatch(nodes.For)
    def visitFor(self, stmt, payload, definitions):
        self._own(payload, stmt.line)
        deferred = self._header(Role.ITERABLE, stmt.iter, payload)
        self._body(stmt.body, deferred)
        self._body(stmt.orelse, None)
        return None

    @dispatch(nodes.With)
    def visitWith(self, stmt, payload, definitions):
        self._own(payload, stmt.line)
        deferred = self._header(Role.CONTEXT, stmt.items[0], payload)
        self._body(stmt.body, deferred)
        return None

    @dispatch(nodes.Try)
    def visitTry(self, stmt, payload, definitions):
        self._own(payload, stmt.line)
        self._body(stmt.body, payload)
        for handler in stmt.handlers:
            handler_payload = _Payload()
            self._own(handler_payload, handler.line)
            if handler.type is not None:
                deferred = self._header(Role.HANDLER, handler.type, handler_payload)
            else:
                deferred = handler_payload
            self._body(handler.body, deferred)
        self._body(stmt.orelse, None)
        self._body(stmt.finalbody, None)
        return None

    @dispatch(nodes.Match)
    def visitMatch(self, stmt, payload, definitions):
        self._own(payload, stmt.line)
        leftover = self._header(Role.SUBJECT, stmt.subject, payload)
        for case in stmt.cases:
            case_payload = _Payload()
            self._own(case_payload, case.line)
            if case.test is not None:
                deferred = self._header(Role.GUARD, case.test, case_payload)
            else:
                deferred = case_payload
            self._body(case.body, deferred)
        return leftover

    @defaultdispatch
    def visitDefault(self, stmt, payload, definitions):
        LOG.debug("nothing to insert for %s on line %d", stmt.kind, stmt.line)
        return payload or None

    # Rewriting

    def _apply(self):
        pieces = []
        position = 0
        for offset, _, _, _, text in sorted(self.edits):
            pieces.append(self.content[position:offset])
            pieces.append(text)
            position = offset
        pieces.append(self.content[position:])
        return "".join(pieces)


def _compound_count(tree):
    return sum(1 for stmt in nodes.iter_statements(tree.body) if isinstance(stmt, nodes.COMPOUND))


def validate(content, rewritten, tree, path="<unknown>"):
    """Check a rewrite against its original.

    Returns:
        The compiled code object of the rewritten text.

    Raises:
        InstrumentationError: If the rewrite is unsafe to run.
    """
    original_lines = split_lines(content)
    new_lines = split_lines(rewritten)
    if len(original_lines) != len(new_lines):
        raise InstrumentationError(
            "line count changed from %d to %d" % (len(original_lines), len(new_lines)), path
        )

    original = classify_source(content)
    if original.balanced and not classify_source(rewritten).balanced:
        raise InstrumentationError("unbalanced brackets or strings after rewrite", path)

    for lineno, info in enumerate(original, 1):
        if info.in_literal and original_lines[lineno - 1] != new_lines[lineno - 1]:
            raise InstrumentationError("literal line %d was modified" % lineno, path)

    try:
        code = compile(rewritten, path, "exec", dont_inherit=True)
    except (SyntaxError, ValueError) as e:
        raise InstrumentationError("rewrite does not compile: %s" % e, path) from e

    try:
        rewritten_tree = converter.parse(rewritten, path)
    except CoverageError as e:
        raise InstrumentationError("rewrite does not parse: %s" % e, path) from e
    before, after = _compound_count(tree), _compound_count(rewritten_tree)
    if before != after:
        raise InstrumentationError("compound statements changed from %d to %d" % (before, after), path)
    return code


def preflight(content, tree, path="<unknown>"):
    """Reject files that must not be rewritten at all."""
    if tree.risky:
        raise InstrumentationError("not rewritten: %s" % "; ".join(tree.risky), path)
    if PRAGMA.search(content):
        raise InstrumentationError("not rewritten: no-instrument pragma", path)


class Instrumenter(object):
    """Instruments source texts, memoized by content hash.

    Attributes:
        cache: Optional RewriteCache persisting rewrites between runs.
        memo: Content hash -> RewrittenSource, or the failure reason.
    """

    def __init__(self, cache=None):
        self.cache = cache
        self.memo = {}

    def instrument(self, content, path="<unknown>"):
        """Rewrite ``content`` to report its own execution.

        Raises:
            ParseError: If the source cannot be parsed.
            InstrumentationError: If the file must not or cannot be rewritten.
        """
        key = dataHash(content)
        found = self.memo.get(key)
        if isinstance(found, RewrittenSource):
            return found
        if found is not None:
            raise InstrumentationError(found, path)

        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                self.memo[key] = cached
                return cached

        tree, code_map = analyze(content, path)
        try:
            preflight(content, tree, path)
            result = Transformer(content, tree, code_map).run()
            result.codes[path] = validate(content, result.text, tree, path)
        except InstrumentationError as e:
            self.memo[key] = str(e)
            raise

        LOG.debug("instrumented %s with %d probes", path, len(result.bundles) - 1)
        self.memo[key] = result
        if self.cache is not None:
            self.cache.put(key, result)
        return result


def instrument(content, path="<unknown>"):
    """Instrument ``content`` without a persistent cache."""
    return Instrumenter().instrument(content, path)
