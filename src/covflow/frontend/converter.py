"""
AST Converter for converting Python AST to the coverage tagged tree.

This module wraps the ``ast`` parser and converts its output into the node
classes of ``covflow.frontend.nodes``: positions become character spans,
``elif`` chains are flattened into clauses, ``and``/``or`` chains are
binarized, and the lambdas of each statement are collected with the way
they are bound.
"""

import ast as python_ast
import logging
import re
import warnings
from typing import List, Optional

from covflow.errors import ParseError
from covflow.frontend import nodes
from covflow.frontend.lineindex import LineIndex

LOG = logging.getLogger(__name__)

PROBE_NAME = "__covflow__"

_BOOL_OPS = {python_ast.And: "and", python_ast.Or: "or"}


def parse(content: str, filename: str = "<unknown>") -> nodes.Module:
    """Parse Python source into a tagged tree.

    Raises:
        ParseError: If the source is not valid Python.
    """
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            tree = python_ast.parse(content, filename=filename)
    except SyntaxError as e:
        raise ParseError("%s (line %s)" % (e.msg, e.lineno), filename, e.lineno) from e
    except (ValueError, RecursionError, MemoryError) as e:
        raise ParseError(str(e) or type(e).__name__, filename) from e
    return ASTConverter(content).convert_module(tree)


class ASTConverter:
    """Converts Python AST nodes to tagged tree nodes."""

    def __init__(self, content: str, index: Optional[LineIndex] = None):
        self.content = content
        self.index = index or LineIndex(content)
        self.risky: List[str] = []

    # Positions

    def span(self, node) -> nodes.Span:
        return nodes.Span(
            self.index.offset(node.lineno, node.col_offset),
            self.index.offset(node.end_lineno, node.end_col_offset),
        )

    def _lines(self, span):
        return self.index.line_of(span.start), self.index.line_of(max(span.start, span.end - 1))

    def _unparen(self, span):
        """Widen ``span`` over parentheses that enclose exactly it."""
        text = self.content
        start, end = span.start, span.end
        while True:
            before = start - 1
            while before >= 0 and text[before] in " \t\f\\\r\n":
                before -= 1
            after = end
            while after < len(text) and text[after] in " \t\f\\\r\n":
                after += 1
            if before >= 0 and after < len(text) and text[before] == "(" and text[after] == ")":
                start, end = before, after + 1
            else:
                return nodes.Span(start, end)

    def _keyword_line(self, keyword, first, last):
        """Find the line of a clause keyword (``else``/``finally``).

        Searches upward from the first line of the clause body down to the
        last line of the previous section.
        """
        pattern = re.compile(r"\s*%s\s*:" % keyword)
        for lineno in range(first, last - 1, -1):
            if pattern.match(self.index.text(lineno)):
                return lineno
        return None

    # Expressions

    def expr(self, node) -> nodes.Expr:
        span = self.span(node)
        line, end_line = self._lines(span)
        return nodes.Expr(span, line, end_line)

    def condition(self, node, widen=False) -> nodes.Expr:
        """Convert a boolean expression, decomposing ``and``/``or``/``not``."""
        span = self.span(node)
        if widen:
            span = self._unparen(span)
        line, end_line = self._lines(span)

        if isinstance(node, python_ast.BoolOp):
            op = _BOOL_OPS[type(node.op)]
            operands = [self.condition(v, widen=True) for v in node.values]
            result = operands[0]
            for right in operands[1:]:
                s = nodes.Span(operands[0].span.start, right.span.end)
                l, e = self._lines(s)
                result = nodes.BoolOp(s, l, e, op=op, left=result, right=right)
            # The outermost pair keeps the span of the whole expression.
            result.span, result.line, result.end_line = span, line, end_line
            return result

        if isinstance(node, python_ast.UnaryOp) and isinstance(node.op, python_ast.Not):
            return nodes.Not(span, line, end_line, operand=self.condition(node.operand, widen=True))

        return nodes.Expr(span, line, end_line)

    def lambdas(self, exprs, scope, stmt=None) -> List[nodes.Lambda]:
        """Collect the lambdas inside ``exprs``, outermost first."""
        bound = {}
        if isinstance(stmt, (python_ast.Assign, python_ast.AnnAssign)):
            targets = stmt.targets if isinstance(stmt, python_ast.Assign) else [stmt.target]
            if isinstance(stmt.value, python_ast.Lambda) and len(targets) == 1:
                if isinstance(targets[0], python_ast.Name):
                    bound[id(stmt.value)] = scope
                elif isinstance(targets[0], python_ast.Attribute):
                    bound[id(stmt.value)] = "attribute"

        found = []
        for expr in exprs:
            if expr is None:
                continue
            for sub in python_ast.walk(expr):
                if isinstance(sub, python_ast.Lambda):
                    found.append(sub)

        result = []
        for lam in found:
            span = self.span(lam)
            line, end_line = self._lines(span)
            params, variadic = _parameters(lam.args)
            result.append(
                nodes.Lambda(
                    span,
                    line,
                    end_line,
                    params=params,
                    variadic=variadic,
                    binding=bound.get(id(lam)),
                    body=self.expr(lam.body),
                )
            )
        result.sort(key=lambda l: (l.span.start, -len(l.span)))
        return result

    # Statements

    def convert_module(self, tree) -> nodes.Module:
        for sub in python_ast.walk(tree):
            if isinstance(sub, python_ast.Name) and sub.id == PROBE_NAME:
                self.risky.append("uses reserved name %s" % PROBE_NAME)
                break
        for sub in python_ast.walk(tree):
            if getattr(sub, "type_params", None):
                self.risky.append("uses type parameter syntax on line %d" % sub.lineno)
                break
        body = self.convert_body(tree.body, "module")
        end_line = max(1, self.index.line_count)
        return nodes.Module(
            nodes.Span(0, len(self.content)), 1, end_line, body=body, risky=list(self.risky)
        )

    def convert_body(self, stmts, scope) -> List[nodes.Stmt]:
        return [self._convert_stmt(s, scope) for s in stmts]

    def _header(self, node):
        span = self.span(node)
        return span, node.lineno, node.end_lineno

    def _convert_stmt(self, node, scope) -> nodes.Stmt:
        span, line, end_line = self._header(node)

        if isinstance(node, (python_ast.FunctionDef, python_ast.AsyncFunctionDef)):
            params, variadic = _parameters(node.args)
            defaults = [d for d in list(node.args.defaults) + list(node.args.kw_defaults) if d is not None]
            defaults.sort(key=lambda d: (d.lineno, d.col_offset))
            decorators = [self.expr(d) for d in node.decorator_list]
            return nodes.FunctionDef(
                span,
                line,
                end_line,
                lambdas=self.lambdas(node.decorator_list + defaults, scope),
                name=node.name,
                params=params,
                variadic=variadic,
                is_async=isinstance(node, python_ast.AsyncFunctionDef),
                scope=scope,
                static=any(_is_staticmethod(d) for d in node.decorator_list),
                first_line=min([line] + [d.line for d in decorators]),
                decorators=decorators,
                defaults=[self.expr(d) for d in defaults],
                body=self.convert_body(node.body, "function"),
            )

        elif isinstance(node, python_ast.ClassDef):
            decorators = [self.expr(d) for d in node.decorator_list]
            header = node.decorator_list + node.bases + [k.value for k in node.keywords]
            return nodes.ClassDef(
                span,
                line,
                end_line,
                lambdas=self.lambdas(header, scope),
                name=node.name,
                first_line=min([line] + [d.line for d in decorators]),
                decorators=decorators,
                body=self.convert_body(node.body, "class"),
            )

        elif isinstance(node, python_ast.If):
            clauses = [nodes.Clause(line, "if", self.condition(node.test), self.convert_body(node.body, scope))]
            tests = [node.test]
            current = node
            while len(current.orelse) == 1 and self._is_elif(current.orelse[0]):
                current = current.orelse[0]
                tests.append(current.test)
                clauses.append(
                    nodes.Clause(
                        current.lineno,
                        "elif",
                        self.condition(current.test),
                        self.convert_body(current.body, scope),
                    )
                )
            orelse = self.convert_body(current.orelse, scope)
            else_line = None
            if current.orelse:
                else_line = self._keyword_line("else", current.orelse[0].lineno, current.body[-1].end_lineno)
            return nodes.If(
                span,
                line,
                end_line,
                lambdas=self.lambdas(tests, scope),
                clauses=clauses,
                orelse=orelse,
                else_line=else_line,
            )

        elif isinstance(node, python_ast.While):
            constant = isinstance(node.test, python_ast.Constant) and bool(node.test.value)
            return nodes.While(
                span,
                line,
                end_line,
                lambdas=self.lambdas([node.test], scope),
                test=self.expr(node.test) if constant else self.condition(node.test),
                constant=constant,
                body=self.convert_body(node.body, scope),
                orelse=self.convert_body(node.orelse, scope),
                else_line=self._else_line(node),
            )

        elif isinstance(node, (python_ast.For, python_ast.AsyncFor)):
            return nodes.For(
                span,
                line,
                end_line,
                lambdas=self.lambdas([node.iter], scope),
                iter=self.expr(node.iter),
                is_async=isinstance(node, python_ast.AsyncFor),
                body=self.convert_body(node.body, scope),
                orelse=self.convert_body(node.orelse, scope),
                else_line=self._else_line(node),
            )

        elif isinstance(node, (python_ast.With, python_ast.AsyncWith)):
            return nodes.With(
                span,
                line,
                end_line,
                lambdas=self.lambdas([i.context_expr for i in node.items], scope),
                items=[self.expr(i.context_expr) for i in node.items],
                is_async=isinstance(node, python_ast.AsyncWith),
                body=self.convert_body(node.body, scope),
            )

        elif isinstance(node, _TRY_TYPES):
            handlers = [
                nodes.Handler(
                    h.lineno,
                    self.expr(h.type) if h.type is not None else None,
                    self.convert_body(h.body, scope),
                )
                for h in node.handlers
            ]
            previous_end = (node.handlers[-1].body[-1] if node.handlers else node.body[-1]).end_lineno
            else_line = None
            if node.orelse:
                else_line = self._keyword_line("else", node.orelse[0].lineno, previous_end)
                previous_end = node.orelse[-1].end_lineno
            finally_line = None
            if node.finalbody:
                finally_line = self._keyword_line("finally", node.finalbody[0].lineno, previous_end)
            return nodes.Try(
                span,
                line,
                end_line,
                lambdas=self.lambdas([h.type for h in node.handlers], scope),
                body=self.convert_body(node.body, scope),
                handlers=handlers,
                orelse=self.convert_body(node.orelse, scope),
                else_line=else_line,
                finalbody=self.convert_body(node.finalbody, scope),
                finally_line=finally_line,
            )

        elif _MATCH is not None and isinstance(node, _MATCH):
            cases = [
                nodes.Clause(
                    c.pattern.lineno,
                    "case",
                    self.condition(c.guard) if c.guard is not None else None,
                    self.convert_body(c.body, scope),
                )
                for c in node.cases
            ]
            return nodes.Match(
                span,
                line,
                end_line,
                lambdas=self.lambdas([node.subject] + [c.guard for c in node.cases], scope),
                subject=self.expr(node.subject),
                cases=cases,
            )

        else:
            docstring = (
                isinstance(node, python_ast.Expr)
                and isinstance(node.value, python_ast.Constant)
                and isinstance(node.value.value, (str, bytes))
            )
            return nodes.Simple(
                span,
                line,
                end_line,
                lambdas=self.lambdas([node], scope, node),
                keyword=type(node).__name__,
                docstring=docstring,
                declaration=isinstance(node, (python_ast.Global, python_ast.Nonlocal)),
                future=isinstance(node, python_ast.ImportFrom) and node.module == "__future__",
            )

    def _is_elif(self, node):
        if not isinstance(node, python_ast.If):
            return False
        start = self.index.offset(node.lineno, node.col_offset)
        return self.content.startswith("elif", start)

    def _else_line(self, node):
        if not node.orelse:
            return None
        return self._keyword_line("else", node.orelse[0].lineno, node.body[-1].end_lineno)


_TRY_TYPES = tuple(
    t for t in (getattr(python_ast, "Try", None), getattr(python_ast, "TryStar", None)) if t is not None
)
_MATCH = getattr(python_ast, "Match", None)


def _parameters(args):
    names = [a.arg for a in args.posonlyargs + args.args]
    if args.vararg is not None:
        names.append(args.vararg.arg)
    names.extend(a.arg for a in args.kwonlyargs)
    if args.kwarg is not None:
        names.append(args.kwarg.arg)
    return tuple(names), args.vararg is not None or args.kwarg is not None


def _is_staticmethod(decorator):
    if isinstance(decorator, python_ast.Name):
        return decorator.id == "staticmethod"
    if isinstance(decorator, python_ast.Attribute):
        return decorator.attr == "staticmethod"
    return False
