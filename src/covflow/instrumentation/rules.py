"""
Insertion rules of the instrumentation transformer.

The transformer never decides on its own where a tracking call may go.
It names the role of the statement (or expression slot) it is looking at
and whether the insertion would touch a line that starts inside an open
``[``/``{`` literal; this table picks the action.

**Actions:**
- PREFIX: ``__covflow__(n); `` before a simple statement, same line
- WRAP_CONDITION: ``__covflow__.cond(n, cid, (test))`` around a test
- WRAP_EXPRESSION: ``__covflow__.wrap(n, (expr))`` around an expression
  the header evaluates (iterable, context manager, decorator, ...)
- DEFER_INTO_BODY: no edit; the header's events are reported by the first
  instrumented statement of its body
- DEFER_TO_NEXT: no edit; the events are reported by the next instrumented
  statement of the same body
- UNTOUCHED: no edit and no events
"""

from enum import Enum


class Action(str, Enum):
    PREFIX = "prefix"
    WRAP_CONDITION = "wrap_condition"
    WRAP_EXPRESSION = "wrap_expression"
    DEFER_INTO_BODY = "defer_into_body"
    DEFER_TO_NEXT = "defer_to_next"
    UNTOUCHED = "untouched"


class Role(str, Enum):
    STATEMENT = "statement"
    DOCSTRING = "docstring"
    DECLARATION = "declaration"
    FUTURE = "future"
    CONDITION = "condition"
    CONSTANT_LOOP = "constant_loop"
    ITERABLE = "iterable"
    CONTEXT = "context"
    DECORATOR = "decorator"
    DEFAULT = "default"
    DEF = "def"
    CLASS = "class"
    TRY = "try"
    HANDLER = "handler"
    BARE_HANDLER = "bare_handler"
    SUBJECT = "subject"
    CASE = "case"
    GUARD = "guard"
    LAMBDA = "lambda"


# (role, in_literal) -> action
RULES = {
    (Role.STATEMENT, False): Action.PREFIX,
    (Role.STATEMENT, True): Action.UNTOUCHED,
    (Role.DOCSTRING, False): Action.UNTOUCHED,
    (Role.DOCSTRING, True): Action.UNTOUCHED,
    (Role.DECLARATION, False): Action.UNTOUCHED,
    (Role.DECLARATION, True): Action.UNTOUCHED,
    (Role.FUTURE, False): Action.DEFER_TO_NEXT,
    (Role.FUTURE, True): Action.DEFER_TO_NEXT,
    (Role.CONDITION, False): Action.WRAP_CONDITION,
    (Role.CONDITION, True): Action.DEFER_INTO_BODY,
    (Role.CONSTANT_LOOP, False): Action.WRAP_EXPRESSION,
    (Role.CONSTANT_LOOP, True): Action.DEFER_INTO_BODY,
    (Role.ITERABLE, False): Action.WRAP_EXPRESSION,
    (Role.ITERABLE, True): Action.DEFER_INTO_BODY,
    (Role.CONTEXT, False): Action.WRAP_EXPRESSION,
    (Role.CONTEXT, True): Action.DEFER_INTO_BODY,
    (Role.DECORATOR, False): Action.WRAP_EXPRESSION,
    (Role.DECORATOR, True): Action.DEFER_TO_NEXT,
    (Role.DEFAULT, False): Action.WRAP_EXPRESSION,
    (Role.DEFAULT, True): Action.DEFER_TO_NEXT,
    (Role.DEF, False): Action.DEFER_TO_NEXT,
    (Role.DEF, True): Action.DEFER_TO_NEXT,
    (Role.CLASS, False): Action.DEFER_INTO_BODY,
    (Role.CLASS, True): Action.DEFER_INTO_BODY,
    (Role.TRY, False): Action.DEFER_INTO_BODY,
    (Role.TRY, True): Action.DEFER_INTO_BODY,
    (Role.HANDLER, False): Action.WRAP_EXPRESSION,
    (Role.HANDLER, True): Action.DEFER_INTO_BODY,
    (Role.BARE_HANDLER, False): Action.DEFER_INTO_BODY,
    (Role.BARE_HANDLER, True): Action.DEFER_INTO_BODY,
    (Role.SUBJECT, False): Action.WRAP_EXPRESSION,
    (Role.SUBJECT, True): Action.DEFER_TO_NEXT,
    (Role.CASE, False): Action.DEFER_INTO_BODY,
    (Role.CASE, True): Action.DEFER_INTO_BODY,
    (Role.GUARD, False): Action.WRAP_CONDITION,
    (Role.GUARD, True): Action.DEFER_INTO_BODY,
    (Role.LAMBDA, False): Action.WRAP_EXPRESSION,
    (Role.LAMBDA, True): Action.UNTOUCHED,
}


def action_for(role, in_literal):
    """Look up the action for a statement role."""
    return RULES[(role, bool(in_literal))]
