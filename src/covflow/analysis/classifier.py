"""
Line classification for Python source.

Every line of a file is classified as executable, non-executable or
comment by a cursor that walks the text once, line by line. The cursor
keeps track of:

- the open string, when a string literal spans lines;
- the stack of open brackets;
- backslash continuation;
- the statement currently being read, and whether it so far consists only
  of string literals.

A statement made only of string literals (a docstring or a ``\"\"\"``
banner, possibly implicitly concatenated across a close and reopen on one
line) is a block comment: all of its lines are comments. Continuation
lines of a multi-line statement are non-executable and remember the
statement's first line, which is where the interpreter reports it. A line
on which a new statement starts after ``;`` is executable even if it also
continues an earlier statement.

**Classifications:**
- executable: a statement starts on the line
- non_executable: blank lines, continuation lines, clause-only lines
  (``else:``, ``finally:``) and ``global``/``nonlocal`` declarations
- comment: ``#`` comments and block comments
"""

import functools
import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from covflow.data.records import Classification
from covflow.errors import ValidationError
from covflow.frontend.lineindex import split_lines

LOG = logging.getLogger(__name__)

_STRING_START = re.compile(r"([rRbBuUfFtT]{0,2})('''|\"\"\"|'|\")")
_WORD = re.compile(r"\w+")
_CLAUSE = re.compile(r"(else|finally)\s*:")
_DECLARATIONS = ("global", "nonlocal")
_SPACE = " \t\f"
_OPEN = "([{"
_CLOSE = {")": "(", "]": "[", "}": "{"}


@dataclass(frozen=True)
class LineInfo:
    """Classification of one line.

    Attributes:
        classification: executable, non_executable or comment.
        logical_line: First line of the statement a continuation line
            belongs to, None otherwise.
        in_literal: The line starts inside an open ``[`` or ``{``.
        in_brackets: The line starts inside any open bracket.
    """

    classification: Classification
    logical_line: Optional[int] = None
    in_literal: bool = False
    in_brackets: bool = False


class ClassifiedSource(object):
    """Classification of every line of one source text.

    Attributes:
        lines: LineInfo per line, index 0 is line 1.
        balanced: No bracket was left open or closed out of order, and no
            string was left open.
        unterminated: Line of a string left open at end of file, or None.
    """

    def __init__(self, lines, balanced=True, unterminated=None):
        self.lines = tuple(lines)
        self.balanced = balanced
        self.unterminated = unterminated

    def __len__(self):
        return len(self.lines)

    def __iter__(self):
        return iter(self.lines)

    def line(self, lineno) -> LineInfo:
        if not 1 <= lineno <= len(self.lines):
            raise ValidationError("line %r out of range 1..%d" % (lineno, len(self.lines)))
        return self.lines[lineno - 1]

    def classification(self, lineno) -> Classification:
        return self.line(lineno).classification

    def logical_line(self, lineno) -> int:
        """The line the interpreter reports for ``lineno``."""
        info = self.line(lineno)
        return info.logical_line if info.logical_line is not None else lineno

    def executable_lines(self) -> List[int]:
        return [
            i + 1 for i, info in enumerate(self.lines) if info.classification is Classification.EXECUTABLE
        ]


class _Statement(object):
    __slots__ = "start", "kind"

    def __init__(self, start, kind):
        self.start = start
        self.kind = kind


class _Cursor(object):
    """Walks source lines, recording where statements start and what each
    line starts inside of."""

    def __init__(self, lines):
        count = len(lines)
        self.lines = lines
        self.brackets = []
        self.string = None
        self.string_line = None
        self.backslash = False
        self.stmt = None
        self.balanced = True

        self.starts = [[] for _ in range(count)]
        self.owner = [None] * count
        self.comment = [False] * count
        self.in_literal = [False] * count
        self.in_brackets = [False] * count

    def run(self):
        for index, line in enumerate(self.lines):
            self._line(index, line.rstrip("\r\n"))
        return self._finish()

    def _token(self, index, string=False, keyword=None):
        if self.stmt is None:
            if string:
                kind = "string"
            elif keyword in _DECLARATIONS:
                kind = "declaration"
            else:
                kind = "code"
            self.stmt = _Statement(index + 1, kind)
            self.starts[index].append(self.stmt)
        elif not string and self.stmt.kind == "string":
            self.stmt.kind = "code"

    def _line(self, index, text):
        if self.stmt is not None:
            self.owner[index] = self.stmt
        self.in_brackets[index] = bool(self.brackets)
        self.in_literal[index] = any(b != "(" for b in self.brackets)
        self.backslash = False

        pos = 0
        if self.string is not None:
            pos = self._close_string(text, 0)
            if pos < 0:
                return

        n = len(text)
        while pos < n:
            c = text[pos]
            if c in _SPACE:
                pos += 1
                continue
            if c == "#":
                self.comment[index] = True
                break
            if c == "\\":
                if not text[pos + 1:].strip():
                    self.backslash = True
                    break
                pos += 1
                continue

            m = _STRING_START.match(text, pos)
            if m:
                prefix = m.group(1).lower()
                self._token(index, string="f" not in prefix and "t" not in prefix)
                self.string = (m.group(2), "f" in prefix or "t" in prefix)
                self.string_line = index + 1
                pos = self._close_string(text, m.end())
                if pos < 0:
                    return
                continue

            if c == ";" and not self.brackets:
                self.stmt = None
                pos += 1
                continue

            m = _WORD.match(text, pos)
            if m:
                if self.stmt is None and _CLAUSE.match(text, pos):
                    # else:/finally: end at their colon; a body may follow
                    self.starts[index].append(_Statement(index + 1, "clause"))
                    pos = text.index(":", pos) + 1
                    continue
                self._token(index, keyword=m.group())
                pos = m.end()
                continue

            self._token(index)
            if c in _OPEN:
                self.brackets.append(c)
            elif c in _CLOSE:
                if self.brackets and self.brackets[-1] == _CLOSE[c]:
                    self.brackets.pop()
                else:
                    self.balanced = False
            pos += 1

        if self.string is None and not self.backslash and not self.brackets:
            self.stmt = None

    def _close_string(self, text, pos):
        """Scan for the end of the open string.

        Returns the position after the closing quote, or -1 when the string
        continues on the next line.
        """
        quote, fstring = self.string
        depth = 0
        n = len(text)
        while pos < n:
            c = text[pos]
            if c == "\\":
                if pos + 1 >= n:
                    return -1
                pos += 2
                continue
            if fstring:
                if c == "{":
                    if depth == 0 and text.startswith("{{", pos):
                        pos += 2
                        continue
                    depth += 1
                elif c == "}" and depth:
                    depth -= 1
                elif depth and c in "'\"":
                    pos = _skip_quoted(text, pos)
                    continue
                if c in "{}":
                    pos += 1
                    continue
            if text.startswith(quote, pos):
                self.string = None
                return pos + len(quote)
            pos += 1

        if len(quote) == 1:
            # unterminated single-quoted string, the parser rejects it anyway
            self.string = None
            return n
        return -1

    def _finish(self):
        unterminated = None
        if self.string is not None:
            unterminated = self.string_line
            LOG.warning("unterminated string starting on line %d, treating the rest of the file as comment", unterminated)
            self.balanced = False
        if self.brackets:
            self.balanced = False

        result = []
        for index in range(len(self.lines)):
            lineno = index + 1
            starts = self.starts[index]
            owner = self.owner[index]
            logical = None

            if unterminated is not None and lineno > unterminated:
                classification = Classification.COMMENT
            elif any(s.kind == "code" for s in starts):
                classification = Classification.EXECUTABLE
            elif owner is not None:
                if owner.kind == "string":
                    classification = Classification.COMMENT
                else:
                    classification = Classification.NON_EXECUTABLE
                    if owner.kind == "code":
                        logical = owner.start
            elif any(s.kind == "string" for s in starts) or self.comment[index]:
                classification = Classification.COMMENT
            else:
                classification = Classification.NON_EXECUTABLE

            result.append(LineInfo(classification, logical, self.in_literal[index], self.in_brackets[index]))

        return ClassifiedSource(result, self.balanced, unterminated)


def _skip_quoted(text, pos):
    """Skip a string nested in an f-string replacement field."""
    quote = text[pos]
    pos += 1
    while pos < len(text):
        if text[pos] == "\\":
            pos += 2
            continue
        if text[pos] == quote:
            return pos + 1
        pos += 1
    return len(text)


@functools.lru_cache(maxsize=256)
def classify_source(content) -> ClassifiedSource:
    """Classify every line of ``content``.

    The result depends only on the text, so it is memoized by content.
    """
    return _Cursor(split_lines(content)).run()


def classify_line(content, line_number) -> Classification:
    """Classify one line of ``content``.

    Raises:
        ValidationError: If ``content`` is None or ``line_number`` is not a
            line of it.
    """
    if content is None:
        raise ValidationError("no source given")
    if not isinstance(line_number, int) or line_number < 1:
        raise ValidationError("line number must be a positive integer, got %r" % (line_number,))
    return classify_source(content).classification(line_number)
