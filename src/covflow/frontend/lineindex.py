"""
Position to line mapping, built once per file.
"""

import bisect
import re

NEWLINE = re.compile(r"\r\n|\r|\n")


def split_lines(content):
    """Split source into lines the way the tokenizer counts them.

    Unlike ``str.splitlines`` only ``\\r\\n``, ``\\r`` and ``\\n`` end a
    line, so form feeds and other separators stay inside their line.
    Line endings are kept.
    """
    lines = []
    pos = 0
    for m in NEWLINE.finditer(content):
        lines.append(content[pos:m.end()])
        pos = m.end()
    if pos < len(content):
        lines.append(content[pos:])
    return lines


class LineIndex(object):
    """Maps character offsets to 1-based line numbers and back.

    Attributes:
        content: The indexed source text.
        lines: Lines of the source, line endings kept.
        starts: Character offset of the first character of each line.
    """

    def __init__(self, content):
        self.content = content
        self.lines = split_lines(content)
        self.starts = []
        offset = 0
        for line in self.lines:
            self.starts.append(offset)
            offset += len(line)

    @property
    def line_count(self):
        return len(self.lines)

    def line_of(self, offset):
        """Return the 1-based line containing ``offset``."""
        if not self.starts:
            return 1
        return bisect.bisect_right(self.starts, offset)

    def offset(self, lineno, col):
        """Convert a parser position to a character offset.

        Args:
            lineno: 1-based line number.
            col: Column in UTF-8 bytes, as reported by ``ast``.
        """
        if lineno > len(self.lines):
            return len(self.content)
        line = self.lines[lineno - 1]
        start = self.starts[lineno - 1]
        if line.isascii():
            return start + col
        prefix = line.encode("utf-8", "surrogatepass")[:col]
        return start + len(prefix.decode("utf-8", "replace"))

    def text(self, lineno):
        """Return line ``lineno`` without its line ending."""
        if not 1 <= lineno <= len(self.lines):
            return ""
        return NEWLINE.sub("", self.lines[lineno - 1])
