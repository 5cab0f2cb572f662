"""
Per-file coverage data.
"""

from covflow.analysis.classifier import classify_source
from covflow.analysis.structure import CodeMap
from covflow.data.records import Classification, LineRecord
from covflow.util.io.filesystem import dataHash


class SourceFile(object):
    """Coverage data of one file.

    Owns one LineRecord per line and the records of its code map. The
    parsed tree and the content are only present for files analyzed in
    this process; files loaded from saved data carry the records alone.

    Attributes:
        path: Normalized path.
        content_hash: Hash of the analyzed content.
        line_count: Number of lines.
        lines: LineRecords, index 0 is line 1.
        code_map: CodeMap holding the function, block and condition records.
    """

    def __init__(self, path, content_hash, lines, code_map, content=None, tree=None):
        self.path = path
        self.content_hash = content_hash
        self.lines = lines
        self.code_map = code_map
        self.content = content
        self.tree = tree

    @classmethod
    def create(cls, path, content, tree, code_map):
        lines = [
            LineRecord(i + 1, info.classification, info.logical_line)
            for i, info in enumerate(classify_source(content))
        ]
        return cls(path, dataHash(content), lines, code_map, content, tree)

    @property
    def line_count(self):
        return len(self.lines)

    @property
    def functions(self):
        return self.code_map.functions

    @property
    def blocks(self):
        return self.code_map.blocks

    @property
    def conditions(self):
        return self.code_map.conditions

    def line(self, lineno):
        """LineRecord of ``lineno``, or None past the end of the file."""
        if 1 <= lineno <= len(self.lines):
            return self.lines[lineno - 1]
        return None

    def executable_lines(self):
        return [r for r in self.lines if r.classification is Classification.EXECUTABLE]

    def records(self):
        """Every mutable record of the file."""
        yield from self.lines
        yield from self.functions.values()
        yield from self.blocks.values()
        yield from self.conditions.values()

    def reset(self):
        for record in self.records():
            record.reset()

    def as_dict(self):
        data = self.code_map.as_dict()
        data["path"] = self.path
        data["content_hash"] = self.content_hash
        data["lines"] = [r.as_dict() for r in self.lines]
        return data

    @classmethod
    def from_dict(cls, data):
        lines = sorted((LineRecord.from_dict(d) for d in data.get("lines", ())), key=lambda r: r.number)
        return cls(data["path"], data["content_hash"], lines, CodeMap.from_dict(data))
