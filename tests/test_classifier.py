import logging
import textwrap
import unittest

import pytest

from covflow.analysis.classifier import classify_line, classify_source
from covflow.data.records import Classification
from covflow.errors import ValidationError

EXEC = Classification.EXECUTABLE
NONEXEC = Classification.NON_EXECUTABLE
COMMENT = Classification.COMMENT


def classes(code):
    return [info.classification for info in classify_source(textwrap.dedent(code).lstrip("\n"))]


class TestLineClassification(unittest.TestCase):
    def testBlockComment(self):
        result = classes(
            '''
            x = 1
            """
            block comment
            """
            y = 2
            '''
        )
        self.assertEqual(result, [EXEC, COMMENT, COMMENT, COMMENT, EXEC])

    def testCommentsAndBlankLines(self):
        result = classes(
            """
            # leading comment

            x = 1  # trailing comment
            """
        )
        self.assertEqual(result, [COMMENT, NONEXEC, EXEC])

    def testContinuationLines(self):
        classified = classify_source("total = add(\n    1,\n    2,\n)\n")
        self.assertEqual([i.classification for i in classified], [EXEC, NONEXEC, NONEXEC, NONEXEC])
        self.assertEqual(classified.line(3).logical_line, 1)
        self.assertEqual(classified.logical_line(4), 1)
        self.assertEqual(classified.logical_line(1), 1)

    def testBackslashContinuation(self):
        classified = classify_source("x = 1 + \\\n    2\ny = 3\n")
        self.assertEqual([i.classification for i in classified], [EXEC, NONEXEC, EXEC])
        self.assertEqual(classified.line(2).logical_line, 1)

    def testClauseLines(self):
        result = classes(
            """
            if x:
                a = 1
            else:
                a = 2
            try:
                b = 1
            finally:
                b = 2
            """
        )
        self.assertEqual(result, [EXEC, EXEC, NONEXEC, EXEC, EXEC, EXEC, NONEXEC, EXEC])

    def testClauseWithBodyOnSameLine(self):
        self.assertEqual(classes("if x: a = 1\nelse: a = 2\n"), [EXEC, EXEC])

    def testDeclarations(self):
        result = classes(
            """
            def f():
                global counter
                counter = 1
            """
        )
        self.assertEqual(result, [EXEC, NONEXEC, EXEC])

    def testDocstringsAreComments(self):
        result = classes(
            '''
            def f():
                """Return one.

                More text.
                """
                return 1
            '''
        )
        self.assertEqual(result, [EXEC, COMMENT, COMMENT, COMMENT, COMMENT, EXEC])

    def testStringContinuingCode(self):
        # a multi-line string inside a call belongs to the call
        result = classes('x = f("""\ntext\n""")\n')
        self.assertEqual(result, [EXEC, NONEXEC, NONEXEC])

    def testFormattedStringIsCode(self):
        self.assertEqual(classes('f"{x}"\n'), [EXEC])

    def testSemicolons(self):
        self.assertEqual(classes("a = 1; b = 2\n"), [EXEC])

    def testLiteralFlags(self):
        classified = classify_source("values = [\n    1,\n    {2, 3},\n]\ncall(\n    4,\n)\n")
        self.assertEqual([i.in_literal for i in classified], [False, True, True, True, False, False, False])
        self.assertEqual([i.in_brackets for i in classified], [False, True, True, True, False, True, True])
        self.assertTrue(classified.balanced)

    def testUnbalanced(self):
        self.assertFalse(classify_source("x = (1,\n").balanced)
        self.assertFalse(classify_source("x = 1)\n").balanced)

    def testExecutableLines(self):
        classified = classify_source("a = 1\n\n# c\nb = 2\n")
        self.assertEqual(classified.executable_lines(), [1, 4])

    def testMemoized(self):
        content = "a = 1\n"
        self.assertIs(classify_source(content), classify_source(content))


def test_unterminated_string_turns_rest_into_comments(caplog):
    with caplog.at_level(logging.WARNING):
        classified = classify_source('x = 1\ny = """abc\nmore\nstill more\n')
    assert [i.classification for i in classified] == [EXEC, EXEC, COMMENT, COMMENT]
    assert classified.unterminated == 2
    assert not classified.balanced
    assert "unterminated string" in caplog.text


def test_classify_line():
    assert classify_line("a = 1\n# c\n", 1) is EXEC
    assert classify_line("a = 1\n# c\n", 2) is COMMENT


@pytest.mark.parametrize("content, line", [(None, 1), ("a = 1\n", 0), ("a = 1\n", 2), ("a = 1\n", "1")])
def test_classify_line_rejects_bad_input(content, line):
    with pytest.raises(ValidationError):
        classify_line(content, line)
