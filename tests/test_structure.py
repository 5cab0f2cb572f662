import textwrap
import unittest

from covflow.analysis.structure import CodeMap, analyze
from covflow.data.records import BlockKind, ConditionKind, FunctionKind, Operator


def code_map(code):
    return analyze(textwrap.dedent(code).lstrip("\n"))[1]


def by_label(cm, label):
    return [b for b in cm.blocks.values() if b.label == label]


class TestConditionals(unittest.TestCase):
    def setUp(self):
        self.cm = code_map(
            """
            def outer(x):
                if x > 0 and x < 10:
                    return 1
                elif x < 0:
                    return -1
                else:
                    return 0
            """
        )

    def testConditionRecords(self):
        root = self.cm.conditions[1]
        self.assertEqual(root.kind, ConditionKind.COMPOUND)
        self.assertEqual(root.operator, Operator.AND)
        self.assertEqual(root.components, [2, 3])
        self.assertEqual(self.cm.conditions[2].parent_id, 1)
        self.assertEqual(self.cm.conditions[4].kind, ConditionKind.SIMPLE)
        self.assertEqual(self.cm.conditions[4].line, 4)

    def testBranches(self):
        conditional = by_label(self.cm, "if")[0]
        self.assertEqual(conditional.kind, BlockKind.CONDITIONAL)
        labels = [self.cm.blocks[b].label for b in conditional.branches]
        self.assertEqual(labels, ["then", "elif", "else"])
        self.assertEqual(conditional.conditions, [1, 4])
        self.assertEqual(self.cm.conditions[1].branch_id, conditional.branches[0])

    def testHeaders(self):
        then_block = by_label(self.cm, "then")[0]
        self.assertEqual(self.cm.header_condition(2), (1, then_block.start_line, then_block.end_line))
        self.assertEqual(self.cm.header_condition(4)[0], 4)
        self.assertIsNone(self.cm.header_condition(3))

    def testEntries(self):
        self.assertEqual([self.cm.blocks[b].label for b in self.cm.blocks_entered_at(2)], ["if"])
        self.assertEqual([self.cm.blocks[b].label for b in self.cm.blocks_entered_at(7)], ["else"])

    def testFunction(self):
        function = self.cm.functions[1]
        self.assertEqual(function.name, "outer")
        self.assertEqual(function.kind, FunctionKind.GLOBAL)
        self.assertEqual(function.params, ("x",))
        self.assertEqual(self.cm.blocks[function.block_id].kind, BlockKind.FUNCTION)
        self.assertIs(self.cm.enclosing_function(5), function)
        self.assertEqual(self.cm.functions_at(1, "outer"), [function])


class TestLoops(unittest.TestCase):
    def testWhileLoop(self):
        cm = code_map(
            """
            while n > 0:
                n -= 1
            else:
                done()
            """
        )
        loop = by_label(cm, "loop")[0]
        self.assertEqual(loop.kind, BlockKind.LOOP_WHILE)
        self.assertEqual(loop.conditions, [1])
        self.assertEqual(cm.conditions[1].branch_id, loop.id)
        self.assertEqual(cm.header_condition(1), (1, 2, 2))
        orelse = by_label(cm, "else")[0]
        self.assertEqual(orelse.parent_id, loop.id)
        self.assertEqual(orelse.entry_line, 4)

    def testConstantLoopHasNoCondition(self):
        cm = code_map(
            """
            while True:
                break
            """
        )
        self.assertEqual(by_label(cm, "loop")[0].kind, BlockKind.LOOP_REPEAT)
        self.assertEqual(cm.conditions, {})

    def testForLoop(self):
        cm = code_map(
            """
            for item in items:
                use(item)
            """
        )
        loop = by_label(cm, "loop")[0]
        self.assertEqual(loop.kind, BlockKind.LOOP_FOR)
        self.assertEqual(loop.entry_line, 2)


class TestOtherBlocks(unittest.TestCase):
    def testTryImpliesHeader(self):
        cm = code_map(
            """
            try:
                a()
            except ValueError:
                b()
            except:
                c()
            finally:
                d()
            """
        )
        self.assertEqual([b.label for b in cm.blocks.values()], ["try", "except", "except", "finally"])
        self.assertEqual(cm.implied, {2: [1], 6: [5]})

    def testOneLineBodyHasNoHeader(self):
        cm = code_map(
            """
            if x: y = 1
            """
        )
        self.assertEqual(len(cm.conditions), 1)
        self.assertEqual(cm.headers, {})

    def testDecoratorAliases(self):
        cm = code_map(
            """
            @first
            @second
            def f():
                pass
            """
        )
        self.assertEqual(cm.aliases, {1: [3], 2: [3]})
        self.assertEqual(cm.functions[1].first_line, 1)
        self.assertEqual(cm.functions_at(1)[0].name, "f")

    def testDocstringIsNotEntry(self):
        cm = code_map(
            '''
            class A:
                """Doc."""
                x = 1
            '''
        )
        self.assertEqual(by_label(cm, "class")[0].entry_line, 3)

    def testMatchGuards(self):
        cm = code_map(
            """
            match command:
                case "go" if ready:
                    go()
                case _:
                    stop()
            """
        )
        match = by_label(cm, "match")[0]
        self.assertEqual(len(match.branches), 2)
        self.assertEqual(len(cm.conditions), 1)
        # guards are decided by the pattern, not by the next line
        self.assertEqual(cm.headers, {})


class TestFunctionKinds(unittest.TestCase):
    def testKinds(self):
        cm = code_map(
            """
            class A:
                def m(self):
                    return 1
                @staticmethod
                def s():
                    return 2
                f = lambda self: 1
            def g():
                def inner():
                    pass
                h = lambda: 0
                return inner
            k = lambda: 0
            obj.attr = lambda: 1
            print(lambda: 2)
            """
        )
        kinds = {(f.name, f.start_line): f.kind for f in cm.functions.values()}
        self.assertEqual(
            kinds,
            {
                ("m", 2): FunctionKind.METHOD,
                ("s", 5): FunctionKind.MODULE,
                ("<lambda>", 7): FunctionKind.METHOD,
                ("g", 8): FunctionKind.GLOBAL,
                ("inner", 9): FunctionKind.LOCAL,
                ("<lambda>", 11): FunctionKind.LOCAL,
                ("<lambda>", 13): FunctionKind.GLOBAL,
                ("<lambda>", 14): FunctionKind.MODULE,
                ("<lambda>", 15): FunctionKind.ANONYMOUS,
            },
        )

    def testEnclosingFunctionSkipsLambdas(self):
        cm = code_map(
            """
            def f():
                g = lambda: 1
                return g
            """
        )
        self.assertEqual(cm.enclosing_function(2).name, "f")


def test_code_map_round_trip():
    cm = code_map(
        """
        def f(a):
            if a or b:
                return 1
            return 2
        """
    )
    copy = CodeMap.from_dict(cm.as_dict())
    assert copy.as_dict() == cm.as_dict()
    assert copy.headers == cm.headers
    assert copy.entries == cm.entries
