"""
The object instrumented code calls.

A rewritten module finds its Probe under the global name ``__covflow__``.
Every call forwards to the RuntimeTracker, whose error barrier keeps
tracking failures away from the program. ``wrap`` returns the wrapped
value unchanged; condition calls return its truth value.
"""


class Probe(object):
    """Reports the bundles of one instrumented file.

    Attributes:
        tracker: RuntimeTracker receiving the events.
        path: Normalized path of the file.
        bundles: Bundle table of the file's RewrittenSource.
        exit_bundle: Bundle reported by ``finish``, or 0.
    """

    __slots__ = "tracker", "path", "bundles", "exit_bundle"

    def __init__(self, tracker, path, bundles, exit_bundle=0):
        self.tracker = tracker
        self.path = path
        self.bundles = bundles
        self.exit_bundle = exit_bundle

    def __call__(self, n):
        lines, blocks, functions = self.bundles[n]
        self.tracker.hit(self.path, lines, blocks, functions)

    def finish(self):
        """Called once the module body has run to its end."""
        if self.exit_bundle:
            self(self.exit_bundle)

    def wrap(self, n, value):
        """Report bundle ``n`` and pass ``value`` through."""
        self(n)
        return value

    def part(self, cid, value):
        """Report the outcome of a component of a compound condition."""
        outcome = bool(value)
        self.tracker.hit_condition(self.path, cid, outcome)
        return outcome

    def cond(self, n, cid, value, infer=False):
        """Report a header and the outcome of its test.

        The test's truth value is computed once and returned in place of
        the value, so ``__bool__`` runs exactly as often as in the
        unmodified program. An exception it raises propagates unchanged.

        Args:
            n: Bundle of the header.
            cid: Id of the test's root condition.
            value: The value of the test.
            infer: Derive component outcomes from the root's outcome
                (set when the components themselves are not wrapped).
        """
        self(n)
        outcome = bool(value)
        self.tracker.hit_condition(self.path, cid, outcome, bool(infer))
        return outcome
