"""
Assertion side of coverage: turning executed lines into covered lines.

A line is covered once it executed inside a verification region that
passed. Lines executed in a failing region stay executed only.

Example:
    with verify(context):
        result = parse(text)
        expect(context, result.ok)
"""

import contextlib
import logging

LOG = logging.getLogger(__name__)


def _cover(context, lines):
    for path, line in lines:
        context.store.set_line_covered(path, line)


@contextlib.contextmanager
def verify(context):
    """Mark the lines executed in the ``with`` body covered if it completes.

    Regions nest; an inner region that passes covers its lines even if the
    outer one later fails.
    """
    tracker = context.tracker
    mark = tracker.checkpoint()
    try:
        yield context
    except BaseException:
        LOG.debug("verification failed, %d executed lines left uncovered", len(tracker.journaled(mark)))
        raise
    else:
        _cover(context, tracker.journaled(mark))
    finally:
        tracker.release(mark)


def expect(context, value, message=None):
    """Assert ``value`` and cover the lines executed since the outermost
    ``verify`` region began.

    Outside of a ``verify`` region nothing is journaled, so only the
    assertion itself takes effect.

    Raises:
        AssertionError: If ``value`` is false.
    """
    if not value:
        raise AssertionError(message if message is not None else "expectation failed")
    tracker = context.tracker
    if tracker.journal is not None:
        _cover(context, tracker.journaled(0))
    return value
