"""
Formatting utilities for human-readable output.

Provides functions to format durations, latencies and coverage ratios in
the text summaries printed by the command line tools.
"""


def elapsedTime(t):
    """
    Format a time duration in seconds as a human-readable string.

    Selects the most appropriate unit:
    - Microseconds for times < 1 millisecond
    - Milliseconds for times < 1 second
    - Seconds for times < 1 minute
    - Minutes for longer times

    Args:
        t: Time duration in seconds (float)

    Returns:
        Formatted string with appropriate unit (e.g., "12.5 us", "45.6 s")
    """
    if t < 0.001:
        return "%5.4g us" % (t * 1000000.0)
    elif t < 1.0:
        return "%5.4g ms" % (t * 1000.0)
    elif t < 60.0:
        return "%5.4g s" % (t)
    else:
        return "%5.4g m" % (t / 60.0)


def percentage(covered, total):
    """
    Format a coverage ratio as "xx.xx% (covered/total)".

    A zero total is reported as 0.00% rather than failing.
    """
    pct = (covered / total * 100.0) if total > 0 else 0.0
    return "%6.2f%% (%d/%d)" % (pct, covered, total)
