"""
Runtime tracking of execution events.

**Key Components:**

1. **RuntimeTracker** (`tracker.py`):
   - Trace event handling and condition outcome resolution
   - Bounded hand-off of events from foreign threads
   - Execution journal used by the assertion helpers

2. **HookStats** (`stats.py`):
   - Latency and error accounting of the tracking hook
"""
