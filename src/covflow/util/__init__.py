"""
Utility modules for covflow.

- Type-based dispatch (typedispatch.py)
- Application-level utilities (application/)
- I/O and formatting utilities (io/)
"""
