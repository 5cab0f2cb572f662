"""covflow - line, function, block and condition coverage for Python.
"""

__version__ = "0.1.0"

# Import main components for easy access
from .application.context import CoverageContext
from .assertion import expect, verify
from .config import CoverageConfig
from .data.store import CoverageStore, merge_stores

__all__ = [
    "CoverageContext",
    "CoverageConfig",
    "CoverageStore",
    "merge_stores",
    "verify",
    "expect",
    "__version__",
]
