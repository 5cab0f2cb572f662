"""
covflow CLI tools.

This package contains the command-line tools of covflow:
- run: execute a script under coverage and print a summary
- classify / instrument / codemap: inspect what the analyzers make of a file
- merge: combine saved coverage data files
"""

from .main import main

__all__ = ["main"]
