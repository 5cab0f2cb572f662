from __future__ import annotations

from pathlib import Path
import textwrap
from typing import Any

import pytest

from covflow.application.context import CoverageContext
from covflow.config import CoverageConfig


def _normalize_code(code: str) -> str:
    # Allow indented triple-quoted snippets in tests.
    code = textwrap.dedent(code)
    # Trim leading blank line to keep expected line numbers stable.
    code = code.lstrip("\n")
    if code and not code.endswith("\n"):
        code += "\n"
    return code


class SourceTree:
    """
    Small harness for tests that need real files:
    - writes dedented snippets below a temporary directory
    - builds CoverageContexts tracking that directory
    """

    def __init__(self, tmp_path: Path):
        self.root = tmp_path

    def code(self, code: str) -> str:
        return _normalize_code(code)

    def write(self, code: str, filename: str = "sample.py") -> str:
        path = self.root / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(_normalize_code(code), encoding="utf-8")
        return str(path)

    def context(self, hooks: bool = False, **overrides: Any) -> CoverageContext:
        cfg = CoverageConfig()
        cfg.set_option("root", str(self.root))
        for name, value in overrides.items():
            cfg.set_option(name, value)
        return CoverageContext(cfg, hooks=hooks)


@pytest.fixture
def sources(tmp_path: Path) -> SourceTree:
    return SourceTree(tmp_path)
