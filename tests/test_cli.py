import json

import pytest

from covflow import __version__
from covflow.cli import main

SCRIPT = """
import sys

def classify(n):
    if n > 0:
        return "pos"
    return "other"

results = [classify(int(a)) for a in sys.argv[1:] if a != "fail"]
if "fail" in sys.argv:
    sys.exit(3)
"""


@pytest.fixture
def script(sources):
    return sources.write(SCRIPT, "script.py")


def test_version(capsys):
    with pytest.raises(SystemExit):
        main(["--version"])
    assert __version__ in capsys.readouterr().out


def test_missing_path(capsys, tmp_path):
    assert main(["classify", str(tmp_path / "missing.py")]) == 1
    assert "not found" in capsys.readouterr().err


@pytest.mark.parametrize("strategy", ["runtime", "instrument"])
def test_run_prints_report(capsys, sources, script, strategy):
    status = main(["run", "--root", str(sources.root), "--strategy", strategy, script, "1", "-1"])
    assert status == 0
    out = capsys.readouterr().out
    assert "script.py" in out
    assert "TOTAL" in out
    assert "1 files tracked, 0 with problems" in out


def test_run_lists_files_that_never_ran(capsys, sources, script):
    sources.write("def unused():\n    return 1\n", "unused.py")
    assert main(["run", "--root", str(sources.root), script, "1"]) == 0
    out = capsys.readouterr().out
    assert "unused.py" in out
    assert "2 files tracked, 0 with problems" in out

    assert main(["run", "--root", str(sources.root), "--no-discover", script, "1"]) == 0
    out = capsys.readouterr().out
    assert "unused.py" not in out
    assert "1 files tracked, 0 with problems" in out


def test_run_returns_script_exit_status(capsys, sources, script):
    assert main(["run", "--root", str(sources.root), script, "fail"]) == 3


def test_run_saves_data_and_merges(capsys, sources, script, tmp_path):
    first = str(tmp_path / "first.json")
    second = str(tmp_path / "second.json")
    merged = str(tmp_path / "merged.json")
    assert main(["run", "--root", str(sources.root), "--data-file", first, script, "1"]) == 0
    assert main(["run", "--root", str(sources.root), "--data-file", second, script, "-1"]) == 0
    capsys.readouterr()

    assert main(["merge", merged, first, second]) == 0
    assert "from 2 runs" in capsys.readouterr().out
    with open(merged, encoding="utf-8") as f:
        data = json.load(f)
    (conditions,) = [item["conditions"] for item in data["files"].values()]
    root = [c for c in conditions if c["id"] == 1][0]
    assert root["executed_true"] == 1 and root["executed_false"] == 1


def test_merge_reports_bad_input(capsys, tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("[", encoding="utf-8")
    assert main(["merge", str(tmp_path / "out.json"), str(bad)]) == 1
    assert "CoverageIOError" in capsys.readouterr().err


class TestInspection:
    def test_classify(self, capsys, sources):
        path = sources.write('"""Doc."""\nx = 1\n')
        assert main(["classify", path]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines[0].split()[:2] == ["1", "comment"]
        assert lines[1].split()[:2] == ["2", "executable"]

    def test_instrument(self, capsys, sources):
        path = sources.write("x = 1\n")
        assert main(["instrument", path]) == 0
        assert capsys.readouterr().out == "__covflow__(1); x = 1\n"

    def test_codemap(self, capsys, sources):
        path = sources.write("def f(a):\n    if a:\n        return 1\n")
        assert main(["codemap", path]) == 0
        data = json.loads(capsys.readouterr().out)
        assert [f["name"] for f in data["functions"]] == ["f"]

    def test_parse_error(self, capsys, sources):
        path = sources.write("def (:\n")
        assert main(["codemap", path]) == 1
        assert "ParseError" in capsys.readouterr().err


def test_run_verbose_prints_hook_stats(capsys, sources, script):
    assert main(["run", "-v", "--root", str(sources.root), script, "1"]) == 0
    out = capsys.readouterr().out
    assert "begin [ run ]" in out
    assert "hook calls" in out
    assert "rss:" in out
