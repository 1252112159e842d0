"""Unit tests for the command-line rule editor."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from exactblock.cli import EXIT_ERROR, EXIT_OK, EXIT_PROPAGATION_FAILED, main
from exactblock.config import DATA_DIR_ENV


@pytest.fixture
def run(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv(DATA_DIR_ENV, raising=False)
    base = ["--config", str(tmp_path / "none.json"), "--data-dir", str(tmp_path / "data")]

    def _run(*args: str) -> int:
        return main([*base, *args])

    return _run


class TestCli:
    """Tests for CLI commands."""

    def test_add_and_list(self, run, capsys: pytest.CaptureFixture[str]) -> None:
        assert run("add-host", "Reddit.com") == EXIT_OK
        assert run("add-rule", "youtube.com###content") == EXIT_OK
        capsys.readouterr()

        assert run("list") == EXIT_OK
        out = capsys.readouterr().out
        assert "  reddit.com" in out
        assert "  youtube.com###content" in out
        assert "1 website rules, 1 element rules" in out

    def test_add_host_reports_stored_name(self, run, capsys: pytest.CaptureFixture[str]) -> None:
        assert run("add-host", "  Reddit.COM ") == EXIT_OK
        assert capsys.readouterr().out.strip() == "Blocked reddit.com"

    def test_filter_list(self, run, capsys: pytest.CaptureFixture[str]) -> None:
        assert run("filter-list") == EXIT_OK
        assert capsys.readouterr().out.strip() == "[]"

        run("add-host", "reddit.com")
        capsys.readouterr()

        assert run("filter-list") == EXIT_OK
        entries = json.loads(capsys.readouterr().out)
        assert entries[0]["action"] == {"type": "block"}

    def test_add_rule_invalid(self, run, capsys: pytest.CaptureFixture[str]) -> None:
        assert run("add-rule", "no delimiter") == EXIT_ERROR
        assert "not a domain##selector rule" in capsys.readouterr().err

    def test_import_export(self, run, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        source = tmp_path / "rules.txt"
        source.write_text("a.com##.x\nb.com##.y\na.com##.x\n", encoding="utf-8")

        assert run("import", str(source)) == EXIT_OK
        assert "Imported 2 new rules" in capsys.readouterr().out
        assert run("import", str(source)) == EXIT_OK
        assert "Imported 0 new rules" in capsys.readouterr().out

        assert run("export") == EXIT_OK
        assert capsys.readouterr().out == "a.com##.x\nb.com##.y\n"

        out_file = tmp_path / "out.txt"
        assert run("export", "-o", str(out_file)) == EXIT_OK
        assert out_file.read_text(encoding="utf-8") == "a.com##.x\nb.com##.y\n"

    def test_import_missing_source(self, run, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert run("import", str(tmp_path / "missing.txt")) == EXIT_ERROR
        assert "missing.txt" in capsys.readouterr().err

    def test_remove_and_clear(self, run, capsys: pytest.CaptureFixture[str]) -> None:
        run("add-host", "a.com")
        run("add-rule", "x.com##.ad")
        run("add-rule", "y.com##.ad")

        assert run("remove-host", "a.com") == EXIT_OK
        assert run("remove-rule", "x.com##.ad") == EXIT_OK
        assert run("clear-rules") == EXIT_OK
        capsys.readouterr()

        run("list")
        assert "0 website rules, 0 element rules" in capsys.readouterr().out

    def test_reload_warns_without_engine(self, run, capsys: pytest.CaptureFixture[str]) -> None:
        run("add-host", "a.com")
        capsys.readouterr()

        assert run("reload") == EXIT_OK
        captured = capsys.readouterr()
        assert "refreshed with 1 rules" in captured.out
        assert "reload failed" in captured.err

    def test_propagation_failure_exit_code(
        self, run, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        # A directory in place of the filter list makes Sink A fail
        (tmp_path / "data" / "groups" / "group.exactblock" / "blockerList.json").mkdir(parents=True)

        assert run("add-host", "a.com") == EXIT_PROPAGATION_FAILED
        assert "rules saved but not fully propagated" in capsys.readouterr().err
