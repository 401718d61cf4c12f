"""Tests for the blockseq CLI commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import structlog
from typer.testing import CliRunner

from blockseq import __version__
from blockseq.cli import app as app_module
from blockseq.cli.app import app
from blockseq.core.logging import configure_logging

SRC = Path(__file__).resolve().parents[2] / "src"

runner = CliRunner()


@pytest.fixture(autouse=True)
def uncached_logging(monkeypatch):
    """Keep module loggers from caching the runner's short-lived stderr."""

    def configure(**kwargs):
        configure_logging(**kwargs)
        structlog.configure(cache_logger_on_first_use=False)

    monkeypatch.setattr(app_module, "configure_logging", configure)
    yield
    structlog.reset_defaults()


@pytest.fixture
def project_file(tmp_path, simple_document):
    path = tmp_path / "project.json"
    path.write_text(json.dumps(simple_document))
    return path


class TestInfo:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_legend(self):
        result = runner.invoke(app, ["legend"])
        assert result.exit_code == 0
        assert "_STARTSTACK_" in result.stdout
        assert "_MENU_" in result.stdout


class TestShow:
    def test_prints_sequence(self, project_file, simple_sequence):
        result = runner.invoke(app, ["show", str(project_file)])
        assert result.exit_code == 0
        assert result.stdout.strip() == simple_sequence

    def test_count(self, project_file, simple_sequence):
        result = runner.invoke(app, ["show", str(project_file), "--count"])
        assert result.exit_code == 0
        assert result.stdout.strip() == str(len(simple_sequence.split()))

    def test_extra_trigger(self, tmp_path, sb3_block, sb3_document):
        path = tmp_path / "reporter.json"
        path.write_text(json.dumps(sb3_document({"x": sb3_block("motion_xposition", top_level=True)})))

        assert runner.invoke(app, ["show", str(path)]).stdout.strip() == ""
        result = runner.invoke(app, ["show", str(path), "--trigger", "motion_xposition"])
        assert result.stdout.strip() == "_STARTSTACK_ motion_xposition _ENDSTACK_"

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("not a project")
        result = runner.invoke(app, ["show", str(path)])
        assert result.exit_code == 1
        assert result.stdout == ""

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["show", str(tmp_path / "nope.json")])
        assert result.exit_code == 2


class TestEncode:
    def test_single_project_from_directory(self, tmp_path, sink_paths, project_file, simple_sequence):
        result = runner.invoke(
            app,
            [
                "encode",
                "--project-id", "project",
                "--source-dir", str(tmp_path),
                "--sequences", str(sink_paths.sequences),
                "--identifiers", str(sink_paths.identifiers),
                "--errors", str(sink_paths.errors),
            ],
        )
        assert result.exit_code == 0, result.output
        assert sink_paths.sequences.read_text() == simple_sequence + "\n"
        assert sink_paths.identifiers.read_text() == "project\n"
        assert "succeeded" in result.stdout

    def test_corpus_with_failures_still_exits_zero(self, tmp_path, sink_paths, project_file):
        corpus = tmp_path / "ids.csv"
        corpus.write_text("id\nproject\nmissing\n")
        result = runner.invoke(
            app,
            [
                "encode",
                "--corpus", str(corpus),
                "--source-dir", str(tmp_path),
                "--sequences", str(sink_paths.sequences),
                "--identifiers", str(sink_paths.identifiers),
                "--errors", str(sink_paths.errors),
                "-j", "2",
            ],
        )
        assert result.exit_code == 0, result.output
        assert sink_paths.errors.read_text() == "missing\n"

    def test_missing_corpus(self, tmp_path):
        result = runner.invoke(app, ["encode", "--corpus", str(tmp_path / "none.csv")])
        assert result.exit_code == 1

    def test_project_and_corpus_conflict(self, tmp_path):
        result = runner.invoke(app, ["encode", "-p", "1", "--corpus", str(tmp_path / "ids.csv")])
        assert result.exit_code == 1


class TestBatches:
    def test_missing_corpus(self, tmp_path):
        result = runner.invoke(app, ["batches", "--corpus", str(tmp_path / "none.csv")])
        assert result.exit_code == 1

    def test_misaligned_audit_log(self, tmp_path):
        corpus = tmp_path / "ids.csv"
        corpus.write_text("id\n1\n2\n3\n")
        audit = tmp_path / "batches.log"
        audit.write_text("SUCCESS 0-0\n")
        result = runner.invoke(
            app,
            ["batches", "--corpus", str(corpus), "-b", "2", "--audit-log", str(audit)],
        )
        assert result.exit_code == 1

    def test_nothing_left(self, tmp_path):
        corpus = tmp_path / "ids.csv"
        corpus.write_text("id\n1\n2\n3\n")
        audit = tmp_path / "batches.log"
        audit.write_text("SUCCESS 0-1\nSUCCESS 2-2\n")
        result = runner.invoke(
            app,
            ["batches", "--corpus", str(corpus), "-b", "2", "--audit-log", str(audit)],
        )
        assert result.exit_code == 0
        assert "No batches to run" in result.stdout

    def test_unreadable_audit_log(self, tmp_path):
        corpus = tmp_path / "ids.csv"
        corpus.write_text("id\n1\n")
        result = runner.invoke(
            app, ["batches", "--corpus", str(corpus), "--audit-log", str(tmp_path)]
        )
        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)

    def test_unwritable_audit_log(self, tmp_path, monkeypatch, sink_paths):
        monkeypatch.setenv("PYTHONPATH", str(SRC))
        corpus = tmp_path / "ids.csv"
        corpus.write_text("id\n1\n")
        audit = tmp_path / "audit"
        audit.mkdir()
        result = runner.invoke(
            app,
            [
                "batches",
                "--corpus", str(corpus),
                "--audit-log", str(audit),
                "--no-resume",
                "--source-dir", str(tmp_path),
                *sink_paths.as_args(),
            ],
        )
        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
