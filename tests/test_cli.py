"""Tests for the command line layer: argument parsing and command handlers."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from rich.console import Console

from conftest import SAMPLE_TEST, ScriptedTestRunner, StubFixer, failing, passing
from journey_refiner.cli.commands import classify_command, refine_command
from journey_refiner.cli.commands.argument_parser import parse_arguments
from journey_refiner.infrastructure.adapters.ui.rich_ui_adapter import RichUIAdapter

CONFIG = {"refinement": {"fixer_order": ["stub"], "cooldown_ms": 0}, "ui": {"color": False}}


@pytest.fixture
def output(monkeypatch) -> io.StringIO:
    """Routes both command handlers to a wide, uncoloured console."""
    buffer = io.StringIO()
    ui = RichUIAdapter(console=Console(file=buffer, width=200, no_color=True))
    monkeypatch.setattr(classify_command, "create_ui_service", lambda config: ui)
    monkeypatch.setattr(refine_command, "create_ui_service", lambda config: ui)
    return buffer


class TestArgumentParser:
    def test_refine_defaults(self) -> None:
        args = parse_arguments(["refine", "a.spec.ts", "b.spec.ts"])
        assert args.command == "refine"
        assert args.test_files == ["a.spec.ts", "b.spec.ts"]
        assert args.max_attempts is None
        assert args.max_workers == 4
        assert args.dry_run is False
        assert args.config == "config/application.yml"

    def test_refine_overrides(self) -> None:
        args = parse_arguments(["--config", "ci.yml", "refine", "a.spec.ts", "--max-attempts", "5",
                                "--confidence-threshold", "0.7", "--dry-run"])
        assert args.config == "ci.yml"
        assert args.max_attempts == 5
        assert args.confidence_threshold == 0.7
        assert args.dry_run is True

    def test_command_is_required(self) -> None:
        with pytest.raises(SystemExit):
            parse_arguments([])


class TestClassifyCommand:
    def test_prints_each_error(self, output: io.StringIO, tmp_path: Path) -> None:
        report = tmp_path / "out.txt"
        report.write_text("Error: connect ECONNREFUSED 127.0.0.1:3000\n",
                          encoding="utf-8")
        args = parse_arguments(["classify", str(report), "--test-file", "tests/home.spec.ts"])

        assert classify_command.handle_classify(args, CONFIG) == 0
        text = output.getvalue()
        assert "NETWORK_ERROR" in text
        assert "tests/home.spec.ts" in text

    def test_clean_output(self, output: io.StringIO, tmp_path: Path) -> None:
        report = tmp_path / "out.txt"
        report.write_text("", encoding="utf-8")
        assert classify_command.handle_classify(parse_arguments(["classify", str(report)]), CONFIG) == 0
        assert "No errors found" in output.getvalue()

    def test_missing_source(self, output: io.StringIO, tmp_path: Path) -> None:
        args = parse_arguments(["classify", str(tmp_path / "nope.txt")])
        assert classify_command.handle_classify(args, CONFIG) == 2
        assert "File not found" in output.getvalue()


class TestRefineCommand:
    def test_journey_id_needs_single_file(self, output: io.StringIO) -> None:
        args = parse_arguments(["refine", "a.spec.ts", "b.spec.ts", "--journey-id", "x"])
        assert refine_command.handle_refine(args, CONFIG) == 2

    def test_invalid_override(self, output: io.StringIO) -> None:
        args = parse_arguments(["refine", "a.spec.ts", "--max-attempts", "0"])
        assert refine_command.handle_refine(args, CONFIG) == 2
        assert "Invalid refinement configuration" in output.getvalue()

    def test_successful_session(self, output: io.StringIO, make_orchestrator, monkeypatch, tmp_path: Path) -> None:
        spec = tmp_path / "checkout.spec.ts"
        spec.write_text(SAMPLE_TEST, encoding="utf-8")
        runner = ScriptedTestRunner([failing("Error: expect(locator).toBeVisible() failed"), passing()])
        fixer = StubFixer("stub", transform=lambda code: code.replace("Checkout", "Place order"))
        monkeypatch.setattr(refine_command, "create_orchestrator",
                            lambda config: make_orchestrator(runner, [fixer]))

        exit_code = refine_command.handle_refine(parse_arguments(["refine", str(spec)]), CONFIG)

        assert exit_code == 0
        assert "Place order" in spec.read_text(encoding="utf-8")
        text = output.getvalue()
        assert "SUCCESS" in text
        assert "Attempt 1" in text

    def test_missing_file(self, output: io.StringIO, make_orchestrator, monkeypatch, tmp_path: Path) -> None:
        monkeypatch.setattr(refine_command, "create_orchestrator",
                            lambda config: make_orchestrator(ScriptedTestRunner([passing()]), []))
        args = parse_arguments(["refine", str(tmp_path / "missing.spec.ts")])
        assert refine_command.handle_refine(args, CONFIG) == 2
