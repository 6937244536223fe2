"""Tests for YAML configuration loading and adapter wiring."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from journey_refiner.cli import adapter_factory
from journey_refiner.cli.commands.config_loader import (
    build_refinement_config,
    ensure_app_directories,
    load_and_resolve_config,
    resolve_path,
)
from journey_refiner.domain.models.errors import RefinementConfigError
from journey_refiner.infrastructure.adapters.learning_store.json_lesson_store import JsonLessonStore
from journey_refiner.infrastructure.adapters.llm.mock_llm_adapter import MockLLMAdapter


def write_config(root: Path, data, name: str = "config/application.yml") -> Path:
    path = root / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data if isinstance(data, str) else yaml.safe_dump(data), encoding="utf-8")
    return path


class TestLoadAndResolve:
    def test_resolves_paths_against_root(self, tmp_path: Path) -> None:
        write_config(tmp_path, {
            "refinement": {"max_attempts": 4},
            "logging": {"log_file": "var/logs/run.log"},
        })
        config = load_and_resolve_config(tmp_path)
        assert config["refinement"]["max_attempts"] == 4
        assert config["lessons"]["store_path"] == str((tmp_path / "var/lessons/lessons.json").resolve())
        assert config["test_runner"]["cwd"] == str(tmp_path.resolve())
        assert config["logging"]["log_file"] == str((tmp_path / "var/logs/run.log").resolve())
        assert "llm" not in config

    def test_custom_config_path(self, tmp_path: Path) -> None:
        write_config(tmp_path, {"refinement": {}}, name="ci.yml")
        assert load_and_resolve_config(tmp_path, "ci.yml")["refinement"] == {}

    @pytest.mark.parametrize(
        "content",
        ["", "- just\n- a list\n", "refinement:\n  max_attempts: 0\n", "refinement: [1, 2]\n", "key: [unclosed\n"],
    )
    def test_invalid_configs_exit(self, tmp_path: Path, content: str) -> None:
        write_config(tmp_path, content)
        with pytest.raises(SystemExit) as excinfo:
            load_and_resolve_config(tmp_path)
        assert excinfo.value.code == 1

    def test_missing_file_exits(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit):
            load_and_resolve_config(tmp_path)

    def test_shipped_config_is_valid(self) -> None:
        root = Path(__file__).resolve().parent.parent
        config = load_and_resolve_config(root)
        assert build_refinement_config(config).fixer_order[-1] == "llm"


class TestHelpers:
    def test_resolve_path_without_default_leaves_missing_section(self, tmp_path: Path) -> None:
        config = {}
        resolve_path(config, tmp_path, ["llm", "prompt_dump_dir"])
        assert config == {}

    def test_build_refinement_config_with_overrides(self) -> None:
        config = {"refinement": {"max_attempts": 5, "cooldown_ms": 200}}
        refinement = build_refinement_config(config, max_attempts=2, cooldown_ms=None)
        assert refinement.max_attempts == 2
        assert refinement.cooldown_ms == 200

    def test_build_refinement_config_rejects_bad_override(self) -> None:
        with pytest.raises(RefinementConfigError):
            build_refinement_config({}, confidence_threshold=2.0)

    def test_ensure_app_directories(self, tmp_path: Path) -> None:
        config = {
            "lessons": {"store_path": str(tmp_path / "a" / "lessons.json")},
            "logging": {"log_file": str(tmp_path / "b" / "run.log")},
        }
        ensure_app_directories(config)
        assert (tmp_path / "a").is_dir()
        assert (tmp_path / "b").is_dir()


class TestAdapterFactory:
    def test_llm_disabled_by_default(self) -> None:
        assert adapter_factory.create_llm_service({}) is None

    def test_mock_llm(self) -> None:
        service = adapter_factory.create_llm_service({"llm": {"enabled": True, "provider": "mock"}})
        assert isinstance(service, MockLLMAdapter)

    def test_unknown_providers(self) -> None:
        with pytest.raises(ValueError):
            adapter_factory.create_llm_service({"llm": {"enabled": True, "provider": "crystal_ball"}})
        with pytest.raises(ValueError):
            adapter_factory.create_test_runner({"test_runner": {"type": "cypress"}})

    def test_learning_store(self, tmp_path: Path) -> None:
        store = adapter_factory.create_learning_store({"lessons": {"store_path": str(tmp_path / "l.json")}})
        assert isinstance(store, JsonLessonStore)
        assert adapter_factory.create_learning_store({"lessons": {"enabled": False}}) is None

    def test_orchestrator_registers_llm_fixer_when_enabled(self, tmp_path: Path) -> None:
        orchestrator = adapter_factory.create_orchestrator({
            "llm": {"enabled": True, "provider": "mock"},
            "lessons": {"store_path": str(tmp_path / "l.json")},
            "test_runner": {"cwd": str(tmp_path)},
        })
        assert orchestrator.registry.names[-1] == "llm"
