"""Tests for RefinementConfig validation and construction."""

from __future__ import annotations

import pytest

from journey_refiner.domain.models.errors import RefinementConfigError
from journey_refiner.domain.models.refinement_config import DEFAULT_FIXER_ORDER, RefinementConfig


class TestDefaults:
    def test_default_values(self) -> None:
        config = RefinementConfig()
        assert config.max_attempts == 3
        assert config.same_error_threshold == 2
        assert config.oscillation_detection is True
        assert config.oscillation_window_size == 4
        assert config.total_timeout_ms == 300000
        assert config.cooldown_ms == 1000
        assert config.max_token_budget == 50000
        assert config.confidence_threshold == 0.5
        assert config.fixer_order == DEFAULT_FIXER_ORDER

    def test_fixer_order_is_not_shared(self) -> None:
        first = RefinementConfig()
        first.fixer_order.append("custom")
        assert RefinementConfig().fixer_order == DEFAULT_FIXER_ORDER


class TestValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"max_attempts": 0},
            {"max_attempts": "3"},
            {"max_attempts": True},
            {"same_error_threshold": 0},
            {"oscillation_window_size": 2},
            {"total_timeout_ms": 0},
            {"cooldown_ms": -1},
            {"max_token_budget": -5},
            {"confidence_threshold": 1.5},
            {"confidence_threshold": "high"},
            {"oscillation_detection": "yes"},
            {"fixer_order": []},
            {"fixer_order": ["timing", "timing"]},
            {"fixer_order": ["timing", ""]},
        ],
    )
    def test_invalid_values(self, overrides) -> None:
        with pytest.raises(RefinementConfigError):
            RefinementConfig(**overrides)

    def test_boundary_values_are_accepted(self) -> None:
        config = RefinementConfig(max_attempts=1, same_error_threshold=1, oscillation_window_size=3,
                                  cooldown_ms=0, max_token_budget=0, confidence_threshold=0)
        assert config.confidence_threshold == 0

    def test_config_error_is_a_value_error(self) -> None:
        with pytest.raises(ValueError):
            RefinementConfig(max_attempts=0)


class TestFromDict:
    def test_partial_mapping_keeps_defaults(self) -> None:
        config = RefinementConfig.from_dict({"max_attempts": 5, "fixer_order": ("selector", "timing")})
        assert config.max_attempts == 5
        assert config.fixer_order == ["selector", "timing"]
        assert config.cooldown_ms == 1000

    def test_unknown_keys_are_ignored(self, caplog) -> None:
        config = RefinementConfig.from_dict({"max_attempts": 2, "colour": "blue"})
        assert config.max_attempts == 2
        assert "colour" in caplog.text

    def test_none_gives_defaults(self) -> None:
        assert RefinementConfig.from_dict(None) == RefinementConfig()

    def test_non_mapping_is_rejected(self) -> None:
        with pytest.raises(RefinementConfigError):
            RefinementConfig.from_dict(["max_attempts"])

    def test_with_overrides_ignores_none(self) -> None:
        base = RefinementConfig(max_attempts=4)
        updated = base.with_overrides(max_attempts=None, cooldown_ms=0)
        assert updated.max_attempts == 4
        assert updated.cooldown_ms == 0
        assert base.cooldown_ms == 1000

    def test_with_overrides_validates(self) -> None:
        with pytest.raises(RefinementConfigError):
            RefinementConfig().with_overrides(max_attempts=0)

    def test_to_dict_round_trips(self) -> None:
        config = RefinementConfig(max_attempts=7, fixer_order=["selector"])
        assert RefinementConfig.from_dict(config.to_dict()) == config
