# src/journey_refiner/domain/models/refinement_config.py
"""
Configuration for a refinement session.
"""
import logging
from dataclasses import dataclass, field, fields, asdict
from typing import List, Dict, Any, Optional

from journey_refiner.domain.models.errors import RefinementConfigError

logger = logging.getLogger(__name__)

DEFAULT_FIXER_ORDER = ["timing", "selector", "navigation", "assertion", "data_isolation", "llm"]

TIMEOUT_CEILING_MS = 30000
DEFAULT_TIMEOUT_MS = 5000


@dataclass
class RefinementConfig:
    """
    Circuit breaker limits plus fix selection settings.

    Every field has a default and can be overridden on its own, from YAML
    (see from_dict) or from the command line.
    """
    max_attempts: int = 3
    same_error_threshold: int = 2
    oscillation_detection: bool = True
    oscillation_window_size: int = 4
    total_timeout_ms: int = 300000  # 5 minutes
    cooldown_ms: int = 1000
    max_token_budget: int = 50000
    confidence_threshold: float = 0.5
    fixer_order: List[str] = field(default_factory=lambda: list(DEFAULT_FIXER_ORDER))
    # Lesson extraction
    min_lesson_confidence: float = 0.7
    max_lessons_per_session: int = 10
    include_unverified_lessons: bool = False

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """
        Checks every field, raising RefinementConfigError on the first problem.
        """
        self._require_int("max_attempts", minimum=1)
        self._require_int("same_error_threshold", minimum=1)
        self._require_int("oscillation_window_size", minimum=3)
        self._require_int("total_timeout_ms", minimum=1)
        self._require_int("cooldown_ms", minimum=0)
        self._require_int("max_token_budget", minimum=0)
        self._require_int("max_lessons_per_session", minimum=0)

        if not isinstance(self.oscillation_detection, bool):
            raise RefinementConfigError(f"oscillation_detection must be a boolean, got {self.oscillation_detection!r}")
        if not isinstance(self.include_unverified_lessons, bool):
            raise RefinementConfigError(
                f"include_unverified_lessons must be a boolean, got {self.include_unverified_lessons!r}")

        for name in ("confidence_threshold", "min_lesson_confidence"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
                raise RefinementConfigError(f"{name} must be a number between 0 and 1, got {value!r}")

        if not isinstance(self.fixer_order, (list, tuple)) or not self.fixer_order:
            raise RefinementConfigError("fixer_order must be a non-empty list of fixer names")
        if any(not isinstance(name, str) or not name for name in self.fixer_order):
            raise RefinementConfigError(f"fixer_order entries must be non-empty strings: {self.fixer_order!r}")
        if len(set(self.fixer_order)) != len(self.fixer_order):
            raise RefinementConfigError(f"fixer_order contains duplicates: {self.fixer_order!r}")

    def _require_int(self, name: str, minimum: int) -> None:
        value = getattr(self, name)
        if isinstance(value, bool) or not isinstance(value, int):
            raise RefinementConfigError(f"{name} must be an integer, got {value!r}")
        if value < minimum:
            raise RefinementConfigError(f"{name} must be >= {minimum}, got {value}")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RefinementConfig":
        """
        Builds a config from the 'refinement' section of the application config.

        Unknown keys are ignored with a warning; missing keys keep their defaults.

        Args:
            data: Mapping of field name to value, or None.

        Returns:
            A validated RefinementConfig.
        """
        data = data or {}
        if not isinstance(data, dict):
            raise RefinementConfigError(f"refinement config must be a mapping, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown refinement config keys: {', '.join(unknown)}")
        values = {k: v for k, v in data.items() if k in known}
        if "fixer_order" in values and isinstance(values["fixer_order"], tuple):
            values["fixer_order"] = list(values["fixer_order"])
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> "RefinementConfig":
        """Returns a copy with the non-None overrides applied."""
        values = asdict(self)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return RefinementConfig.from_dict(values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
