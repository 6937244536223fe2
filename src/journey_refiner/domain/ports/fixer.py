from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from journey_refiner.domain.models.error_analysis import ErrorAnalysis
from journey_refiner.domain.models.refinement import CodeFix


@dataclass
class FixContext:
    """Read-only information a fixer may use besides the code and the error."""
    test_file: str
    journey_id: str
    attempt_number: int
    all_errors: List[ErrorAnalysis] = field(default_factory=list)
    previous_fixes: List[CodeFix] = field(default_factory=list)
    extras: Dict[str, Any] = field(default_factory=dict)


class FixerPort(ABC):
    """
    Interface for a pluggable fix strategy.

    Both methods must be free of side effects so fixers can be exercised on
    their own, outside of a refinement loop.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry key, e.g. 'timing'."""
        pass

    @abstractmethod
    def can_apply(self, analysis: ErrorAnalysis) -> bool:
        """
        Tells whether this fixer handles the given kind of error.

        Args:
            analysis: The classified error.

        Returns:
            True when apply() is worth calling.
        """
        pass

    @abstractmethod
    def apply(self, code: str, analysis: ErrorAnalysis, context: Optional[FixContext] = None) -> CodeFix:
        """
        Proposes a transformation of the code.

        Args:
            code: Current candidate test source.
            analysis: The error to respond to.
            context: Optional extra information about the session.

        Returns:
            A CodeFix. applied is False when the fixer found nothing to change.
        """
        pass
