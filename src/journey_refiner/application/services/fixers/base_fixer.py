"""
Common plumbing for the built-in fixers.
"""
import logging
from typing import List, Optional

from journey_refiner.domain.models.error_analysis import ErrorAnalysis, ErrorLocation
from journey_refiner.domain.models.refinement import CodeFix, FixType
from journey_refiner.domain.ports.fixer import FixerPort

logger = logging.getLogger(__name__)


class BaseFixer(FixerPort):
    """Holds the fixer name and builds CodeFix records."""

    fixer_name = "base"

    @property
    def name(self) -> str:
        return self.fixer_name

    def _fix(self,
             fix_type: FixType,
             description: str,
             original_code: str,
             fixed_code: str,
             confidence: float,
             analysis: ErrorAnalysis,
             changed_lines: Optional[List[int]] = None,
             reasoning: Optional[str] = None) -> CodeFix:
        location = analysis.location
        if changed_lines:
            file = analysis.location.file if analysis.location else None
            location = ErrorLocation(file=file, line=changed_lines[0])
        logger.debug(f"{self.name} fixer proposes {fix_type.value} ({confidence:.2f}): {description}")
        return CodeFix(
            type=fix_type,
            description=description,
            original_code=original_code,
            fixed_code=fixed_code,
            confidence=confidence,
            applied=True,
            location=location,
            reasoning=reasoning,
            fixer=self.name,
        )

    def _no_fix(self, code: str, reason: str) -> CodeFix:
        logger.debug(f"{self.name} fixer found nothing to change: {reason}")
        return CodeFix.not_applied(code, reason, fixer=self.name)
