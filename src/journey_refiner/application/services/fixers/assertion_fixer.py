"""
Assertion fixer: turns one-shot value checks into retrying web-first assertions.
"""
import logging
from typing import Optional

from journey_refiner.application.services.fixers import code_patterns
from journey_refiner.application.services.fixers.base_fixer import BaseFixer
from journey_refiner.domain.models.error_analysis import ErrorAnalysis, ErrorCategory
from journey_refiner.domain.models.refinement import CodeFix, FixType
from journey_refiner.domain.ports.fixer import FixContext

logger = logging.getLogger(__name__)

MISSING_AWAIT_CONFIDENCE = 0.9
WEB_FIRST_CONFIDENCE = 0.85


class AssertionFixer(BaseFixer):
    """
    Handles ASSERTION_FAILED. Never removes an assertion or relaxes what it
    checks; it only changes how the check waits for the page.
    """

    fixer_name = "assertion"

    def can_apply(self, analysis: ErrorAnalysis) -> bool:
        return analysis.category == ErrorCategory.ASSERTION_FAILED

    def apply(self, code: str, analysis: ErrorAnalysis, context: Optional[FixContext] = None) -> CodeFix:
        fixed, changed = code_patterns.add_missing_awaits(code, include_actions=False)
        if changed:
            return self._fix(
                FixType.MISSING_AWAIT,
                f"Awaited {len(changed)} web-first assertion(s)",
                code, fixed, MISSING_AWAIT_CONFIDENCE, analysis, changed,
            )

        fixed, inline_changed = code_patterns.convert_inline_awaited_compare(code)
        fixed, captured_changed = code_patterns.convert_capture_then_compare(fixed)
        changed = sorted(inline_changed + captured_changed)
        if changed:
            return self._fix(
                FixType.WEB_FIRST_ASSERTION,
                f"Converted {len(changed)} one-shot check(s) to web-first assertions",
                code, fixed, WEB_FIRST_CONFIDENCE, analysis, changed,
                reasoning="A value read once can be stale; web-first assertions poll until they match.",
            )

        return self._no_fix(code, "No one-shot assertion to convert")
