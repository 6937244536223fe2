"""
Timing fixer: missing awaits, web-first assertions, bounded timeout escalation.
"""
import logging
from typing import Optional, Tuple

from journey_refiner.application.services.error_classifier import ErrorClassifier
from journey_refiner.application.services.fixers import code_patterns
from journey_refiner.application.services.fixers.base_fixer import BaseFixer
from journey_refiner.domain.models.error_analysis import ErrorAnalysis
from journey_refiner.domain.models.refinement import CodeFix, FixType
from journey_refiner.domain.models.refinement_config import DEFAULT_TIMEOUT_MS, TIMEOUT_CEILING_MS
from journey_refiner.domain.ports.fixer import FixContext

logger = logging.getLogger(__name__)

MISSING_AWAIT_CONFIDENCE = 0.9
WEB_FIRST_CONFIDENCE = 0.85
TIMEOUT_CONFIDENCE = 0.6


def escalate_timeout(current_ms: int) -> int:
    """Next timeout to try: 1.5x the current one, never above the ceiling."""
    return min(round(current_ms * 1.5), TIMEOUT_CEILING_MS)


class TimingFixer(BaseFixer):
    """
    Repairs timing problems in the following order, stopping at the first
    class of fix that changes something:

    1. Actions and web-first assertions called without 'await'.
    2. Capture-then-compare sequences that can become a polling assertion.
    3. Timeout escalation on the failing call.
    """

    fixer_name = "timing"

    def can_apply(self, analysis: ErrorAnalysis) -> bool:
        return ErrorClassifier.is_timing_related(analysis)

    def apply(self, code: str, analysis: ErrorAnalysis, context: Optional[FixContext] = None) -> CodeFix:
        fixed, changed = code_patterns.add_missing_awaits(code)
        if changed:
            return self._fix(
                FixType.MISSING_AWAIT,
                f"Added {len(changed)} missing await statement(s)",
                code, fixed, MISSING_AWAIT_CONFIDENCE, analysis, changed,
                reasoning="Un-awaited Playwright calls race with the next step.",
            )

        fixed, changed = code_patterns.convert_capture_then_compare(code)
        if changed:
            return self._fix(
                FixType.WEB_FIRST_ASSERTION,
                f"Converted {len(changed)} captured value check(s) to web-first assertions",
                code, fixed, WEB_FIRST_CONFIDENCE, analysis, changed,
                reasoning="Web-first assertions retry until the condition holds.",
            )

        return self._escalate_timeout(code, analysis)

    def _escalate_timeout(self, code: str, analysis: ErrorAnalysis) -> CodeFix:
        line_index = self._find_timeout_line(code, analysis)
        if line_index is None:
            return self._no_fix(code, "No timeout-capable call found for the failing step")

        lines = code_patterns.split_lines(code)
        line = lines[line_index]
        current, source = self.current_timeout(line, analysis.message)
        proposed = escalate_timeout(current)

        existing = code_patterns.TIMEOUT_OPTION_RE.search(line)
        if existing:
            existing_ms = int(existing.group(1))
            # 0 disables the timeout in Playwright
            if proposed <= existing_ms < TIMEOUT_CEILING_MS:
                return self._no_fix(code, f"Timeout of {existing_ms}ms cannot be raised")
            new_line = line[:existing.start(1)] + str(proposed) + line[existing.end(1):]
        else:
            span = code_patterns.find_call_span(line, code_patterns.TIMEOUT_ELIGIBLE_METHODS)
            if span is None:
                return self._no_fix(code, "Could not locate call arguments on the failing line")
            _, args_start, args_end = span
            new_args = code_patterns.with_option(line[args_start:args_end], "timeout", str(proposed))
            new_line = line[:args_start] + new_args + line[args_end:]

        lines[line_index] = new_line
        if proposed > current:
            description = f"Increased timeout from {current}ms to {proposed}ms"
        else:
            description = f"Timeout capped at {proposed}ms (was {current}ms)"
        return self._fix(
            FixType.TIMEOUT_INCREASED,
            description,
            code, code_patterns.join_lines(lines), TIMEOUT_CONFIDENCE, analysis, [line_index + 1],
            reasoning=f"Current timeout taken from {source}.",
        )

    @staticmethod
    def current_timeout(line: str, message: str) -> Tuple[int, str]:
        """
        Current timeout for the failing step: the call's own option, else the
        first '<n>ms' in the error message, else the default.
        """
        option = code_patterns.TIMEOUT_OPTION_RE.search(line)
        if option:
            return int(option.group(1)), "the call options"
        from_message = code_patterns.MESSAGE_TIMEOUT_RE.search(message or "")
        if from_message:
            return int(from_message.group(1)), "the error message"
        return DEFAULT_TIMEOUT_MS, "the default"

    @staticmethod
    def _find_timeout_line(code: str, analysis: ErrorAnalysis) -> Optional[int]:
        lines = code_patterns.split_lines(code)
        candidates = []
        target = code_patterns.target_line_index(code, analysis)
        if target is not None:
            candidates.append(target)
        candidates.extend(code_patterns.lines_mentioning(code, analysis.selector))
        for index in candidates:
            if code_patterns.find_call_span(lines[index], code_patterns.TIMEOUT_ELIGIBLE_METHODS):
                return index
        return None
