"""
LLM-backed fixer, consulted after the rule-based fixers.
"""
import logging
from typing import Any, Dict, Optional

from journey_refiner.application.prompts.refinement_prompt import build_refinement_prompt
from journey_refiner.application.services.fixers.base_fixer import BaseFixer
from journey_refiner.application.utils.response_parser import parse_fix_response
from journey_refiner.domain.models.error_analysis import ErrorAnalysis
from journey_refiner.domain.models.refinement import CodeFix, FixType
from journey_refiner.domain.ports.fixer import FixContext
from journey_refiner.domain.ports.llm_service import LLMServicePort

logger = logging.getLogger(__name__)


class LLMFixer(BaseFixer):
    """
    Asks a language model for snippet replacements and applies the most
    confident one whose original snippet occurs verbatim in the code.

    Fix types are taken from the model's answer as-is, so a forbidden kind
    reaches the orchestrator's policy check instead of being relabelled.
    """

    fixer_name = "llm"

    def __init__(self, llm_service: LLMServicePort, config: Optional[Dict[str, Any]] = None):
        self.llm_service = llm_service
        self.config = config or {}
        self.max_confidence = float(self.config.get('llm', {}).get('max_confidence', 0.8))

    def can_apply(self, analysis: ErrorAnalysis) -> bool:
        return True

    def apply(self, code: str, analysis: ErrorAnalysis, context: Optional[FixContext] = None) -> CodeFix:
        if context is not None:
            test_file, previous = context.test_file, context.previous_fixes
        else:
            test_file = (analysis.location.file if analysis.location else None) or ""
            previous = []
        prompt = build_refinement_prompt(code, analysis, test_file, previous)

        try:
            response = self.llm_service.generate_fix(prompt)
        except Exception as e:
            logger.error(f"LLM fix request failed: {e}", exc_info=True)
            return self._no_fix(code, f"LLM request failed: {e}")

        payload = parse_fix_response(response.text)
        candidates = sorted(payload["fixes"], key=lambda f: self._confidence(f), reverse=True)
        for candidate in candidates:
            original = candidate.get("originalCode")
            fixed = candidate.get("fixedCode")
            if not isinstance(original, str) or not original or not isinstance(fixed, str):
                continue
            if original not in code:
                logger.debug(f"Skipping LLM fix; original snippet not found: {original[:80]!r}")
                continue
            fix = self._fix(
                self._fix_type(candidate.get("type")),
                str(candidate.get("description") or "LLM proposed fix"),
                code,
                code.replace(original, fixed, 1),
                self._confidence(candidate),
                analysis,
                self._line(candidate, code, original),
                reasoning=str(candidate.get("reasoning") or payload["reasoning"] or "") or None,
            )
            fix.tokens_used = response.total_tokens
            return fix

        fix = self._no_fix(code, "LLM returned no applicable fix")
        fix.tokens_used = response.total_tokens
        return fix

    def _confidence(self, candidate: Dict[str, Any]) -> float:
        try:
            value = float(candidate.get("confidence", 0.5))
        except (TypeError, ValueError):
            value = 0.5
        return max(0.0, min(value, self.max_confidence))

    @staticmethod
    def _fix_type(raw_type: Any) -> FixType:
        try:
            return FixType(str(raw_type).upper())
        except ValueError:
            return FixType.OTHER

    @staticmethod
    def _line(candidate: Dict[str, Any], code: str, original: str) -> list:
        location = candidate.get("location")
        if isinstance(location, dict) and isinstance(location.get("line"), int):
            return [location["line"]]
        return [code.count("\n", 0, code.find(original)) + 1]
