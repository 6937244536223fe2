"""Tests for the LLM-backed fixer and its response parsing."""

from __future__ import annotations

import pytest

from conftest import SAMPLE_TEST, build_analysis
from journey_refiner.application.services.fix_registry import find_forbidden_type
from journey_refiner.application.services.fixers.llm_fixer import LLMFixer
from journey_refiner.application.utils.response_parser import extract_json_block, parse_fix_response
from journey_refiner.domain.models.refinement import CodeFix, FixType
from journey_refiner.domain.ports.fixer import FixContext
from journey_refiner.domain.ports.llm_service import LLMResponse, LLMServicePort
from journey_refiner.infrastructure.adapters.llm.mock_llm_adapter import MockLLMAdapter

CHECKOUT_CLICK = "await page.getByRole('button', { name: 'Checkout' }).click();"


def proposal(original: str = CHECKOUT_CLICK,
             fixed: str = "await page.getByRole('button', { name: 'Proceed to checkout' }).click();",
             confidence: float = 0.7,
             fix_type: str = "SELECTOR_CHANGE") -> dict:
    return {"type": fix_type, "description": "Use the real button name", "originalCode": original,
            "fixedCode": fixed, "confidence": confidence}


class FailingLLM(LLMServicePort):
    def generate_fix(self, prompt: str) -> LLMResponse:
        raise ConnectionError("service unavailable")


class TestLLMFixer:
    def test_applies_most_confident_matching_proposal(self) -> None:
        llm = MockLLMAdapter(responses=[{"reasoning": "wrong name", "fixes": [
            proposal(confidence=0.4, fixed="await page.getByText('Checkout').click();"),
            proposal(confidence=0.75),
        ]}])
        fix = LLMFixer(llm).apply(SAMPLE_TEST, build_analysis())
        assert fix.applied is True
        assert fix.type == FixType.SELECTOR_CHANGE
        assert fix.confidence == 0.75
        assert "Proceed to checkout" in fix.fixed_code
        assert fix.location.line == 5
        assert fix.fixer == "llm"
        assert fix.tokens_used > 0

    def test_confidence_is_capped(self) -> None:
        llm = MockLLMAdapter(responses=[{"fixes": [proposal(confidence=0.99)]}])
        fix = LLMFixer(llm, {"llm": {"max_confidence": 0.8}}).apply(SAMPLE_TEST, build_analysis())
        assert fix.confidence == 0.8

    def test_snippet_not_in_code_is_ignored(self) -> None:
        llm = MockLLMAdapter(responses=[{"fixes": [proposal(original="await page.click('#nope');")]}])
        fix = LLMFixer(llm).apply(SAMPLE_TEST, build_analysis())
        assert fix.applied is False
        assert fix.tokens_used > 0

    def test_forbidden_type_is_passed_through(self) -> None:
        llm = MockLLMAdapter(responses=[{"fixes": [proposal(
            fix_type="add_sleep",
            fixed="await page.waitForTimeout(2000);\n  " + CHECKOUT_CLICK,
        )]}])
        fix = LLMFixer(llm).apply(SAMPLE_TEST, build_analysis())
        assert fix.type == FixType.ADD_SLEEP
        assert find_forbidden_type(fix) == FixType.ADD_SLEEP

    def test_unknown_type_becomes_other(self) -> None:
        llm = MockLLMAdapter(responses=[{"fixes": [proposal(fix_type="MAGIC")]}])
        assert LLMFixer(llm).apply(SAMPLE_TEST, build_analysis()).type == FixType.OTHER

    def test_service_failure_is_not_applied(self) -> None:
        fix = LLMFixer(FailingLLM()).apply(SAMPLE_TEST, build_analysis())
        assert fix.applied is False
        assert "service unavailable" in fix.description

    def test_unparseable_answer(self) -> None:
        fix = LLMFixer(MockLLMAdapter(responses=["I cannot help with that."])).apply(SAMPLE_TEST, build_analysis())
        assert fix.applied is False

    def test_prompt_carries_error_and_history(self) -> None:
        llm = MockLLMAdapter()
        previous = CodeFix(type=FixType.TIMEOUT_INCREASED, description="Increased timeout from 5000ms to 7500ms",
                           original_code="a", fixed_code="b", applied=True)
        context = FixContext(test_file="tests/checkout.spec.ts", journey_id="checkout", attempt_number=2,
                             previous_fixes=[previous])
        LLMFixer(llm).apply(SAMPLE_TEST, build_analysis(line=6), context)
        prompt = llm.prompts[0]
        assert "ASSERTION_FAILED" in prompt
        assert "tests/checkout.spec.ts:6" in prompt
        assert "- TIMEOUT_INCREASED: Increased timeout from 5000ms to 7500ms" in prompt
        assert SAMPLE_TEST in prompt

    def test_applies_to_every_category(self) -> None:
        assert LLMFixer(MockLLMAdapter()).can_apply(build_analysis("something odd")) is True


class TestResponseParser:
    def test_fenced_json(self) -> None:
        text = 'Here you go:\n```json\n{"reasoning": "r", "fixes": []}\n```\nThanks'
        assert extract_json_block(text) == '{"reasoning": "r", "fixes": []}'

    def test_bare_json(self) -> None:
        assert parse_fix_response('prefix {"fixes": [{"type": "OTHER"}, 3]} suffix') == {
            "reasoning": "", "fixes": [{"type": "OTHER"}],
        }

    @pytest.mark.parametrize("text", ["", "no json", "{ broken", "[1, 2]", None])
    def test_unusable_answers(self, text) -> None:
        assert parse_fix_response(text) == {"reasoning": "", "fixes": []}
