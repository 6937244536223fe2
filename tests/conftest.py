"""Shared fixtures and fakes for the journey refiner test suite."""

from __future__ import annotations

from typing import Callable, List, Optional, Union

import pytest

from journey_refiner.application.orchestrators.refinement_orchestrator import RefinementOrchestrator
from journey_refiner.application.services.error_classifier import ErrorClassifier
from journey_refiner.application.services.fix_registry import FixerRegistry
from journey_refiner.domain.models.error_analysis import (
    ErrorAnalysis,
    ErrorCategory,
    ErrorLocation,
    RawFailure,
)
from journey_refiner.domain.models.refinement import CodeFix, FixType, LessonLearned
from journey_refiner.domain.models.refinement_config import RefinementConfig
from journey_refiner.domain.ports.fixer import FixContext, FixerPort
from journey_refiner.domain.ports.learning_store import LearningStorePort
from journey_refiner.domain.ports.test_runner import TestRunnerPort, TestRunReport

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Monotonic clock in seconds that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedTestRunner(TestRunnerPort):
    """Returns scripted reports in order; the last one repeats when exhausted."""

    def __init__(self, script: List[Union[TestRunReport, Exception]],
                 clock: Optional[FakeClock] = None, run_seconds: float = 0.0) -> None:
        self.script = list(script)
        self.calls: List[str] = []
        self.call_times: List[float] = []
        self.clock = clock
        self.run_seconds = run_seconds

    def run(self, code: str, test_file: str) -> TestRunReport:
        self.calls.append(code)
        if self.clock is not None:
            self.call_times.append(self.clock())
            self.clock.advance(self.run_seconds)
        index = min(len(self.calls) - 1, len(self.script) - 1)
        item = self.script[index]
        if isinstance(item, Exception):
            raise item
        return item


class StubFixer(FixerPort):
    """Fixer whose proposal is a fixed transformation of the code."""

    def __init__(self,
                 name: str,
                 transform: Callable[[str], str] = lambda code: code + "\n// fixed",
                 fix_type: FixType = FixType.OTHER,
                 confidence: float = 0.9,
                 applies_to: Optional[List[ErrorCategory]] = None,
                 applied: bool = True,
                 tokens: int = 0) -> None:
        self._name = name
        self.transform = transform
        self.fix_type = fix_type
        self.confidence = confidence
        self.applies_to = applies_to
        self.applied = applied
        self.tokens = tokens
        self.calls: List[ErrorAnalysis] = []
        self.contexts: List[Optional[FixContext]] = []

    @property
    def name(self) -> str:
        return self._name

    def can_apply(self, analysis: ErrorAnalysis) -> bool:
        return self.applies_to is None or analysis.category in self.applies_to

    def apply(self, code: str, analysis: ErrorAnalysis, context: Optional[FixContext] = None) -> CodeFix:
        self.calls.append(analysis)
        self.contexts.append(context)
        return CodeFix(
            type=self.fix_type,
            description=f"{self._name} fix",
            original_code=code,
            fixed_code=self.transform(code),
            confidence=self.confidence,
            applied=self.applied,
            tokens_used=self.tokens,
        )


class RaisingFixer(StubFixer):
    def apply(self, code: str, analysis: ErrorAnalysis, context: Optional[FixContext] = None) -> CodeFix:
        raise RuntimeError("fixer exploded")


class InMemoryLessonStore(LearningStorePort):
    def __init__(self, fail: bool = False) -> None:
        self.lessons: List[LessonLearned] = []
        self.fail = fail

    def save_lessons(self, lessons: List[LessonLearned]) -> int:
        if self.fail:
            raise OSError("disk full")
        self.lessons.extend(lessons)
        return len(lessons)

    def get_lessons(self, category: Optional[ErrorCategory] = None) -> List[LessonLearned]:
        return [lesson for lesson in self.lessons if category is None or lesson.category == category]


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

SAMPLE_TEST = """import { test, expect } from '@playwright/test';

test('checkout journey', async ({ page }) => {
  await page.goto('https://shop.example.com/cart');
  await page.getByRole('button', { name: 'Checkout' }).click();
  await expect(page.getByText('Order placed')).toBeVisible();
});"""


def failing(*messages: str) -> TestRunReport:
    return TestRunReport(passed=False, failures=[RawFailure(message=m) for m in messages])


def passing() -> TestRunReport:
    return TestRunReport(passed=True)


def build_analysis(message: str = "Error: expect(locator).toBeVisible() failed",
                   line: Optional[int] = None,
                   file: str = "tests/checkout.spec.ts",
                   **kwargs) -> ErrorAnalysis:
    location = ErrorLocation(file=file, line=line) if line is not None else None
    return ErrorClassifier().classify(RawFailure(message=message, location=location, **kwargs))


def build_config(fixer_order: List[str], **overrides) -> RefinementConfig:
    values = {"cooldown_ms": 0, "fixer_order": fixer_order}
    values.update(overrides)
    return RefinementConfig(**values)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def classifier() -> ErrorClassifier:
    return ErrorClassifier()


@pytest.fixture
def lesson_store() -> InMemoryLessonStore:
    return InMemoryLessonStore()


@pytest.fixture
def make_orchestrator(clock: FakeClock, lesson_store: InMemoryLessonStore):
    def _make(runner: TestRunnerPort, fixers: List[FixerPort]) -> RefinementOrchestrator:
        return RefinementOrchestrator(
            test_runner=runner,
            registry=FixerRegistry(fixers),
            learning_store=lesson_store,
            sleep=clock.sleep,
            clock=clock,
        )
    return _make
