"""
Circuit breaker enforcing the hard stopping rules of a refinement session.
"""
import logging
import time
from dataclasses import replace
from typing import Callable, List, Optional, Sequence, Union

from journey_refiner.domain.models.error_analysis import ErrorAnalysis
from journey_refiner.domain.models.refinement import (
    CircuitBreakerState, ConvergenceInfo, ConvergenceTrend, OpenReason
)
from journey_refiner.domain.models.refinement_config import RefinementConfig

logger = logging.getLogger(__name__)

AnalysisInput = Union[ErrorAnalysis, Sequence[ErrorAnalysis], None]


def error_state_key(errors: Sequence[ErrorAnalysis]) -> str:
    """
    History entry for one attempt: the fingerprint itself for a single error,
    the sorted distinct fingerprints joined by '|' for several.
    """
    return "|".join(sorted({e.fingerprint for e in errors}))


class CircuitBreaker:
    """
    Pure state transitions over CircuitBreakerState.

    Rules are checked in a fixed priority order and the first one that holds
    sets the open reason. Once open, every later state is open with the
    same reason.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock

    def initial_state(self, now: Optional[float] = None) -> CircuitBreakerState:
        return CircuitBreakerState(start_time=self.clock() if now is None else now)

    def should_open(self,
                    state: CircuitBreakerState,
                    new_analysis: AnalysisInput,
                    config: RefinementConfig,
                    convergence: Optional[ConvergenceInfo] = None,
                    tokens_used: int = 0,
                    now: Optional[float] = None) -> CircuitBreakerState:
        """
        Records the outcome of an attempt and evaluates the opening rules.

        Args:
            state: Current breaker state; never modified.
            new_analysis: Errors observed after the attempt (one analysis or a
                          list). None re-evaluates the rules without recording
                          an attempt, e.g. for the wall-clock check before
                          starting the next attempt.
            config: Session configuration.
            convergence: Latest convergence info, used by the oscillation rule.
            tokens_used: Tokens spent by the attempt being recorded.
            now: Clock reading; defaults to the breaker's clock.

        Returns:
            The next breaker state.
        """
        if state.is_open:
            return state

        now = self.clock() if now is None else now
        recording = new_analysis is not None
        # Attempts already spent before the one being recorded
        attempts_spent = state.attempt_count
        updated = state

        if recording:
            errors = self._as_list(new_analysis)
            history = state.error_history
            if errors:
                history = history + (error_state_key(errors),)
            updated = replace(
                state,
                attempt_count=state.attempt_count + 1,
                error_history=history,
                tokens_used=state.tokens_used + max(0, tokens_used),
            )

        reason = self._first_open_reason(updated, attempts_spent, config, convergence, now)
        if reason is None:
            return updated

        logger.warning(
            f"Circuit breaker opened: {reason.value} "
            f"(attempts={updated.attempt_count}, tokens={updated.tokens_used})"
        )
        return replace(updated, is_open=True, open_reason=reason)

    def _first_open_reason(self,
                           state: CircuitBreakerState,
                           attempts_spent: int,
                           config: RefinementConfig,
                           convergence: Optional[ConvergenceInfo],
                           now: float) -> Optional[OpenReason]:
        if attempts_spent >= config.max_attempts:
            return OpenReason.MAX_ATTEMPTS

        threshold = config.same_error_threshold
        recent = state.error_history[-threshold:]
        if len(recent) == threshold and len(set(recent)) == 1:
            return OpenReason.SAME_ERROR

        if config.oscillation_detection and convergence is not None \
                and convergence.trend == ConvergenceTrend.OSCILLATING:
            return OpenReason.OSCILLATION

        elapsed_ms = (now - state.start_time) * 1000
        if elapsed_ms > config.total_timeout_ms:
            return OpenReason.TIMEOUT

        if state.tokens_used > config.max_token_budget:
            return OpenReason.BUDGET_EXCEEDED

        return None

    @staticmethod
    def remaining_attempts(state: CircuitBreakerState, config: RefinementConfig) -> int:
        if state.is_open:
            return 0
        return max(0, config.max_attempts - state.attempt_count)

    @staticmethod
    def remaining_budget(state: CircuitBreakerState, config: RefinementConfig) -> int:
        return max(0, config.max_token_budget - state.tokens_used)

    @staticmethod
    def _as_list(new_analysis: AnalysisInput) -> List[ErrorAnalysis]:
        if isinstance(new_analysis, ErrorAnalysis):
            return [new_analysis]
        return list(new_analysis or [])
