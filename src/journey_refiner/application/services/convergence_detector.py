"""
Convergence tracking over the per-run error history of a session.
"""
import logging
from typing import List, Optional, Sequence, FrozenSet

from journey_refiner.domain.models.error_analysis import ErrorAnalysis
from journey_refiner.domain.models.refinement import ConvergenceInfo, ConvergenceTrend

logger = logging.getLogger(__name__)

TREND_WINDOW = 3


def fingerprint_set(errors: Sequence[ErrorAnalysis]) -> FrozenSet[str]:
    return frozenset(e.fingerprint for e in errors)


def new_fingerprints(previous: Sequence[ErrorAnalysis], current: Sequence[ErrorAnalysis]) -> FrozenSet[str]:
    """Fingerprints present now that were not present before."""
    return fingerprint_set(current) - fingerprint_set(previous)


def fixed_fingerprints(previous: Sequence[ErrorAnalysis], current: Sequence[ErrorAnalysis]) -> FrozenSet[str]:
    """Fingerprints that were present before and are gone now."""
    return fingerprint_set(previous) - fingerprint_set(current)


class ConvergenceDetector:
    """
    Computes ConvergenceInfo from the full error history.

    The info is always recomputed from scratch, never patched incrementally,
    so replaying a history yields the same answer.
    """

    def __init__(self, window_size: int = 4):
        self.window_size = window_size

    def update(self, history: List[List[ErrorAnalysis]], window_size: Optional[int] = None) -> ConvergenceInfo:
        """
        Recomputes convergence information.

        Args:
            history: One list of active errors per test run, oldest first.
            window_size: Oscillation window; defaults to the detector's.

        Returns:
            A fresh ConvergenceInfo.
        """
        window = window_size or self.window_size
        sets = [fingerprint_set(run) for run in history]
        if not sets:
            return ConvergenceInfo()

        counts = [len(s) for s in sets]

        # Replayed over every prefix of length >= 2
        stagnation_count = 0
        for end in range(2, len(sets) + 1):
            prefix_trend = self._trend(sets[:end], window)
            if prefix_trend == ConvergenceTrend.IMPROVING:
                stagnation_count = 0
            elif prefix_trend in (ConvergenceTrend.STAGNATING, ConvergenceTrend.DEGRADING):
                stagnation_count += 1

        last_improvement = None
        for index in range(1, len(counts)):
            if counts[index] < counts[index - 1]:
                last_improvement = index

        improvement_percentage = 0.0
        if counts[0] > 0:
            improvement_percentage = round((counts[0] - counts[-1]) / counts[0] * 100, 1)

        info = ConvergenceInfo(
            converged=counts[-1] == 0,
            error_count_history=tuple(counts),
            unique_errors_history=tuple(sets),
            stagnation_count=stagnation_count,
            trend=self._trend(sets, window),
            last_improvement=last_improvement,
            improvement_percentage=improvement_percentage,
        )
        logger.debug(f"Convergence: trend={info.trend.value}, counts={list(counts)}, stagnation={stagnation_count}")
        return info

    def _trend(self, sets: List[FrozenSet[str]], window: int) -> ConvergenceTrend:
        if len(sets) < 2:
            return ConvergenceTrend.STAGNATING
        if self.is_oscillating(sets, window):
            return ConvergenceTrend.OSCILLATING

        recent = [len(s) for s in sets[-TREND_WINDOW:]]
        pairs = list(zip(recent, recent[1:]))
        if all(later < earlier for earlier, later in pairs):
            return ConvergenceTrend.IMPROVING
        if all(later > earlier for earlier, later in pairs):
            return ConvergenceTrend.DEGRADING
        return ConvergenceTrend.STAGNATING

    @staticmethod
    def is_oscillating(sets: List[FrozenSet[str]], window: int) -> bool:
        """
        True when the latest non-empty error set already appeared earlier in
        the window with a different set somewhere in between (A -> B -> A).
        """
        recent = sets[-window:]
        latest = recent[-1]
        if not latest:
            return False
        for earlier in range(len(recent) - 2):
            if recent[earlier] != latest:
                continue
            between = recent[earlier + 1:-1]
            if any(s != latest for s in between):
                return True
        return False
