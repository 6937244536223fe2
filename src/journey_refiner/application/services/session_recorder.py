"""
Turns a finished session into a RefinementResult, diagnostics and lessons.
"""
import difflib
import hashlib
import logging
from typing import List, Optional, Tuple

from journey_refiner.application.services.error_classifier import normalize_message
from journey_refiner.domain.models.error_analysis import ErrorAnalysis
from journey_refiner.domain.models.refinement import (
    ConvergenceTrend, FixOutcome, FixType, LessonLearned, LessonType, OpenReason,
    RefinementDiagnostics, RefinementResult, RefinementSession, RefinementStatus
)
from journey_refiner.domain.models.refinement_config import RefinementConfig
from journey_refiner.domain.ports.learning_store import LearningStorePort

logger = logging.getLogger(__name__)

LESSON_TYPE_BY_FIX = {
    FixType.SELECTOR_CHANGE: LessonType.SELECTOR_PATTERN,
    FixType.LOCATOR_STRATEGY_CHANGED: LessonType.SELECTOR_PATTERN,
    FixType.MISSING_AWAIT: LessonType.WAIT_STRATEGY,
    FixType.WEB_FIRST_ASSERTION: LessonType.WAIT_STRATEGY,
    FixType.TIMEOUT_INCREASED: LessonType.WAIT_STRATEGY,
    FixType.NAVIGATION_WAIT: LessonType.WAIT_STRATEGY,
    FixType.DATA_ISOLATION: LessonType.FLOW_PATTERN,
    FixType.ASSERTION_MODIFIED: LessonType.ERROR_FIX,
    FixType.OTHER: LessonType.ERROR_FIX,
}


def changed_snippets(original: str, fixed: str) -> Tuple[str, str]:
    """Lines removed from and added to the code, as two snippets."""
    removed, added = [], []
    matcher = difflib.SequenceMatcher(a=original.splitlines(), b=fixed.splitlines(), autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag in ("replace", "delete"):
            removed.extend(matcher.a[i1:i2])
        if tag in ("replace", "insert"):
            added.extend(matcher.b[j1:j2])
    return "\n".join(line.strip() for line in removed), "\n".join(line.strip() for line in added)


class SessionRecorder:
    """Builds the caller-facing result of a session."""

    def build_result(self, session: RefinementSession, config: RefinementConfig) -> RefinementResult:
        """
        Builds the result for a finalized session.

        Args:
            session: The session, with final_status set.
            config: The configuration the session ran with.

        Returns:
            RefinementResult with diagnostics and, on success, lessons.
        """
        status = session.final_status
        if status is None:
            raise ValueError(f"Session {session.session_id} has no final status yet.")

        applied = session.applied_fixes
        diagnostics = self.build_diagnostics(session, config)
        lessons = self.extract_lessons(session, config) if status == RefinementStatus.SUCCESS else []

        logger.info(f"Session {session.session_id} finished: {status.value}. {diagnostics.summary}")
        return RefinementResult(
            success=status == RefinementStatus.SUCCESS,
            status=status,
            session=session,
            final_code=session.current_code if applied else None,
            remaining_errors=list(session.current_errors) if status != RefinementStatus.SUCCESS else [],
            applied_fixes=applied,
            diagnostics=diagnostics,
            lessons=lessons,
        )

    def build_diagnostics(self, session: RefinementSession, config: RefinementConfig) -> RefinementDiagnostics:
        status = session.final_status
        failed = status != RefinementStatus.SUCCESS
        open_reason = session.breaker_state.open_reason if failed else None
        convergence = session.convergence
        last_error = self._last_error(session)

        diagnostics = RefinementDiagnostics(
            attempts=len(session.attempts),
            last_error=last_error,
            convergence_failure=failed and convergence.trend != ConvergenceTrend.IMPROVING,
            same_error_repeated=open_reason == OpenReason.SAME_ERROR,
            oscillation_detected=failed and (open_reason == OpenReason.OSCILLATION
                                             or convergence.trend == ConvergenceTrend.OSCILLATING),
            budget_exhausted=open_reason == OpenReason.BUDGET_EXCEEDED,
            timed_out=open_reason == OpenReason.TIMEOUT,
            cannot_fix=status == RefinementStatus.CANNOT_FIX,
            aborted=status == RefinementStatus.ABORTED,
        )
        diagnostics.summary = self._summary(session, config, last_error)
        return diagnostics

    def _summary(self, session: RefinementSession, config: RefinementConfig,
                 last_error: Optional[ErrorAnalysis]) -> str:
        status = session.final_status
        attempts = len(session.attempts)
        remaining = len(session.current_errors)
        error_text = f"{last_error.category.value}: {last_error.message}" if last_error else "no error details"

        if status == RefinementStatus.SUCCESS:
            if attempts == 0:
                return "Test passed without any fix."
            return f"Test passed after {attempts} attempt(s) with {len(session.applied_fixes)} fix(es) applied."
        if status == RefinementStatus.MAX_ATTEMPTS_REACHED:
            return f"Reached the limit of {config.max_attempts} attempt(s); {remaining} error(s) remain. Last error {error_text}"
        if status == RefinementStatus.SAME_ERROR_LOOP:
            return (f"The same error repeated {config.same_error_threshold} time(s) in a row after fixing; "
                    f"{error_text}")
        if status == RefinementStatus.OSCILLATION_DETECTED:
            return (f"Errors oscillated between the same states within the last "
                    f"{config.oscillation_window_size} runs; fixes are undoing each other. Last error {error_text}")
        if status == RefinementStatus.TIMEOUT:
            return f"Exceeded the total time limit of {config.total_timeout_ms / 1000:.0f}s after {attempts} attempt(s)."
        if status == RefinementStatus.BUDGET_EXCEEDED:
            return (f"Used {session.breaker_state.tokens_used} tokens, above the budget of "
                    f"{config.max_token_budget}.")
        if status == RefinementStatus.CANNOT_FIX:
            rejected = sum(len(a.rejected_fixes) for a in session.attempts)
            return f"No acceptable fix for {error_text} ({rejected} proposal(s) rejected)."
        if status == RefinementStatus.ABORTED:
            return f"Cancelled after {attempts} attempt(s)."
        return status.value

    @staticmethod
    def _last_error(session: RefinementSession) -> Optional[ErrorAnalysis]:
        if session.current_errors:
            return session.current_errors[0]
        for attempt in reversed(session.attempts):
            if attempt.error is not None:
                return attempt.error
        return None

    def extract_lessons(self, session: RefinementSession, config: RefinementConfig) -> List[LessonLearned]:
        """
        Lessons from the fixes of a successful session.

        A fix counts as verified when the run after it passed or resolved at
        least one error. Unverified fixes are included only when configured.
        """
        lessons = []
        for attempt in session.attempts:
            if len(lessons) >= config.max_lessons_per_session:
                break
            fix = attempt.applied_fix
            if fix is None or attempt.error is None:
                continue
            if fix.confidence < config.min_lesson_confidence:
                continue
            verified = attempt.outcome in (FixOutcome.SUCCESS, FixOutcome.PARTIAL)
            if not verified and not config.include_unverified_lessons:
                continue

            original_snippet, fixed_snippet = changed_snippets(fix.original_code, fix.fixed_code)
            error_pattern = normalize_message(attempt.error.message)
            key = "|".join([attempt.error.category.value, fix.type.value, original_snippet, fixed_snippet])
            lessons.append(LessonLearned(
                lesson_id=hashlib.sha256(key.encode("utf-8")).hexdigest()[:12],
                type=LESSON_TYPE_BY_FIX.get(fix.type, LessonType.ERROR_FIX),
                category=attempt.error.category,
                fix_type=fix.type,
                error_pattern=error_pattern,
                original_snippet=original_snippet,
                fixed_snippet=fixed_snippet,
                confidence=fix.confidence,
                journey_id=session.journey_id,
                test_file=session.test_file,
                verified=verified,
            ))

        logger.debug(f"Extracted {len(lessons)} lesson(s) from session {session.session_id}")
        return lessons

    @staticmethod
    def export_lessons(store: Optional[LearningStorePort], lessons: List[LessonLearned]) -> int:
        """
        Sends lessons to the learning store. Store failures are logged and
        reported as zero lessons exported.
        """
        if store is None or not lessons:
            return 0
        try:
            saved = store.save_lessons(lessons)
            logger.info(f"Exported {saved} lesson(s) to the learning store")
            return saved
        except Exception as e:
            logger.warning(f"Failed to export lessons to the learning store: {e}", exc_info=True)
            return 0
