# src/journey_refiner/application/orchestrators/refinement_orchestrator.py
"""
Refinement loop orchestrator.

Drives one session through run test -> classify -> select fix -> apply ->
re-run, until the test passes, no acceptable fix exists, the circuit
breaker opens, or the caller cancels.
"""
import logging
import threading
import time
import uuid
from typing import Callable, List, Optional

from journey_refiner.application.services.circuit_breaker import CircuitBreaker
from journey_refiner.application.services.convergence_detector import (
    ConvergenceDetector, fingerprint_set, fixed_fingerprints
)
from journey_refiner.application.services.error_classifier import ErrorClassifier
from journey_refiner.application.services.fix_registry import FixerRegistry, find_forbidden_type
from journey_refiner.application.services.session_recorder import SessionRecorder
from journey_refiner.domain.models.error_analysis import ErrorAnalysis
from journey_refiner.domain.models.errors import RefinementInvariantError
from journey_refiner.domain.models.refinement import (
    CodeFix, FixAttempt, FixOutcome, RefinementResult, RefinementSession, RefinementStatus, SessionPhase
)
from journey_refiner.domain.models.refinement_config import RefinementConfig
from journey_refiner.domain.ports.fixer import FixContext, FixerPort
from journey_refiner.domain.ports.learning_store import LearningStorePort
from journey_refiner.domain.ports.test_runner import TestRunnerPort

logger = logging.getLogger(__name__)


def select_primary_error(errors: List[ErrorAnalysis]) -> Optional[ErrorAnalysis]:
    """Highest severity first; among equals, the one reported first."""
    if not errors:
        return None
    return sorted(errors, key=lambda e: -e.severity.rank)[0]


def determine_outcome(previous: List[ErrorAnalysis], current: List[ErrorAnalysis]) -> FixOutcome:
    """Judges an attempt by comparing the errors before and after it."""
    if not current:
        return FixOutcome.SUCCESS
    if len(fingerprint_set(current)) < len(fingerprint_set(previous)) or fixed_fingerprints(previous, current):
        return FixOutcome.PARTIAL
    return FixOutcome.FAILURE


class RefinementOrchestrator:
    """
    Owns and mutates refinement sessions. Every other component it uses is a
    pure function of its inputs.

    One orchestrator may serve several sessions one after another or from
    different threads; all per-session state lives on the session.
    """

    def __init__(self,
                 test_runner: TestRunnerPort,
                 registry: FixerRegistry,
                 classifier: Optional[ErrorClassifier] = None,
                 detector: Optional[ConvergenceDetector] = None,
                 breaker: Optional[CircuitBreaker] = None,
                 recorder: Optional[SessionRecorder] = None,
                 learning_store: Optional[LearningStorePort] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initializes the orchestrator.

        Args:
            test_runner: Executes candidate test code.
            registry: Available fixers.
            classifier: Turns runner failures into ErrorAnalysis records.
            detector: Computes convergence from the error history.
            breaker: Applies the hard stopping rules.
            recorder: Builds the final result.
            learning_store: Optional sink for lessons of successful sessions.
            sleep: Used for the cooldown between test runs.
            clock: Monotonic clock in seconds, shared with the breaker.
        """
        self.test_runner = test_runner
        self.registry = registry
        self.classifier = classifier or ErrorClassifier()
        self.detector = detector or ConvergenceDetector()
        self.clock = clock
        self.breaker = breaker or CircuitBreaker(clock=clock)
        self.recorder = recorder or SessionRecorder()
        self.learning_store = learning_store
        self.sleep = sleep

    # --- Public API ---

    def run_refinement_loop(self,
                            initial_code: str,
                            test_file: str,
                            journey_id: str,
                            config: Optional[RefinementConfig] = None,
                            cancel_event: Optional[threading.Event] = None,
                            on_attempt_complete: Optional[Callable[[FixAttempt], None]] = None) -> RefinementResult:
        """
        Runs a complete refinement session.

        Args:
            initial_code: The generated test source.
            test_file: Path of the test file.
            journey_id: Journey the test was generated from.
            config: Session configuration; defaults apply when omitted.
            cancel_event: When set, the loop stops before the next test run.
            on_attempt_complete: Called with every recorded attempt.

        Returns:
            A RefinementResult with a terminal status.

        Raises:
            RefinementConfigError: If the configuration is invalid. Raised
                                   before the test runs even once.
        """
        config = config or RefinementConfig()
        session = self.start_session(initial_code, test_file, journey_id, config)

        if not session.current_errors:
            logger.info(f"Session {session.session_id}: test passes as generated, nothing to refine.")
            session.finalize(RefinementStatus.SUCCESS, SessionPhase.SUCCESS)

        while not session.is_finalized:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Session {session.session_id}: cancelled after {len(session.attempts)} attempt(s).")
                session.finalize(RefinementStatus.ABORTED, SessionPhase.EXHAUSTED)
                break

            session.breaker_state = self.breaker.should_open(session.breaker_state, None, config, now=self.clock())
            if self._stop_if_open(session):
                break

            attempt = self.run_single_refinement_attempt(session, config)
            if on_attempt_complete is not None:
                try:
                    on_attempt_complete(attempt)
                except Exception as e:
                    logger.error(f"Session {session.session_id}: progress callback failed: {e}", exc_info=True)

            if attempt.outcome == FixOutcome.SKIPPED:
                logger.warning(f"Session {session.session_id}: no acceptable fix for "
                               f"{attempt.error.category.value if attempt.error else 'unknown error'}.")
                session.finalize(RefinementStatus.CANNOT_FIX, SessionPhase.EXHAUSTED)
            elif attempt.outcome == FixOutcome.SUCCESS:
                logger.info(f"Session {session.session_id}: test passes after attempt {attempt.attempt_number}.")
                session.finalize(RefinementStatus.SUCCESS, SessionPhase.SUCCESS)
            else:
                self._stop_if_open(session)

        result = self.recorder.build_result(session, config)
        if result.success:
            self.recorder.export_lessons(self.learning_store, result.lessons)
        return result

    def start_session(self, initial_code: str, test_file: str, journey_id: str,
                      config: RefinementConfig) -> RefinementSession:
        """
        Validates the configuration, creates a session and runs the baseline test.

        Raises:
            RefinementConfigError: If the configuration or fixer order is invalid.
        """
        config.validate()
        self.registry.ordered(config.fixer_order)

        session = RefinementSession(
            session_id=uuid.uuid4().hex[:12],
            journey_id=journey_id,
            test_file=test_file,
            original_code=initial_code,
            current_code=initial_code,
            breaker_state=self.breaker.initial_state(now=self.clock()),
        )
        session.phase = SessionPhase.RUNNING
        logger.info(f"Session {session.session_id}: refining {test_file} (journey {journey_id}), "
                    f"max {config.max_attempts} attempt(s).")

        baseline = self._execute_test(session, initial_code)
        session.record_run(baseline)
        session.convergence = self.detector.update(session.error_history, config.oscillation_window_size)
        logger.info(f"Session {session.session_id}: baseline run has {len(baseline)} error(s).")
        return session

    def run_single_refinement_attempt(self, session: RefinementSession, config: RefinementConfig) -> FixAttempt:
        """
        Performs one attempt: pick the primary error, find an acceptable fix,
        apply it, re-run the test and update convergence and breaker state.

        The attempt is appended to the session. When no acceptable fix exists
        the attempt is recorded as skipped and the test is not re-run.

        Raises:
            RefinementInvariantError: If the session is finalized, the breaker
                                      is open, or there is no error to fix.
        """
        if session.is_finalized:
            raise RefinementInvariantError(f"Session {session.session_id} is finalized.")
        if session.breaker_state.is_open:
            raise RefinementInvariantError(
                f"Circuit breaker is open ({session.breaker_state.open_reason.value}); no new attempt may start."
            )
        primary = select_primary_error(session.current_errors)
        if primary is None:
            raise RefinementInvariantError(f"Session {session.session_id} has no active error to fix.")

        started = self.clock()
        attempt = FixAttempt(attempt_number=session.next_attempt_number, error=primary)
        logger.info(f"Attempt {attempt.attempt_number}/{config.max_attempts}: "
                    f"{primary.category.value} ({primary.severity.value}) - {primary.message}")

        chosen = self._choose_fix(session, primary, attempt, config)
        if chosen is None:
            attempt.outcome = FixOutcome.SKIPPED
            attempt.duration = self.clock() - started
            session.add_attempt(attempt)
            return attempt

        attempt.applied_fix = chosen
        previous_errors = session.current_errors
        session.current_code = chosen.fixed_code
        logger.info(f"Applied {chosen.type.value} from '{chosen.fixer}' ({chosen.confidence:.2f}): {chosen.description}")

        self._cooldown(session, config)
        new_errors = self._execute_test(session, session.current_code)

        attempt.new_errors = new_errors
        attempt.outcome = determine_outcome(previous_errors, new_errors)
        session.record_run(new_errors)
        session.convergence = self.detector.update(session.error_history, config.oscillation_window_size)
        session.breaker_state = self.breaker.should_open(
            session.breaker_state,
            new_errors,
            config,
            convergence=session.convergence,
            tokens_used=attempt.tokens_used,
            now=self.clock(),
        )
        attempt.duration = self.clock() - started
        session.add_attempt(attempt)

        logger.info(f"Attempt {attempt.attempt_number} outcome: {attempt.outcome.value}, "
                    f"{len(new_errors)} error(s) remain, trend {session.convergence.trend.value}.")
        return attempt

    # --- Internals ---

    def _choose_fix(self, session: RefinementSession, primary: ErrorAnalysis, attempt: FixAttempt,
                    config: RefinementConfig) -> Optional[CodeFix]:
        """First applied, allowed fix at or above the confidence threshold, in fixer priority order."""
        context = FixContext(
            test_file=session.test_file,
            journey_id=session.journey_id,
            attempt_number=attempt.attempt_number,
            all_errors=list(session.current_errors),
            previous_fixes=session.applied_fixes,
        )
        for fixer in self.registry.ordered(config.fixer_order):
            fix = self._propose(fixer, session.current_code, primary, context)
            if fix is None:
                continue
            attempt.tokens_used += fix.tokens_used
            if not fix.applied:
                continue

            fix.fixer = fix.fixer or fixer.name
            attempt.proposed_fixes.append(fix)

            forbidden = find_forbidden_type(fix)
            if forbidden is not None:
                logger.warning(f"Rejected forbidden fix from '{fixer.name}' ({forbidden.value}): {fix.description}")
                attempt.rejected_fixes.append(fix)
                continue
            if fix.confidence < config.confidence_threshold:
                logger.info(f"Rejected low-confidence fix from '{fixer.name}' "
                            f"({fix.confidence:.2f} < {config.confidence_threshold:.2f}): {fix.description}")
                attempt.rejected_fixes.append(fix)
                continue
            return fix
        return None

    @staticmethod
    def _propose(fixer: FixerPort, code: str, analysis: ErrorAnalysis, context: FixContext) -> Optional[CodeFix]:
        try:
            if not fixer.can_apply(analysis):
                return None
            return fixer.apply(code, analysis, context)
        except Exception as e:
            logger.error(f"Fixer '{fixer.name}' failed on {analysis.category.value}: {e}", exc_info=True)
            return None

    def _execute_test(self, session: RefinementSession, code: str) -> List[ErrorAnalysis]:
        """
        Runs the test and returns the active errors; an empty list means it passed.
        Runner exceptions become a critical runtime error.
        """
        try:
            report = self.test_runner.run(code, session.test_file)
        except Exception as e:
            logger.error(f"Test runner failed for {session.test_file}: {e}", exc_info=True)
            return [self.classifier.from_exception(e)]
        finally:
            session.last_run_at = self.clock()

        errors = self.classifier.classify_many(report.failures)
        if report.passed and not errors:
            return []
        if not errors:
            errors = [self.classifier.unreported_failure(report.output)]
        return errors

    def _cooldown(self, session: RefinementSession, config: RefinementConfig) -> None:
        if config.cooldown_ms <= 0 or session.last_run_at is None:
            return
        remaining = config.cooldown_ms / 1000 - (self.clock() - session.last_run_at)
        if remaining > 0:
            logger.debug(f"Cooling down for {remaining:.2f}s before the next test run")
            self.sleep(remaining)

    @staticmethod
    def _stop_if_open(session: RefinementSession) -> bool:
        state = session.breaker_state
        if not state.is_open:
            return False
        status = RefinementStatus.from_open_reason(state.open_reason)
        logger.warning(f"Session {session.session_id}: stopping with {status.value}.")
        session.finalize(status, SessionPhase.OPEN_CIRCUIT)
        return True
