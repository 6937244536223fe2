# src/journey_refiner/domain/models/refinement.py
"""
Domain models for refinement sessions: fixes, attempts, breaker and
convergence state, and the final result.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Dict, Any, Optional, Tuple

from journey_refiner.domain.models.error_analysis import ErrorAnalysis, ErrorCategory, ErrorLocation
from journey_refiner.domain.models.errors import RefinementInvariantError


class FixType(Enum):
    """Kinds of code transformation a fixer may propose."""
    SELECTOR_CHANGE = "SELECTOR_CHANGE"
    LOCATOR_STRATEGY_CHANGED = "LOCATOR_STRATEGY_CHANGED"
    MISSING_AWAIT = "MISSING_AWAIT"
    WEB_FIRST_ASSERTION = "WEB_FIRST_ASSERTION"
    TIMEOUT_INCREASED = "TIMEOUT_INCREASED"
    NAVIGATION_WAIT = "NAVIGATION_WAIT"
    DATA_ISOLATION = "DATA_ISOLATION"
    ASSERTION_MODIFIED = "ASSERTION_MODIFIED"
    OTHER = "OTHER"
    # Never applied, whatever the fixer claims
    ADD_SLEEP = "ADD_SLEEP"
    REMOVE_ASSERTION = "REMOVE_ASSERTION"
    WEAKEN_ASSERTION = "WEAKEN_ASSERTION"
    FORCE_INTERACTION = "FORCE_INTERACTION"
    BYPASS_AUTH = "BYPASS_AUTH"

    @property
    def is_forbidden(self) -> bool:
        return self in FORBIDDEN_FIX_TYPES


FORBIDDEN_FIX_TYPES = frozenset({
    FixType.ADD_SLEEP,
    FixType.REMOVE_ASSERTION,
    FixType.WEAKEN_ASSERTION,
    FixType.FORCE_INTERACTION,
    FixType.BYPASS_AUTH,
})


@dataclass
class CodeFix:
    """
    A transformation proposed by a fixer.

    original_code and fixed_code hold the whole candidate test before and
    after the change, so applying a fix is a plain replacement of the
    session's current code.
    """
    type: FixType
    description: str
    original_code: str
    fixed_code: str
    confidence: float = 0.0  # 0.0 to 1.0
    applied: bool = False
    location: Optional[ErrorLocation] = None
    reasoning: Optional[str] = None
    fixer: Optional[str] = None
    tokens_used: int = 0

    @classmethod
    def not_applied(cls, code: str, description: str, fixer: Optional[str] = None) -> "CodeFix":
        """A fix record for 'nothing to do here'."""
        return cls(
            type=FixType.OTHER,
            description=description,
            original_code=code,
            fixed_code=code,
            confidence=0.0,
            applied=False,
            fixer=fixer,
        )

    @property
    def changes_code(self) -> bool:
        return self.fixed_code != self.original_code


class FixOutcome(Enum):
    """Outcome of one fix attempt, judged by the re-run that followed it."""
    SUCCESS = "success"  # Re-run passed
    PARTIAL = "partial"  # Some errors resolved, others remain
    FAILURE = "failure"  # Nothing improved
    SKIPPED = "skipped"  # No acceptable fix was found


@dataclass
class FixAttempt:
    """One loop iteration's full record."""
    attempt_number: int
    error: Optional[ErrorAnalysis]
    timestamp: datetime = field(default_factory=datetime.now)
    proposed_fixes: List[CodeFix] = field(default_factory=list)
    rejected_fixes: List[CodeFix] = field(default_factory=list)
    applied_fix: Optional[CodeFix] = None
    outcome: FixOutcome = FixOutcome.SKIPPED
    new_errors: List[ErrorAnalysis] = field(default_factory=list)
    tokens_used: int = 0
    duration: float = 0.0  # Seconds


class OpenReason(Enum):
    """Why the circuit breaker opened."""
    MAX_ATTEMPTS = "MAX_ATTEMPTS"
    SAME_ERROR = "SAME_ERROR"
    OSCILLATION = "OSCILLATION"
    TIMEOUT = "TIMEOUT"
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"


@dataclass(frozen=True)
class CircuitBreakerState:
    """
    Snapshot of the breaker. Every transition produces a new snapshot, and
    once is_open is True every later snapshot keeps it True.
    """
    is_open: bool = False
    open_reason: Optional[OpenReason] = None
    attempt_count: int = 0
    error_history: Tuple[str, ...] = ()
    start_time: float = 0.0  # Clock reading when the session started, seconds
    tokens_used: int = 0


class ConvergenceTrend(Enum):
    IMPROVING = "improving"
    STAGNATING = "stagnating"
    DEGRADING = "degrading"
    OSCILLATING = "oscillating"


@dataclass(frozen=True)
class ConvergenceInfo:
    """Derived view over the per-run error history."""
    converged: bool = False
    error_count_history: Tuple[int, ...] = ()
    unique_errors_history: Tuple[frozenset, ...] = ()
    stagnation_count: int = 0
    trend: ConvergenceTrend = ConvergenceTrend.STAGNATING
    last_improvement: Optional[int] = None  # Index into the history
    improvement_percentage: float = 0.0


class RefinementStatus(Enum):
    """Terminal status of a session."""
    SUCCESS = "SUCCESS"
    MAX_ATTEMPTS_REACHED = "MAX_ATTEMPTS_REACHED"
    SAME_ERROR_LOOP = "SAME_ERROR_LOOP"
    OSCILLATION_DETECTED = "OSCILLATION_DETECTED"
    TIMEOUT = "TIMEOUT"
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"
    CANNOT_FIX = "CANNOT_FIX"
    ABORTED = "ABORTED"

    @classmethod
    def from_open_reason(cls, reason: OpenReason) -> "RefinementStatus":
        return _STATUS_BY_OPEN_REASON[reason]


_STATUS_BY_OPEN_REASON = {
    OpenReason.MAX_ATTEMPTS: RefinementStatus.MAX_ATTEMPTS_REACHED,
    OpenReason.SAME_ERROR: RefinementStatus.SAME_ERROR_LOOP,
    OpenReason.OSCILLATION: RefinementStatus.OSCILLATION_DETECTED,
    OpenReason.TIMEOUT: RefinementStatus.TIMEOUT,
    OpenReason.BUDGET_EXCEEDED: RefinementStatus.BUDGET_EXCEEDED,
}


class SessionPhase(Enum):
    """Coarse state machine of a session."""
    INIT = "INIT"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    OPEN_CIRCUIT = "OPEN_CIRCUIT"  # Stopped by a breaker rule
    EXHAUSTED = "EXHAUSTED"        # Stopped with nothing left to try, or cancelled


@dataclass
class RefinementSession:
    """
    Aggregate root of one refinement run against one test file.

    Only the orchestrator mutates a session. Once final_status is set the
    session refuses any further attribute assignment.
    """
    session_id: str
    journey_id: str
    test_file: str
    original_code: str
    current_code: str
    breaker_state: CircuitBreakerState = field(default_factory=CircuitBreakerState)
    convergence: ConvergenceInfo = field(default_factory=ConvergenceInfo)
    attempts: List[FixAttempt] = field(default_factory=list)
    error_history: List[List[ErrorAnalysis]] = field(default_factory=list)  # One entry per test run, baseline first
    current_errors: List[ErrorAnalysis] = field(default_factory=list)
    phase: SessionPhase = SessionPhase.INIT
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    tokens_used: int = 0
    last_run_at: Optional[float] = None  # Clock reading when the last test run finished
    final_status: Optional[RefinementStatus] = None

    def __setattr__(self, name, value):
        if self.__dict__.get("final_status") is not None:
            raise RefinementInvariantError(
                f"Session {self.__dict__.get('session_id')} is finalized; cannot set '{name}'."
            )
        object.__setattr__(self, name, value)

    @property
    def is_finalized(self) -> bool:
        return self.final_status is not None

    @property
    def next_attempt_number(self) -> int:
        return len(self.attempts) + 1

    @property
    def applied_fixes(self) -> List[CodeFix]:
        return [a.applied_fix for a in self.attempts if a.applied_fix is not None]

    def record_run(self, errors: List[ErrorAnalysis]) -> None:
        """Adds the classified errors of one test run to the history."""
        self._ensure_mutable()
        self.error_history.append(list(errors))
        self.current_errors = list(errors)

    def add_attempt(self, attempt: FixAttempt) -> None:
        """Appends an attempt, enforcing 1-based, gap-free numbering."""
        self._ensure_mutable()
        if attempt.attempt_number != self.next_attempt_number:
            raise RefinementInvariantError(
                f"Attempt number {attempt.attempt_number} out of order; expected {self.next_attempt_number}."
            )
        if self.attempts and self.attempts[-1].outcome == FixOutcome.SUCCESS:
            raise RefinementInvariantError("No attempt may follow a successful attempt.")
        self.attempts.append(attempt)
        self.tokens_used += attempt.tokens_used

    def finalize(self, status: RefinementStatus, phase: SessionPhase) -> None:
        """Sets the terminal status. Must be the last mutation of the session."""
        self._ensure_mutable()
        self.phase = phase
        self.end_time = datetime.now()
        self.final_status = status

    def _ensure_mutable(self) -> None:
        if self.is_finalized:
            raise RefinementInvariantError(f"Session {self.session_id} is already finalized as {self.final_status.value}.")


@dataclass
class RefinementDiagnostics:
    """Why a session stopped, in flags and in words."""
    attempts: int
    last_error: Optional[ErrorAnalysis] = None
    convergence_failure: bool = False
    same_error_repeated: bool = False
    oscillation_detected: bool = False
    budget_exhausted: bool = False
    timed_out: bool = False
    cannot_fix: bool = False
    aborted: bool = False
    summary: str = ""


class LessonType(Enum):
    """What kind of reusable knowledge a lesson captures."""
    SELECTOR_PATTERN = "selector_pattern"
    WAIT_STRATEGY = "wait_strategy"
    FLOW_PATTERN = "flow_pattern"
    ERROR_FIX = "error_fix"


@dataclass
class LessonLearned:
    """A fix pattern worth remembering for later sessions."""
    lesson_id: str
    type: LessonType
    category: ErrorCategory
    fix_type: FixType
    error_pattern: str
    original_snippet: str
    fixed_snippet: str
    confidence: float
    journey_id: str
    test_file: str
    verified: bool = False
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lesson_id": self.lesson_id,
            "type": self.type.value,
            "category": self.category.value,
            "fix_type": self.fix_type.value,
            "error_pattern": self.error_pattern,
            "original_snippet": self.original_snippet,
            "fixed_snippet": self.fixed_snippet,
            "confidence": self.confidence,
            "journey_id": self.journey_id,
            "test_file": self.test_file,
            "verified": self.verified,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LessonLearned":
        return cls(
            lesson_id=data["lesson_id"],
            type=LessonType(data["type"]),
            category=ErrorCategory(data["category"]),
            fix_type=FixType(data["fix_type"]),
            error_pattern=data.get("error_pattern", ""),
            original_snippet=data.get("original_snippet", ""),
            fixed_snippet=data.get("fixed_snippet", ""),
            confidence=float(data.get("confidence", 0.0)),
            journey_id=data.get("journey_id", ""),
            test_file=data.get("test_file", ""),
            verified=bool(data.get("verified", False)),
            created_at=data.get("created_at") or datetime.now().isoformat(),
        )


@dataclass
class RefinementResult:
    """What the caller gets back from a refinement loop, whatever happened."""
    success: bool
    status: RefinementStatus
    session: RefinementSession
    final_code: Optional[str]  # Only set when at least one fix was applied
    remaining_errors: List[ErrorAnalysis] = field(default_factory=list)
    applied_fixes: List[CodeFix] = field(default_factory=list)
    diagnostics: Optional[RefinementDiagnostics] = None
    lessons: List[LessonLearned] = field(default_factory=list)
