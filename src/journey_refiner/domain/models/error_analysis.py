# src/journey_refiner/domain/models/error_analysis.py
"""
Domain models for classified test failures.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    """Categories of browser test failures."""
    SELECTOR_NOT_FOUND = "SELECTOR_NOT_FOUND"      # Locator matched nothing or too much
    TIMEOUT = "TIMEOUT"                            # Action or assertion ran out of time
    ASSERTION_FAILED = "ASSERTION_FAILED"          # expect() did not hold
    NAVIGATION_ERROR = "NAVIGATION_ERROR"          # Page load or frame problems
    TYPE_ERROR = "TYPE_ERROR"                      # JS TypeError / undefined access
    RUNTIME_ERROR = "RUNTIME_ERROR"                # Any other thrown error, runner crashes
    NETWORK_ERROR = "NETWORK_ERROR"                # Connection refused, DNS, 4xx/5xx
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"  # Login or session problems
    PERMISSION_ERROR = "PERMISSION_ERROR"          # Access denied
    SYNTAX_ERROR = "SYNTAX_ERROR"                  # Test code does not parse
    UNKNOWN = "UNKNOWN"                            # Unclassified


class ErrorSeverity(Enum):
    """Severity levels for classified failures."""
    CRITICAL = "critical"  # Test code cannot execute
    MAJOR = "major"        # Test executes but a step fails
    MINOR = "minor"        # Environmental or unclassified
    WARNING = "warning"    # Informational

    @property
    def rank(self) -> int:
        """Ordering key, higher is more severe."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    ErrorSeverity.CRITICAL: 3,
    ErrorSeverity.MAJOR: 2,
    ErrorSeverity.MINOR: 1,
    ErrorSeverity.WARNING: 0,
}


@dataclass(frozen=True)
class ErrorLocation:
    """Where in the test file a failure was reported."""
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    test_name: Optional[str] = None


@dataclass
class RawFailure:
    """One failure exactly as the test runner reported it."""
    message: Optional[str] = None
    stack: Optional[str] = None
    location: Optional[ErrorLocation] = None
    test_name: Optional[str] = None


@dataclass(frozen=True)
class ErrorAnalysis:
    """
    A classified failure. Immutable once created; equality across attempts
    is decided by the fingerprint, not by object identity.
    """
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    original_error: str
    fingerprint: str
    location: Optional[ErrorLocation] = None
    selector: Optional[str] = None
    expected_value: Optional[str] = None
    actual_value: Optional[str] = None
    stack_trace: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now, compare=False)

    def to_dict(self) -> dict:
        """Serializable view used by the recorder and the CLI."""
        location = None
        if self.location:
            location = {
                "file": self.location.file,
                "line": self.location.line,
                "column": self.location.column,
                "test_name": self.location.test_name,
            }
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "message": self.message,
            "fingerprint": self.fingerprint,
            "location": location,
            "selector": self.selector,
            "expected_value": self.expected_value,
            "actual_value": self.actual_value,
        }
