# src/journey_refiner/domain/models/errors.py
"""
Exception hierarchy for the refinement engine.

Classifiable test failures are never raised; they travel through the loop as
ErrorAnalysis records. Only configuration mistakes and broken internal
invariants surface to callers as exceptions.
"""


class RefinementError(Exception):
    """Base class for all refinement engine errors."""
    pass


class RefinementConfigError(RefinementError, ValueError):
    """Raised when a RefinementConfig is invalid. Fails before any attempt runs."""
    pass


class RefinementInvariantError(RefinementError, AssertionError):
    """Raised when the orchestrator is asked to do something its state forbids."""
    pass


class TestRunnerError(RefinementError):
    """Raised by test runner adapters when the runner itself cannot complete."""
    __test__ = False  # Not a pytest test class
