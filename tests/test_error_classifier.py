"""Tests for the Playwright failure classifier."""

from __future__ import annotations

import pytest

from journey_refiner.application.services.error_classifier import (
    CATEGORY_SEVERITY,
    ErrorClassifier,
    compute_fingerprint,
    normalize_message,
    severity_for,
)
from journey_refiner.domain.models.error_analysis import (
    ErrorCategory,
    ErrorLocation,
    ErrorSeverity,
    RawFailure,
)
from journey_refiner.domain.models.errors import RefinementConfigError, TestRunnerError


class TestCategories:
    @pytest.mark.parametrize(
        "message, category",
        [
            ("Error: locator.click: Timeout 5000ms exceeded.", ErrorCategory.SELECTOR_NOT_FOUND),
            ("Error: strict mode violation: getByRole('button') resolved to 3 elements",
             ErrorCategory.SELECTOR_NOT_FOUND),
            ("Test timeout of 30000ms exceeded.", ErrorCategory.TIMEOUT),
            ("TimeoutError: page.waitForFunction: exceeded", ErrorCategory.TIMEOUT),
            ("Error: expect(locator).toBeVisible() failed", ErrorCategory.ASSERTION_FAILED),
            ("Error: page.goto: net::ERR_NAME_NOT_RESOLVED at https://shop.example.com/",
             ErrorCategory.NAVIGATION_ERROR),
            ("Error: connect ECONNREFUSED 127.0.0.1:3000", ErrorCategory.NETWORK_ERROR),
            ("Error: Login failed for the demo user", ErrorCategory.AUTHENTICATION_ERROR),
            ("Error: 403 Forbidden", ErrorCategory.PERMISSION_ERROR),
            ("TypeError: Cannot read properties of undefined (reading 'click')", ErrorCategory.TYPE_ERROR),
            ("SyntaxError: Unexpected token '}'", ErrorCategory.SYNTAX_ERROR),
            ("RangeError: Maximum call stack size exceeded", ErrorCategory.RUNTIME_ERROR),
            ("something odd happened", ErrorCategory.UNKNOWN),
        ],
    )
    def test_classifies_message(self, classifier: ErrorClassifier, message: str, category: ErrorCategory) -> None:
        analysis = classifier.classify(RawFailure(message=message))
        assert analysis.category == category
        assert analysis.severity == CATEGORY_SEVERITY[category]

    def test_locator_timeout_beats_generic_timeout(self, classifier: ErrorClassifier) -> None:
        analysis = classifier.classify(RawFailure(
            message="Error: locator.click: Timeout 5000ms exceeded.\nCall log:\n  - waiting for locator('#submit')"
        ))
        assert analysis.category == ErrorCategory.SELECTOR_NOT_FOUND
        assert analysis.selector == "#submit"
        assert ErrorClassifier.is_timing_related(analysis) is True

    def test_assertion_values_are_extracted(self, classifier: ErrorClassifier) -> None:
        analysis = classifier.classify(RawFailure(
            message='Error: expect(received).toBe(expected)\n\nExpected: "Order placed"\nReceived: "Cart"'
        ))
        assert analysis.category == ErrorCategory.ASSERTION_FAILED
        assert analysis.expected_value == '"Order placed"'
        assert analysis.actual_value == '"Cart"'
        assert analysis.message == "Error: expect(received).toBe(expected)"

    def test_environmental_categories(self, classifier: ErrorClassifier) -> None:
        network = classifier.classify("Error: connect ECONNREFUSED 127.0.0.1:3000")
        assertion = classifier.classify("Error: expect(locator).toBeVisible() failed")
        assert ErrorClassifier.is_environmental(network) is True
        assert ErrorClassifier.is_environmental(assertion) is False


class TestSeverity:
    @pytest.mark.parametrize(
        "category, severity",
        [
            (ErrorCategory.SYNTAX_ERROR, ErrorSeverity.CRITICAL),
            (ErrorCategory.RUNTIME_ERROR, ErrorSeverity.CRITICAL),
            (ErrorCategory.TYPE_ERROR, ErrorSeverity.CRITICAL),
            (ErrorCategory.SELECTOR_NOT_FOUND, ErrorSeverity.MAJOR),
            (ErrorCategory.TIMEOUT, ErrorSeverity.MAJOR),
            (ErrorCategory.ASSERTION_FAILED, ErrorSeverity.MAJOR),
            (ErrorCategory.NAVIGATION_ERROR, ErrorSeverity.MAJOR),
            (ErrorCategory.NETWORK_ERROR, ErrorSeverity.MINOR),
            (ErrorCategory.AUTHENTICATION_ERROR, ErrorSeverity.MINOR),
            (ErrorCategory.PERMISSION_ERROR, ErrorSeverity.MINOR),
            (ErrorCategory.UNKNOWN, ErrorSeverity.MINOR),
        ],
    )
    def test_fixed_severity_per_category(self, category: ErrorCategory, severity: ErrorSeverity) -> None:
        assert severity_for(category) == severity

    def test_every_category_has_a_severity(self) -> None:
        assert set(CATEGORY_SEVERITY) == set(ErrorCategory)


class TestFingerprints:
    def test_literal_values_do_not_change_the_fingerprint(self, classifier: ErrorClassifier) -> None:
        first = classifier.classify("Error: locator.click: Timeout 5000ms exceeded waiting for locator('#a')")
        second = classifier.classify("Error: locator.click: Timeout 3000ms exceeded waiting for locator('#b')")
        assert first.fingerprint == second.fingerprint

    def test_different_words_change_the_fingerprint(self, classifier: ErrorClassifier) -> None:
        first = classifier.classify("TypeError: foo is not a function")
        second = classifier.classify("TypeError: bar is not a function")
        assert first.fingerprint != second.fingerprint

    def test_line_is_part_of_the_fingerprint(self, classifier: ErrorClassifier) -> None:
        message = "Error: expect(locator).toBeVisible() failed"
        at_five = classifier.classify(RawFailure(message=message, location=ErrorLocation("a.spec.ts", 5)))
        at_nine = classifier.classify(RawFailure(message=message, location=ErrorLocation("a.spec.ts", 9)))
        assert at_five.fingerprint != at_nine.fingerprint

    def test_fingerprint_is_stable(self) -> None:
        location = ErrorLocation(file="a.spec.ts", line=3)
        first = compute_fingerprint(ErrorCategory.TIMEOUT, "Timeout 100ms exceeded", location)
        second = compute_fingerprint(ErrorCategory.TIMEOUT, "Timeout 100ms exceeded", location)
        assert first == second
        assert len(first) == 12

    def test_normalize_message(self) -> None:
        text = normalize_message("Failed  at 'x' https://a.example.com/p ./src/app.ts 42")
        assert text == "failed at <str> <url> <path> <n>"


class TestLocations:
    def test_location_from_stack_frame(self, classifier: ErrorClassifier) -> None:
        analysis = classifier.classify(RawFailure(
            message="Error: expect(locator).toBeVisible() failed",
            stack="    at /repo/tests/checkout.spec.ts:12:7",
        ))
        assert analysis.location.file == "/repo/tests/checkout.spec.ts"
        assert analysis.location.line == 12
        assert analysis.location.column == 7
        assert analysis.stack_trace == "at /repo/tests/checkout.spec.ts:12:7"

    def test_explicit_location_wins(self, classifier: ErrorClassifier) -> None:
        location = ErrorLocation(file="tests/a.spec.ts", line=4)
        analysis = classifier.classify(RawFailure(
            message="Error: boom at tests/b.spec.ts:9:1", location=location, test_name="a > b"
        ))
        assert analysis.location.file == "tests/a.spec.ts"
        assert analysis.location.line == 4
        assert analysis.location.test_name == "a > b"

    def test_test_name_without_location(self, classifier: ErrorClassifier) -> None:
        analysis = classifier.classify(RawFailure(message="something odd", test_name="checkout > pays"))
        assert analysis.location == ErrorLocation(test_name="checkout > pays")

    def test_long_messages_are_truncated(self, classifier: ErrorClassifier) -> None:
        analysis = classifier.classify("Error: " + "x" * 400)
        assert len(analysis.message) == 203
        assert analysis.message.endswith("...")


class TestRobustness:
    @pytest.mark.parametrize("raw", [None, 42, RawFailure(), RawFailure(message="   "), {"message": 7}])
    def test_never_raises(self, classifier: ErrorClassifier, raw) -> None:
        analysis = classifier.classify(raw)
        assert analysis.category == ErrorCategory.UNKNOWN
        assert analysis.severity == ErrorSeverity.MINOR

    def test_dict_input(self, classifier: ErrorClassifier) -> None:
        analysis = classifier.classify({"message": "TypeError: foo is not a function", "test_name": "t"})
        assert analysis.category == ErrorCategory.TYPE_ERROR
        assert analysis.location.test_name == "t"

    def test_from_exception(self, classifier: ErrorClassifier) -> None:
        analysis = classifier.from_exception(TestRunnerError("playwright not installed"))
        assert analysis.category == ErrorCategory.RUNTIME_ERROR
        assert analysis.severity == ErrorSeverity.CRITICAL
        assert analysis.message == "Test runner failed: TestRunnerError: playwright not installed"

    def test_unreported_failure(self, classifier: ErrorClassifier) -> None:
        analysis = classifier.unreported_failure("exit code 1")
        assert analysis.category == ErrorCategory.UNKNOWN
        assert analysis.message == "Test run failed without reporting an error"
        assert analysis.original_error == "exit code 1"

    def test_classify_many_preserves_order(self, classifier: ErrorClassifier) -> None:
        analyses = classifier.classify_many(["SyntaxError: Unexpected token", "Error: 403 Forbidden"])
        assert [a.category for a in analyses] == [ErrorCategory.SYNTAX_ERROR, ErrorCategory.PERMISSION_ERROR]
        assert classifier.classify_many(None) == []


class TestParseOutput:
    def test_splits_and_deduplicates_blocks(self, classifier: ErrorClassifier) -> None:
        output = (
            "Running 1 test using 1 worker\n"
            "Error: expect(locator).toBeVisible() failed\n    at tests/a.spec.ts:5:3\n"
            "Error: expect(locator).toBeVisible() failed\n    at tests/a.spec.ts:5:3\n"
            "TypeError: foo is not a function\n    at tests/a.spec.ts:8:1\n"
        )
        analyses = classifier.parse_output(output)
        assert [a.category for a in analyses] == [ErrorCategory.ASSERTION_FAILED, ErrorCategory.TYPE_ERROR]
        assert analyses[0].location.line == 5

    def test_test_file_fills_missing_location(self, classifier: ErrorClassifier) -> None:
        analyses = classifier.parse_output("Error: 403 Forbidden", test_file="tests/admin.spec.ts")
        assert analyses[0].location.file == "tests/admin.spec.ts"

    def test_output_without_error_markers_is_one_block(self, classifier: ErrorClassifier) -> None:
        analyses = classifier.parse_output("1 failed\n  checkout journey")
        assert len(analyses) == 1
        assert analyses[0].category == ErrorCategory.UNKNOWN

    @pytest.mark.parametrize("output", ["", "   \n", None])
    def test_empty_output(self, classifier: ErrorClassifier, output) -> None:
        assert classifier.parse_output(output) == []


class TestConfiguredPatterns:
    def test_extra_patterns_are_tried_first(self) -> None:
        classifier = ErrorClassifier({"classifier": {"extra_patterns": {
            "network_error": [r"mock server unavailable"],
        }}})
        analysis = classifier.classify("Error: Mock server unavailable")
        assert analysis.category == ErrorCategory.NETWORK_ERROR

    def test_without_extra_patterns(self, classifier: ErrorClassifier) -> None:
        assert classifier.classify("Error: Mock server unavailable").category == ErrorCategory.RUNTIME_ERROR

    @pytest.mark.parametrize(
        "extra",
        [{"no_such_category": ["x"]}, {"timeout": ["("]}],
    )
    def test_invalid_extra_patterns(self, extra) -> None:
        with pytest.raises(RefinementConfigError):
            ErrorClassifier({"classifier": {"extra_patterns": extra}})
