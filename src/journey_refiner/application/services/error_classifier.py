"""
Regex-based classifier for Playwright test failures.
"""
import hashlib
import logging
import re
from typing import List, Dict, Any, Optional, Tuple

from journey_refiner.domain.models.error_analysis import (
    ErrorAnalysis, ErrorCategory, ErrorLocation, ErrorSeverity, RawFailure
)
from journey_refiner.domain.models.errors import RefinementConfigError

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 200

CATEGORY_SEVERITY: Dict[ErrorCategory, ErrorSeverity] = {
    ErrorCategory.SYNTAX_ERROR: ErrorSeverity.CRITICAL,
    ErrorCategory.RUNTIME_ERROR: ErrorSeverity.CRITICAL,
    ErrorCategory.TYPE_ERROR: ErrorSeverity.CRITICAL,
    ErrorCategory.SELECTOR_NOT_FOUND: ErrorSeverity.MAJOR,
    ErrorCategory.TIMEOUT: ErrorSeverity.MAJOR,
    ErrorCategory.ASSERTION_FAILED: ErrorSeverity.MAJOR,
    ErrorCategory.NAVIGATION_ERROR: ErrorSeverity.MAJOR,
    ErrorCategory.NETWORK_ERROR: ErrorSeverity.MINOR,
    ErrorCategory.AUTHENTICATION_ERROR: ErrorSeverity.MINOR,
    ErrorCategory.PERMISSION_ERROR: ErrorSeverity.MINOR,
    ErrorCategory.UNKNOWN: ErrorSeverity.MINOR,
}

# Fingerprint normalization, applied in this order
_QUOTED_RE = re.compile(r"\"[^\"]*\"|'[^']*'|`[^`]*`")
_URL_RE = re.compile(r"\b[a-z][a-z0-9+.\-]*://\S+", re.IGNORECASE)
_PATH_RE = re.compile(r"(?:[A-Za-z]:)?(?:[\w.\-@]*[/\\])+[\w.\-@]+")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_WHITESPACE_RE = re.compile(r"\s+")

_LOCATION_PATTERNS = [
    # Stack frame: at fn (/path/file.ts:12:5)
    re.compile(r"at\s+.*?\s+\(([^():\s]+):(\d+):(\d+)\)"),
    re.compile(r"([^:\s()]+\.(?:ts|js|mjs|cjs)):(\d+):(\d+)"),
    re.compile(r"([^:\s()]+\.(?:ts|js|mjs|cjs)):(\d+)"),
]
_STACK_RE = re.compile(r"((?:^[ \t]*at\s+.+$\n?)+)", re.MULTILINE)
_EXPECTED_RE = re.compile(r"^\s*Expected(?:\s+[\w ]+?)?:\s*(.+?)\s*$", re.MULTILINE | re.IGNORECASE)
_RECEIVED_RE = re.compile(r"^\s*Received(?:\s+[\w ]+?)?:\s*(.+?)\s*$", re.MULTILINE | re.IGNORECASE)
_SELECTOR_RE = re.compile(
    r"locator\(\s*['\"]([^'\"]+)['\"]"
    r"|getBy\w+\(\s*['\"]([^'\"]+)['\"]"
    r"|selector\s+['\"]([^'\"]+)['\"]",
    re.IGNORECASE,
)
_OUTPUT_SPLIT_RE = re.compile(r"(?=\b(?:Error|AssertionError|TypeError|TimeoutError|SyntaxError|ReferenceError):)")
_ERROR_BLOCK_START_RE = re.compile(r"^\s*(?:\w*Error):")


def severity_for(category: ErrorCategory) -> ErrorSeverity:
    """Fixed severity lookup; every category has exactly one severity."""
    return CATEGORY_SEVERITY[category]


def normalize_message(message: str) -> str:
    """Strips literal values so failures of the same shape compare equal."""
    text = _QUOTED_RE.sub("<str>", message or "")
    text = _URL_RE.sub("<url>", text)
    text = _PATH_RE.sub("<path>", text)
    text = _NUMBER_RE.sub("<n>", text)
    return _WHITESPACE_RE.sub(" ", text).strip().lower()


def compute_fingerprint(category: ErrorCategory, message: str, location: Optional[ErrorLocation] = None) -> str:
    """
    Stable 12-character fingerprint over category, normalized message and
    the file/line of the failure. The selector is deliberately left out.
    """
    parts = [category.value, normalize_message(message)]
    if location is not None:
        parts.append(location.file or "")
        parts.append(str(location.line) if location.line is not None else "")
    digest = hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
    return digest[:12]


class ErrorClassifier:
    """
    Maps raw runner failures to ErrorAnalysis records.

    Categories are tried in a fixed priority order and the first pattern that
    matches wins, so explicit locator failures beat the generic timeout text
    they usually contain. Classification is pure and never raises.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.patterns = self._compile_patterns()
        logger.debug(f"ErrorClassifier initialized with {len(self.patterns)} category matchers.")

    def _compile_patterns(self) -> List[Dict[str, Any]]:
        """Compiles the ordered category matchers."""
        def compile_all(*sources: str) -> List[re.Pattern]:
            return [re.compile(source, re.IGNORECASE) for source in sources]

        builtin = [
            {
                "category": ErrorCategory.SELECTOR_NOT_FOUND,
                "patterns": compile_all(
                    r"locator\..*: Timeout \d+ms exceeded",
                    r"waiting for (locator|selector)",
                    r"No element matches selector",
                    r"Element is not attached to the DOM",
                    r"Element is outside of the viewport",
                    r"page\.\$\(.*\) resolved to (null|undefined)",
                    r"getBy(Role|TestId|Text|Label).*resolved to \d+ element",
                    r"locator resolved to \d+ elements",
                    r"strict mode violation",
                    r"\b(selector|element|locator)\b.*\bnot found\b",
                ),
                "extract_selector": True,
            },
            {
                "category": ErrorCategory.TIMEOUT,
                "patterns": compile_all(
                    r"Timeout \d+ms exceeded",
                    r"page\.waitFor.*exceeded",
                    r"Test timeout of \d+ms exceeded",
                    r"Navigation timeout of \d+ms exceeded",
                    r"exceeded .*timeout",
                    r"TimeoutError:",
                ),
                "extract_selector": True,
            },
            {
                "category": ErrorCategory.ASSERTION_FAILED,
                "patterns": compile_all(
                    r"expect\(.*\)\.(to|not)",
                    r"Expected.*to (be|have|contain|match|equal)",
                    r"AssertionError",
                    r"Received.*Expected",
                    r"Expected[\w ]*:[\s\S]*Received",
                    r"toBeVisible.*but.*hidden",
                    r"toHaveText.*but.*received",
                    r"toHaveValue.*but.*received",
                    r"toBeChecked.*but.*unchecked",
                ),
                "extract_values": True,
            },
            {
                "category": ErrorCategory.NAVIGATION_ERROR,
                "patterns": compile_all(
                    r"net::ERR_",
                    r"Navigation failed",
                    r"page\.goto.*failed",
                    r"Frame was detached",
                    r"Target page.*closed",
                    r"browser has disconnected",
                    r"Protocol error.*Target closed",
                ),
            },
            {
                "category": ErrorCategory.NETWORK_ERROR,
                "patterns": compile_all(
                    r"ECONNREFUSED",
                    r"ENOTFOUND",
                    r"ETIMEDOUT",
                    r"ECONNRESET",
                    r"fetch failed",
                    r"Request failed",
                    r"Status code: [45]\d{2}",
                ),
            },
            {
                "category": ErrorCategory.AUTHENTICATION_ERROR,
                "patterns": compile_all(
                    r"401 Unauthorized",
                    r"Authentication failed",
                    r"Login failed",
                    r"Invalid credentials",
                    r"Session expired",
                    r"Token expired",
                ),
            },
            {
                "category": ErrorCategory.PERMISSION_ERROR,
                "patterns": compile_all(
                    r"403 Forbidden",
                    r"Permission denied",
                    r"Access denied",
                    r"not authorized",
                    r"insufficient permissions",
                ),
            },
            {
                "category": ErrorCategory.TYPE_ERROR,
                "patterns": compile_all(
                    r"TypeError:",
                    r"Cannot read propert",
                    r"is not a function",
                    r"is not defined",
                    r"undefined is not",
                    r"null is not",
                ),
            },
            {
                "category": ErrorCategory.SYNTAX_ERROR,
                "patterns": compile_all(
                    r"SyntaxError:",
                    r"Unexpected token",
                    r"Unexpected identifier",
                    r"Invalid or unexpected token",
                ),
            },
            {
                "category": ErrorCategory.RUNTIME_ERROR,
                "patterns": compile_all(
                    r"ReferenceError:",
                    r"RangeError:",
                    r"\bError:",
                ),
            },
        ]
        return self._configured_patterns(compile_all) + builtin

    def _configured_patterns(self, compile_all) -> List[Dict[str, Any]]:
        """
        Project-specific matchers from classifier.extra_patterns, a mapping of
        category name to regex list. They are tried before the built-in ones.
        """
        extra = self.config.get('classifier', {}).get('extra_patterns') or {}
        matchers = []
        for name, sources in extra.items():
            try:
                category = ErrorCategory(str(name).upper())
                patterns = compile_all(*sources)
            except (ValueError, re.error) as e:
                raise RefinementConfigError(f"Invalid classifier pattern for '{name}': {e}") from e
            matchers.append({
                "category": category,
                "patterns": patterns,
                "extract_selector": category in (ErrorCategory.SELECTOR_NOT_FOUND, ErrorCategory.TIMEOUT),
                "extract_values": category == ErrorCategory.ASSERTION_FAILED,
            })
        return matchers

    # --- Public API ---

    def classify(self, raw: Any) -> ErrorAnalysis:
        """
        Classifies one runner failure.

        Args:
            raw: A RawFailure. Plain strings and dicts with message/stack keys
                 are accepted too; anything else classifies as UNKNOWN.

        Returns:
            The ErrorAnalysis for the failure.
        """
        try:
            message, stack, location, test_name = self._coerce(raw)
            return self._classify_text(message, stack, location, test_name)
        except Exception as e:
            # Classification must never take the loop down
            logger.warning(f"Could not classify failure {raw!r:.200}: {e}", exc_info=True)
            return self._build(ErrorCategory.UNKNOWN, "", "", None)

    def classify_many(self, raws: Optional[List[Any]]) -> List[ErrorAnalysis]:
        """Classifies every failure, preserving order."""
        return [self.classify(raw) for raw in (raws or [])]

    def parse_output(self, output: str, test_file: Optional[str] = None) -> List[ErrorAnalysis]:
        """
        Splits free-form runner output into error blocks and classifies each.

        Blocks with the same fingerprint are reported once.

        Args:
            output: Raw stdout/stderr text.
            test_file: Used as location file when a block names none.

        Returns:
            Deduplicated analyses in order of appearance.
        """
        if not isinstance(output, str) or not output.strip():
            return []

        blocks = [b.strip() for b in _OUTPUT_SPLIT_RE.split(output)]
        error_blocks = [b for b in blocks if b and _ERROR_BLOCK_START_RE.match(b)]
        if not error_blocks:
            error_blocks = [output.strip()]

        seen = set()
        analyses = []
        for block in error_blocks:
            location = None
            if test_file and self._find_location(block) is None:
                location = ErrorLocation(file=test_file)
            analysis = self.classify(RawFailure(message=block, location=location))
            if analysis.fingerprint in seen:
                continue
            seen.add(analysis.fingerprint)
            analyses.append(analysis)
        logger.debug(f"Parsed {len(analyses)} distinct error(s) from runner output.")
        return analyses

    def from_exception(self, exc: BaseException, context: str = "Test runner") -> ErrorAnalysis:
        """Critical RUNTIME_ERROR describing a collaborator that raised instead of reporting."""
        text = f"{context} failed: {type(exc).__name__}: {exc}"
        return self._build(ErrorCategory.RUNTIME_ERROR, self._first_line(text), text, None)

    def unreported_failure(self, output: str = "") -> ErrorAnalysis:
        """UNKNOWN error for a run that failed without reporting any failure."""
        message = "Test run failed without reporting an error"
        return self._build(ErrorCategory.UNKNOWN, message, output or message, None)

    @staticmethod
    def is_timing_related(analysis: ErrorAnalysis) -> bool:
        return analysis.category == ErrorCategory.TIMEOUT or (
            analysis.category == ErrorCategory.SELECTOR_NOT_FOUND and "timeout" in analysis.message.lower()
        )

    @staticmethod
    def is_environmental(analysis: ErrorAnalysis) -> bool:
        return analysis.category in (
            ErrorCategory.NETWORK_ERROR,
            ErrorCategory.AUTHENTICATION_ERROR,
            ErrorCategory.PERMISSION_ERROR,
        )

    # --- Internals ---

    def _coerce(self, raw: Any) -> Tuple[str, str, Optional[ErrorLocation], Optional[str]]:
        if isinstance(raw, RawFailure):
            message, stack, location, test_name = raw.message, raw.stack, raw.location, raw.test_name
        elif isinstance(raw, str):
            message, stack, location, test_name = raw, None, None, None
        elif isinstance(raw, dict):
            message, stack, test_name = raw.get("message"), raw.get("stack"), raw.get("test_name")
            location = raw.get("location") if isinstance(raw.get("location"), ErrorLocation) else None
        else:
            message, stack, location, test_name = None, None, None, None

        message = message if isinstance(message, str) else ""
        stack = stack if isinstance(stack, str) else ""
        location = location if isinstance(location, ErrorLocation) else None
        test_name = test_name if isinstance(test_name, str) else None
        return message, stack, location, test_name

    def _classify_text(self, message: str, stack: str, location: Optional[ErrorLocation],
                       test_name: Optional[str]) -> ErrorAnalysis:
        text = f"{message}\n{stack}" if stack else message
        if not text.strip():
            return self._build(ErrorCategory.UNKNOWN, "", text, location)

        matched = self._match_category(text)
        category = matched["category"] if matched else ErrorCategory.UNKNOWN

        selector = None
        if matched and matched.get("extract_selector"):
            selector = self._extract_selector(text)

        expected_value = actual_value = None
        if matched and matched.get("extract_values"):
            expected_match = _EXPECTED_RE.search(text)
            received_match = _RECEIVED_RE.search(text)
            expected_value = expected_match.group(1) if expected_match else None
            actual_value = received_match.group(1) if received_match else None

        stack_match = _STACK_RE.search(text)
        stack_trace = stack.strip() if stack.strip() else (stack_match.group(1).strip() if stack_match else None)

        resolved = location or self._find_location(text)
        if resolved is not None and test_name and not resolved.test_name:
            resolved = ErrorLocation(resolved.file, resolved.line, resolved.column, test_name)
        elif resolved is None and test_name:
            resolved = ErrorLocation(test_name=test_name)

        return self._build(
            category,
            self._first_line(message or text),
            text,
            resolved,
            selector=selector,
            expected_value=expected_value,
            actual_value=actual_value,
            stack_trace=stack_trace,
        )

    def _match_category(self, text: str) -> Optional[Dict[str, Any]]:
        for pattern_dict in self.patterns:
            for pattern in pattern_dict["patterns"]:
                if pattern.search(text):
                    return pattern_dict
        return None

    @staticmethod
    def _extract_selector(text: str) -> Optional[str]:
        match = _SELECTOR_RE.search(text)
        if not match:
            return None
        return next((g for g in match.groups() if g), None)

    @staticmethod
    def _find_location(text: str) -> Optional[ErrorLocation]:
        for pattern in _LOCATION_PATTERNS:
            match = pattern.search(text)
            if match:
                groups = match.groups()
                column = int(groups[2]) if len(groups) > 2 and groups[2] else None
                return ErrorLocation(file=groups[0], line=int(groups[1]), column=column)
        return None

    @staticmethod
    def _first_line(text: str) -> str:
        first_line = next((line.strip() for line in text.splitlines() if line.strip()), "")
        if len(first_line) > MAX_MESSAGE_LENGTH:
            return first_line[:MAX_MESSAGE_LENGTH] + "..."
        return first_line

    @staticmethod
    def _build(category: ErrorCategory, message: str, original: str, location: Optional[ErrorLocation],
               **extras: Any) -> ErrorAnalysis:
        return ErrorAnalysis(
            category=category,
            severity=severity_for(category),
            message=message,
            original_error=original,
            fingerprint=compute_fingerprint(category, message, location),
            location=location,
            **extras,
        )
