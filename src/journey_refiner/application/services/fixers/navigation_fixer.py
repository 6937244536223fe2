"""
Navigation fixer: awaits page.goto and waits for the expected URL or load state.
"""
import logging
import re
from typing import Optional

from journey_refiner.application.services.fixers import code_patterns
from journey_refiner.application.services.fixers.base_fixer import BaseFixer
from journey_refiner.domain.models.error_analysis import ErrorAnalysis, ErrorCategory
from journey_refiner.domain.models.refinement import CodeFix, FixType
from journey_refiner.domain.ports.fixer import FixContext

logger = logging.getLogger(__name__)

GOTO_AWAIT_CONFIDENCE = 0.9
URL_WAIT_CONFIDENCE = 0.7
LOAD_STATE_CONFIDENCE = 0.5

_GOTO_WITHOUT_AWAIT_RE = re.compile(r"^(\s*)(page\.goto\s*\()")
_GOTO_URL_RE = re.compile(r"page\.goto\s*\(\s*(['\"`])([^'\"`]+)\1")
_EXISTING_WAIT_RE = re.compile(
    r"waitForURL\s*\(|expect\s*\(\s*page\s*\)\s*\.toHaveURL\s*\(|waitForNavigation\s*\(|waitForLoadState\s*\("
)
_ERROR_URL_PATTERNS = [
    re.compile(r"Expected URL to match ['\"]([^'\"]+)['\"]", re.IGNORECASE),
    re.compile(r"expected ['\"]([^'\"]+)['\"] to match", re.IGNORECASE),
    re.compile(r"waiting for (?:navigation to )?URL ['\"]([^'\"]+)['\"]", re.IGNORECASE),
    re.compile(r"Expected(?: pattern| string)?:\s*['\"]?(https?://[^\s'\"]+|/[^\s'\"]*)", re.IGNORECASE),
]
_NAVIGATION_HINT_RE = re.compile(r"navigat|waitForURL|toHaveURL|page\.goto|\bURL\b", re.IGNORECASE)


class NavigationFixer(BaseFixer):
    """Handles failed or racing navigations."""

    fixer_name = "navigation"

    def can_apply(self, analysis: ErrorAnalysis) -> bool:
        if analysis.category == ErrorCategory.NAVIGATION_ERROR:
            return True
        if analysis.category in (ErrorCategory.TIMEOUT, ErrorCategory.ASSERTION_FAILED):
            return bool(_NAVIGATION_HINT_RE.search(analysis.original_error or analysis.message))
        return False

    def apply(self, code: str, analysis: ErrorAnalysis, context: Optional[FixContext] = None) -> CodeFix:
        lines = code_patterns.split_lines(code)

        changed = []
        for index, line in enumerate(lines):
            match = _GOTO_WITHOUT_AWAIT_RE.match(line)
            if match:
                lines[index] = f"{match.group(1)}await {line[len(match.group(1)):]}"
                changed.append(index + 1)
        if changed:
            return self._fix(
                FixType.MISSING_AWAIT,
                f"Added await to {len(changed)} page.goto call(s)",
                code, code_patterns.join_lines(lines), GOTO_AWAIT_CONFIDENCE, analysis, changed,
            )

        anchor = self._anchor_line(lines, analysis)
        if anchor is None:
            return self._no_fix(code, "No navigation step to anchor a wait to")
        following = lines[anchor + 1] if anchor + 1 < len(lines) else ""
        if _EXISTING_WAIT_RE.search(lines[anchor]) or _EXISTING_WAIT_RE.search(following):
            return self._no_fix(code, "Navigation step is already followed by a wait")

        indent = re.match(r"\s*", lines[anchor]).group(0)
        url = self.expected_url(analysis, code)
        if url:
            lines.insert(anchor + 1, f"{indent}await expect(page).toHaveURL('{url}');")
            return self._fix(
                FixType.NAVIGATION_WAIT,
                f"Wait for URL '{url}' after navigation",
                code, code_patterns.join_lines(lines), URL_WAIT_CONFIDENCE, analysis, [anchor + 2],
            )

        lines.insert(anchor + 1, f"{indent}await page.waitForLoadState('networkidle');")
        return self._fix(
            FixType.NAVIGATION_WAIT,
            "Wait for the page to settle after navigation",
            code, code_patterns.join_lines(lines), LOAD_STATE_CONFIDENCE, analysis, [anchor + 2],
        )

    @staticmethod
    def expected_url(analysis: ErrorAnalysis, code: str) -> Optional[str]:
        """URL the test expects to land on, from the error text or the last page.goto."""
        text = analysis.original_error or analysis.message
        for pattern in _ERROR_URL_PATTERNS:
            match = pattern.search(text)
            if match:
                return match.group(1)
        gotos = _GOTO_URL_RE.findall(code)
        if gotos:
            return gotos[-1][1]
        return None

    @staticmethod
    def _anchor_line(lines, analysis: ErrorAnalysis) -> Optional[int]:
        if analysis.location and analysis.location.line and 0 < analysis.location.line <= len(lines):
            index = analysis.location.line - 1
            if lines[index].strip():
                return index
        goto_lines = [i for i, line in enumerate(lines) if "page.goto" in line]
        return goto_lines[-1] if goto_lines else None
