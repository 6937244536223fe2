"""
Selector fixer: replaces brittle CSS locators with role or text locators and
disambiguates locators that match several elements.
"""
import logging
import re
from typing import Dict, List, Optional, Tuple

from journey_refiner.application.services.fixers import code_patterns
from journey_refiner.application.services.fixers.base_fixer import BaseFixer
from journey_refiner.domain.models.error_analysis import ErrorAnalysis, ErrorCategory
from journey_refiner.domain.models.refinement import CodeFix, FixType
from journey_refiner.domain.ports.fixer import FixContext

logger = logging.getLogger(__name__)

EXACT_MATCH_CONFIDENCE = 0.8
ROLE_WITH_NAME_CONFIDENCE = 0.6
ROLE_ONLY_CONFIDENCE = 0.4
TEXT_CONFIDENCE = 0.3

UI_PATTERN_TO_ROLE: Dict[str, str] = {
    "button": "button", "btn": "button", "submit": "button",
    "input": "textbox", "textbox": "textbox", "textfield": "textbox",
    "checkbox": "checkbox",
    "radio": "radio",
    "select": "combobox", "dropdown": "combobox", "combobox": "combobox",
    "link": "link",
    "heading": "heading", "h1": "heading", "h2": "heading", "h3": "heading", "title": "heading",
    "dialog": "dialog", "modal": "dialog",
    "alert": "alert",
    "tab": "tab",
    "menu": "menu",
    "menuitem": "menuitem",
    "table": "table",
    "row": "row",
    "cell": "cell",
    "grid": "grid",
    "list": "list",
    "listitem": "listitem",
    "img": "img", "image": "img",
    "nav": "navigation", "navigation": "navigation",
    "search": "search",
    "main": "main",
    "banner": "banner",
    "footer": "contentinfo",
}

_CSS_LOCATOR_RE = re.compile(r"page\.locator\s*\(\s*(['\"`])(?P<css>(?:(?!\1).)+)\1\s*\)")
_CSS_SHAPE_RE = re.compile(r"^(?:[.#\[]|[a-z][\w-]*[.#\[])")
_ACCESSIBLE_NAME_RE = re.compile(r"\[(?:aria-label|title|alt|name|placeholder)=['\"]?([^'\"\]]+)['\"]?\]")
_HAS_TEXT_RE = re.compile(r":(?:has-text|text-is)\(\s*['\"]([^'\"]+)['\"]\s*\)")
_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9]+")
_AMBIGUOUS_RE = re.compile(r"resolved to \d+ elements|strict mode violation", re.IGNORECASE)
_ROLE_WITH_NAME_RE = re.compile(r"(getByRole\(\s*['\"][\w-]+['\"]\s*,\s*\{)([^}]*\bname\s*:[^}]*)(\})")
_TEXT_LIKE_RE = re.compile(r"(getBy(?:Text|Label|Placeholder)\(\s*)(['\"][^'\"]+['\"])(\s*\))")


class SelectorFixer(BaseFixer):
    """
    Handles SELECTOR_NOT_FOUND failures.

    Ambiguous matches get 'exact: true'. Otherwise the first CSS locator that
    fits the failing selector is swapped for a user-facing locator inferred
    from its class/id/attribute names.
    """

    fixer_name = "selector"

    def can_apply(self, analysis: ErrorAnalysis) -> bool:
        return analysis.category == ErrorCategory.SELECTOR_NOT_FOUND

    def apply(self, code: str, analysis: ErrorAnalysis, context: Optional[FixContext] = None) -> CodeFix:
        if _AMBIGUOUS_RE.search(analysis.original_error or analysis.message):
            fix = self._add_exact_match(code, analysis)
            if fix is not None:
                return fix
        return self._replace_css_locator(code, analysis)

    def _add_exact_match(self, code: str, analysis: ErrorAnalysis) -> Optional[CodeFix]:
        lines = code_patterns.split_lines(code)
        for index in self._candidate_lines(code, analysis):
            line = lines[index]
            if "exact" in line:
                continue
            new_line = _ROLE_WITH_NAME_RE.sub(lambda m: f"{m.group(1)}{m.group(2).rstrip().rstrip(',')}, exact: true {m.group(3)}", line, count=1)
            if new_line == line:
                new_line = _TEXT_LIKE_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}, {{ exact: true }}{m.group(3)}", line, count=1)
            if new_line != line:
                lines[index] = new_line
                return self._fix(
                    FixType.SELECTOR_CHANGE,
                    "Made locator match exactly to resolve multiple elements",
                    code, code_patterns.join_lines(lines), EXACT_MATCH_CONFIDENCE, analysis, [index + 1],
                )
        return None

    def _replace_css_locator(self, code: str, analysis: ErrorAnalysis) -> CodeFix:
        lines = code_patterns.split_lines(code)
        ordered = self._candidate_lines(code, analysis) + list(range(len(lines)))
        seen = set()
        for index in ordered:
            if index in seen:
                continue
            seen.add(index)
            line = lines[index]
            for match in _CSS_LOCATOR_RE.finditer(line):
                css = match.group("css")
                if not _CSS_SHAPE_RE.match(css):
                    continue
                if analysis.selector and analysis.selector != css:
                    continue
                replacement, confidence, description = self.suggest_locator(css)
                if replacement is None:
                    continue
                lines[index] = line[:match.start()] + replacement + line[match.end():]
                return self._fix(
                    FixType.LOCATOR_STRATEGY_CHANGED,
                    description,
                    code, code_patterns.join_lines(lines), confidence, analysis, [index + 1],
                    reasoning=f"CSS selector '{css}' depends on markup details.",
                )
        return self._no_fix(code, "No CSS locator with an inferable role or text")

    @staticmethod
    def suggest_locator(css: str) -> Tuple[Optional[str], float, str]:
        """
        Proposes a user-facing locator for a CSS selector.

        Returns:
            (locator expression or None, confidence, description)
        """
        name_match = _ACCESSIBLE_NAME_RE.search(css)
        name = name_match.group(1) if name_match else None

        role = None
        without_attrs = re.sub(r"\[[^\]]*\]", " ", css.lower())
        for token in _TOKEN_SPLIT_RE.split(without_attrs):
            if token in UI_PATTERN_TO_ROLE:
                role = UI_PATTERN_TO_ROLE[token]
                break

        if role and name:
            return (f"page.getByRole('{role}', {{ name: '{_escape(name)}' }})", ROLE_WITH_NAME_CONFIDENCE,
                    f"Replaced CSS selector with role '{role}' named '{name}'")
        if role:
            return f"page.getByRole('{role}')", ROLE_ONLY_CONFIDENCE, f"Replaced CSS selector with role '{role}'"

        text_match = _HAS_TEXT_RE.search(css)
        text = text_match.group(1) if text_match else name
        if text:
            return f"page.getByText('{_escape(text)}')", TEXT_CONFIDENCE, f"Replaced CSS selector with text '{text}'"
        return None, 0.0, ""

    @staticmethod
    def _candidate_lines(code: str, analysis: ErrorAnalysis) -> List[int]:
        candidates = []
        target = code_patterns.target_line_index(code, analysis)
        if target is not None:
            candidates.append(target)
        for index in code_patterns.lines_mentioning(code, analysis.selector):
            if index not in candidates:
                candidates.append(index)
        return candidates


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace("'", "\\'")
