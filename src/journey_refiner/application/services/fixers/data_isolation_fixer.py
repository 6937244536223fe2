"""
Data isolation fixer: makes hard-coded test data unique per run.
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

DATA_ISOLATION_CONFIDENCE = 0.7
RUN_ID_DECLARATION = "const runId = `${Date.now()}-${Math.random().toString(36).slice(2, 8)}`;"

_COLLISION_RE = re.compile(
    r"already exists|duplicate|unique constraint|already (?:registered|taken|in use)|\b409\b|conflict",
    re.IGNORECASE,
)
_ISOLATION_MARKERS_RE = re.compile(
    r"\brunId\b|testInfo\.testId|Date\.now\(\)|Math\.random\(\)|crypto\.randomUUID|\buuid\b"
)
_TEST_HEADER_RE = re.compile(r"^(\s*)test(?:\.\w+)?\s*\(.*async\s*\(\s*\{[^}]*\}[^)]*\)\s*=>\s*\{\s*$")
_FILL_LITERAL_RE = re.compile(r"(\.fill\s*\(\s*)(['\"])([^'\"]+)\2")
_EMAIL_RE = re.compile(r"^([\w.+-]+)@([\w-]+(?:\.[\w-]+)+)$")
_TEST_NAME_RE = re.compile(r"^(?:Test|E2E|QA)\b[\w ]*$")


class DataIsolationFixer(BaseFixer):
    """
    Handles collisions with data left behind by earlier runs, by declaring
    a per-run id and weaving it into emails and test names typed into fields.
    """

    fixer_name = "data_isolation"

    def can_apply(self, analysis: ErrorAnalysis) -> bool:
        if analysis.category not in (ErrorCategory.ASSERTION_FAILED, ErrorCategory.RUNTIME_ERROR,
                                     ErrorCategory.UNKNOWN):
            return False
        return bool(_COLLISION_RE.search(analysis.original_error or analysis.message))

    def apply(self, code: str, analysis: ErrorAnalysis, context: Optional[FixContext] = None) -> CodeFix:
        if _ISOLATION_MARKERS_RE.search(code):
            return self._no_fix(code, "Test data is already unique per run")

        lines = code_patterns.split_lines(code)
        header_index = next((i for i, line in enumerate(lines) if _TEST_HEADER_RE.match(line)), None)
        if header_index is None:
            return self._no_fix(code, "No async test body to declare a run id in")

        changed = []
        for index, line in enumerate(lines):
            new_line = _FILL_LITERAL_RE.sub(self._namespace_literal, line)
            if new_line != line:
                lines[index] = new_line
                changed.append(index + 1)
        if not changed:
            return self._no_fix(code, "No hard-coded email or test name to make unique")

        indent = _TEST_HEADER_RE.match(lines[header_index]).group(1) + "  "
        lines.insert(header_index + 1, indent + RUN_ID_DECLARATION)
        return self._fix(
            FixType.DATA_ISOLATION,
            f"Made {len(changed)} test data value(s) unique per run",
            code, code_patterns.join_lines(lines), DATA_ISOLATION_CONFIDENCE, analysis,
            [header_index + 2] + [n + 1 for n in changed],
        )

    @staticmethod
    def _namespace_literal(match: re.Match) -> str:
        prefix, value = match.group(1), match.group(3)
        email = _EMAIL_RE.match(value)
        if email:
            return f"{prefix}`{email.group(1)}+${{runId}}@{email.group(2)}`"
        if _TEST_NAME_RE.match(value):
            return f"{prefix}`{value} ${{runId}}`"
        return match.group(0)
