"""
Fixer registry and the policy that rejects forbidden fixes.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from journey_refiner.application.services.fixers.assertion_fixer import AssertionFixer
from journey_refiner.application.services.fixers.data_isolation_fixer import DataIsolationFixer
from journey_refiner.application.services.fixers.llm_fixer import LLMFixer
from journey_refiner.application.services.fixers.navigation_fixer import NavigationFixer
from journey_refiner.application.services.fixers.selector_fixer import SelectorFixer
from journey_refiner.application.services.fixers.timing_fixer import TimingFixer
from journey_refiner.domain.models.errors import RefinementConfigError
from journey_refiner.domain.models.refinement import CodeFix, FixType
from journey_refiner.domain.ports.fixer import FixerPort
from journey_refiner.domain.ports.llm_service import LLMServicePort

logger = logging.getLogger(__name__)

# Fixers that may be named in fixer_order without being registered
OPTIONAL_FIXERS = {"llm"}

_SLEEP_RE = re.compile(r"waitForTimeout\s*\(|\bsetTimeout\s*\(|\bsleep\s*\(|\bdelay\s*\(")
_FORCE_RE = re.compile(r"\bforce\s*:\s*true\b")
_EXPECT_RE = re.compile(r"\bexpect(?:\.soft)?\s*\(")
_SKIP_RE = re.compile(r"\btest\.(?:skip|fixme)\s*\(|\btest\.fail\s*\(")
_WEAK_MATCHER_RE = re.compile(r"\bexpect\.soft\s*\(|\.toBeTruthy\s*\(|\.toBeDefined\s*\(|\.toBeGreaterThanOrEqual\s*\(\s*0\s*\)")
_AUTH_BYPASS_RE = re.compile(
    r"(?:bypass|skip|disable)[-_ ]?(?:auth|login)|page\.route\s*\([^)]*(?:login|auth)",
    re.IGNORECASE,
)


def _grew(pattern: re.Pattern, before: str, after: str) -> bool:
    return len(pattern.findall(after)) > len(pattern.findall(before))


def find_forbidden_type(fix: CodeFix) -> Optional[FixType]:
    """
    Forbidden kind of change a fix represents, judged by its declared type
    and by what it actually does to the code. None when the fix is allowed.
    """
    if fix.type.is_forbidden:
        return fix.type
    before, after = fix.original_code or "", fix.fixed_code or ""
    if _grew(_SLEEP_RE, before, after):
        return FixType.ADD_SLEEP
    if len(_EXPECT_RE.findall(after)) < len(_EXPECT_RE.findall(before)) or _grew(_SKIP_RE, before, after):
        return FixType.REMOVE_ASSERTION
    if _grew(_WEAK_MATCHER_RE, before, after):
        return FixType.WEAKEN_ASSERTION
    if _grew(_FORCE_RE, before, after):
        return FixType.FORCE_INTERACTION
    if _grew(_AUTH_BYPASS_RE, before, after):
        return FixType.BYPASS_AUTH
    return None


class FixerRegistry:
    """Fixers by name, handed out in the configured priority order."""

    def __init__(self, fixers: Optional[List[FixerPort]] = None):
        self._fixers: Dict[str, FixerPort] = {}
        for fixer in fixers or []:
            self.register(fixer)

    def register(self, fixer: FixerPort) -> None:
        if fixer.name in self._fixers:
            logger.warning(f"Replacing registered fixer '{fixer.name}'")
        self._fixers[fixer.name] = fixer

    def get(self, name: str) -> Optional[FixerPort]:
        return self._fixers.get(name)

    @property
    def names(self) -> List[str]:
        return list(self._fixers)

    def ordered(self, order: List[str]) -> List[FixerPort]:
        """
        Registered fixers in the given priority order.

        Raises:
            RefinementConfigError: If the order names a fixer that is neither
                                   registered nor optional.
        """
        unknown = [name for name in order if name not in self._fixers and name not in OPTIONAL_FIXERS]
        if unknown:
            raise RefinementConfigError(
                f"Unknown fixer(s) in fixer_order: {', '.join(unknown)}. Registered: {', '.join(self.names)}"
            )
        skipped = [name for name in order if name not in self._fixers]
        if skipped:
            logger.debug(f"Optional fixer(s) not configured, skipping: {', '.join(skipped)}")
        return [self._fixers[name] for name in order if name in self._fixers]

    @classmethod
    def build_default(cls, config: Optional[Dict[str, Any]] = None,
                      llm_service: Optional[LLMServicePort] = None) -> "FixerRegistry":
        """Registry with the built-in fixers, plus the LLM fixer when a service is given."""
        fixers: List[FixerPort] = [
            TimingFixer(),
            SelectorFixer(),
            NavigationFixer(),
            AssertionFixer(),
            DataIsolationFixer(),
        ]
        if llm_service is not None:
            fixers.append(LLMFixer(llm_service, config))
        registry = cls(fixers)
        logger.info(f"Fixer registry initialized with: {', '.join(registry.names)}")
        return registry
