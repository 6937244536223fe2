# src/journey_refiner/application/prompts/refinement_prompt.py
"""
Prompt for asking a model to repair a failing Playwright test.
"""
from typing import List

from journey_refiner.domain.models.error_analysis import ErrorAnalysis
from journey_refiner.domain.models.refinement import CodeFix

ALLOWED_FIX_TYPES = [
    "SELECTOR_CHANGE", "LOCATOR_STRATEGY_CHANGED", "MISSING_AWAIT", "WEB_FIRST_ASSERTION",
    "TIMEOUT_INCREASED", "NAVIGATION_WAIT", "DATA_ISOLATION", "ASSERTION_MODIFIED", "OTHER",
]


def get_refinement_prompt() -> str:
    """
    Returns the prompt template. Placeholders: test_file, code, category,
    severity, message, location, selector, expected, actual, previous_fixes,
    allowed_types.
    """
    return """You are an expert in Playwright end-to-end tests written in TypeScript.
A generated test is failing. Propose minimal, targeted fixes.

## Test File
{test_file}

## Current Test Code (Failing)
```typescript
{code}
```

## Error
- Category: {category}
- Severity: {severity}
- Message: {message}
- Location: {location}
- Selector: {selector}
- Expected: {expected}
- Received: {actual}

## Fixes Already Tried
{previous_fixes}

## Rules
1. Prefer user-facing locators (getByRole, getByLabel, getByText, getByTestId).
2. Prefer web-first assertions (await expect(locator).toBeVisible()) over reading values.
3. NEVER add page.waitForTimeout or any fixed sleep.
4. NEVER remove, skip or weaken an assertion.
5. NEVER use {{ force: true }} to bypass actionability checks.
6. NEVER bypass or stub out authentication.
7. "originalCode" must be an exact substring of the current test code.

## Response Format
Respond with a single JSON object and nothing else:
```json
{{
  "reasoning": "short analysis of the root cause",
  "fixes": [
    {{
      "type": "one of: {allowed_types}",
      "description": "what the fix does",
      "originalCode": "exact code to replace",
      "fixedCode": "replacement code",
      "location": {{"line": 12}},
      "confidence": 0.8,
      "reasoning": "why this addresses the error"
    }}
  ]
}}
```
"""


def build_refinement_prompt(code: str, analysis: ErrorAnalysis, test_file: str,
                            previous_fixes: List[CodeFix]) -> str:
    """Fills the refinement prompt template."""
    location = "unknown"
    if analysis.location and (analysis.location.file or analysis.location.line):
        location = f"{analysis.location.file or test_file}:{analysis.location.line or '?'}"

    if previous_fixes:
        tried = "\n".join(f"- {fix.type.value}: {fix.description}" for fix in previous_fixes)
    else:
        tried = "None"

    return get_refinement_prompt().format(
        test_file=test_file,
        code=code,
        category=analysis.category.value,
        severity=analysis.severity.value,
        message=analysis.message,
        location=location,
        selector=analysis.selector or "n/a",
        expected=analysis.expected_value or "n/a",
        actual=analysis.actual_value or "n/a",
        previous_fixes=tried,
        allowed_types=", ".join(ALLOWED_FIX_TYPES),
    )
