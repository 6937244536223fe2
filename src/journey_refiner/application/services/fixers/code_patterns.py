"""
Shared text patterns and line helpers for Playwright test fixers.

All helpers work on plain source text, line by line; none of them parses
TypeScript.
"""
import re
from typing import List, Optional, Tuple

from journey_refiner.domain.models.error_analysis import ErrorAnalysis

ACTION_METHODS = (
    "click", "dblclick", "fill", "type", "check", "uncheck", "selectOption", "hover", "focus",
    "press", "dragTo", "setInputFiles", "tap", "goto", "reload", "goBack", "goForward",
    "waitForURL", "waitForLoadState", "waitForSelector",
)
WEB_FIRST_MATCHERS = (
    "toBeVisible", "toBeHidden", "toBeEnabled", "toBeDisabled", "toBeChecked", "toBeEditable",
    "toBeFocused", "toHaveText", "toContainText", "toHaveValue", "toHaveURL", "toHaveTitle",
    "toHaveCount", "toHaveAttribute", "toHaveClass",
)
# Calls that accept a { timeout } option
TIMEOUT_ELIGIBLE_METHODS = (
    "click", "dblclick", "fill", "type", "press", "hover", "focus", "check", "uncheck",
    "selectOption", "waitForURL", "waitForSelector",
    "toBeVisible", "toBeHidden", "toBeEnabled", "toHaveText", "toContainText", "toHaveValue",
    "toHaveURL", "toHaveCount",
)

_NOT_A_BARE_STATEMENT_RE = re.compile(
    r"^\s*(?:(?:await|return|const|let|var|if|else|for|while|switch|function|class|import|export|"
    r"async|yield|new|throw|test|describe)\b|//|/\*|\*)"
)
_ACTION_STATEMENT_RE = re.compile(
    r"^(?P<indent>\s*)(?P<expr>(?:page|[A-Za-z_$][\w$]*)\b[^;]*?\.(?:" + "|".join(ACTION_METHODS) + r")\s*\()"
)
_EXPECT_STATEMENT_RE = re.compile(
    r"^(?P<indent>\s*)(?P<expr>expect\s*\(.*\)\s*\.(?:not\s*\.\s*)?(?:" + "|".join(WEB_FIRST_MATCHERS) + r")\s*\()"
)
TIMEOUT_OPTION_RE = re.compile(r"timeout\s*:\s*(\d+)")
MESSAGE_TIMEOUT_RE = re.compile(r"(\d+)ms")

# const v = await loc.getter(); expect(v).matcher(value);
CAPTURE_THEN_COMPARE_RE = re.compile(
    r"^(?P<indent>[ \t]*)(?:const|let|var)\s+(?P<var>[A-Za-z_$][\w$]*)\s*=\s*await\s+(?P<loc>[^;\n]+?)\."
    r"(?P<getter>textContent|innerText|inputValue|isVisible|isHidden|isChecked)\(\s*\)\s*;?[ \t]*\n"
    r"[ \t]*expect\(\s*(?P=var)\s*\)\.(?P<matcher>toBe|toEqual|toContain)\(\s*(?P<value>[^)\n]*?)\s*\)\s*;?",
    re.MULTILINE,
)
# expect(await loc.getter()).matcher(value);
INLINE_AWAITED_COMPARE_RE = re.compile(
    r"^(?P<indent>[ \t]*)(?:await\s+)?expect\(\s*await\s+(?P<loc>[^;\n]+?)\."
    r"(?P<getter>textContent|innerText|inputValue|isVisible|isHidden|isChecked|count)\(\s*\)\s*\)\."
    r"(?P<matcher>toBe|toEqual|toContain)\(\s*(?P<value>[^)\n]*?)\s*\)\s*;?",
    re.MULTILINE,
)


def split_lines(code: str) -> List[str]:
    return code.split("\n")


def join_lines(lines: List[str]) -> str:
    return "\n".join(lines)


def target_line_index(code: str, analysis: ErrorAnalysis) -> Optional[int]:
    """Zero-based index of the failing line, if the analysis carries a usable one."""
    if analysis.location is None or analysis.location.line is None:
        return None
    index = analysis.location.line - 1
    if 0 <= index < len(split_lines(code)):
        return index
    return None


def add_missing_awaits(code: str, include_actions: bool = True, include_expects: bool = True) -> Tuple[str, List[int]]:
    """
    Prefixes 'await' to action calls and web-first expect() calls written as
    bare statements.

    Returns:
        The new code and the 1-based numbers of the changed lines.
    """
    lines = split_lines(code)
    changed = []
    for index, line in enumerate(lines):
        if not line.strip() or _NOT_A_BARE_STATEMENT_RE.match(line):
            continue
        match = None
        if include_expects:
            match = _EXPECT_STATEMENT_RE.match(line)
        if match is None and include_actions and not line.lstrip().startswith("expect"):
            match = _ACTION_STATEMENT_RE.match(line)
        if match is None:
            continue
        indent = match.group("indent")
        lines[index] = f"{indent}await {line[len(indent):]}"
        changed.append(index + 1)
    return join_lines(lines), changed


def web_first_replacement(loc: str, getter: str, matcher: str, value: str) -> Optional[str]:
    """
    Polling assertion equivalent to comparing a captured value, or None when
    the combination has no exact equivalent.
    """
    value = value.strip()
    if getter in ("textContent", "innerText"):
        if matcher in ("toBe", "toEqual") and value:
            return f"await expect({loc}).toHaveText({value});"
        if matcher == "toContain" and value:
            return f"await expect({loc}).toContainText({value});"
        return None
    if getter == "inputValue" and matcher in ("toBe", "toEqual") and value:
        return f"await expect({loc}).toHaveValue({value});"
    if getter == "count" and matcher in ("toBe", "toEqual") and value:
        return f"await expect({loc}).toHaveCount({value});"
    if matcher not in ("toBe", "toEqual") or value not in ("true", "false"):
        return None
    positive = value == "true"
    if getter == "isVisible":
        return f"await expect({loc}).{'toBeVisible' if positive else 'toBeHidden'}();"
    if getter == "isHidden":
        return f"await expect({loc}).{'toBeHidden' if positive else 'toBeVisible'}();"
    if getter == "isChecked":
        return f"await expect({loc}).{'toBeChecked' if positive else 'not.toBeChecked'}();"
    return None


def convert_capture_then_compare(code: str) -> Tuple[str, List[int]]:
    """
    Rewrites 'const v = await loc.textContent(); expect(v).toBe(x)' style
    pairs into single web-first assertions. Pairs whose variable is used
    again later are left alone.

    Returns:
        The new code and the 1-based line numbers of the converted pairs.
    """
    result = []
    changed = []
    position = 0
    for match in CAPTURE_THEN_COMPARE_RE.finditer(code):
        replacement = web_first_replacement(match.group("loc"), match.group("getter"),
                                            match.group("matcher"), match.group("value"))
        if replacement is None:
            continue
        rest = code[match.end():]
        if re.search(r"\b" + re.escape(match.group("var")) + r"\b", rest):
            continue
        result.append(code[position:match.start()])
        result.append(match.group("indent") + replacement)
        changed.append(code.count("\n", 0, match.start()) + 1)
        position = match.end()
    if not changed:
        return code, []
    result.append(code[position:])
    return "".join(result), changed


def convert_inline_awaited_compare(code: str) -> Tuple[str, List[int]]:
    """Rewrites 'expect(await loc.count()).toBe(n)' style checks into web-first assertions."""
    changed = []

    def _replace(match):
        replacement = web_first_replacement(match.group("loc"), match.group("getter"),
                                            match.group("matcher"), match.group("value"))
        if replacement is None:
            return match.group(0)
        changed.append(code.count("\n", 0, match.start()) + 1)
        return match.group("indent") + replacement

    new_code = INLINE_AWAITED_COMPARE_RE.sub(_replace, code)
    return new_code, changed


def find_call_span(line: str, methods: Tuple[str, ...]) -> Optional[Tuple[str, int, int]]:
    """
    Locates the last call to one of the methods on the line.

    Returns:
        (method, index after the opening parenthesis, index of the closing
        parenthesis), or None when no such call with balanced parentheses exists.
    """
    pattern = re.compile(r"\.(" + "|".join(methods) + r")\s*\(")
    matches = list(pattern.finditer(line))
    for match in reversed(matches):
        close = _matching_paren(line, match.end())
        if close is not None:
            return match.group(1), match.end(), close
    return None


def _matching_paren(text: str, start: int) -> Optional[int]:
    depth = 1
    quote = None
    index = start
    while index < len(text):
        char = text[index]
        if quote:
            if char == "\\":
                index += 2
                continue
            if char == quote:
                quote = None
        elif char in ("'", '"', "`"):
            quote = char
        elif char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
            if depth == 0:
                return index
        index += 1
    return None


def with_option(args: str, key: str, value: str) -> str:
    """
    Adds 'key: value' to a call's argument list, merging into a trailing
    options object when there is one.
    """
    stripped = args.strip()
    if not stripped:
        return f"{{ {key}: {value} }}"
    if stripped.endswith("}"):
        open_index = _options_object_start(stripped)
        if open_index is not None:
            body = stripped[open_index + 1:-1].strip().rstrip(",")
            merged = f"{{ {body}, {key}: {value} }}" if body else f"{{ {key}: {value} }}"
            return stripped[:open_index] + merged
    return f"{stripped}, {{ {key}: {value} }}"


def _options_object_start(args: str) -> Optional[int]:
    depth = 0
    for index in range(len(args) - 1, -1, -1):
        char = args[index]
        if char == "}":
            depth += 1
        elif char == "{":
            depth -= 1
            if depth == 0:
                return index
    return None


def lines_mentioning(code: str, needle: Optional[str]) -> List[int]:
    """Zero-based indexes of lines containing the needle."""
    if not needle:
        return []
    return [i for i, line in enumerate(split_lines(code)) if needle in line]
