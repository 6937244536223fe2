"""
Utility functions for parsing structured fix proposals from LLM responses.
"""
import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def extract_json_block(response_text: str) -> Optional[str]:
    """
    Extracts the JSON payload from a model response.

    Looks for a ```json fenced block first, then any fenced block, then the
    outermost braces of the raw text.

    Args:
        response_text: The LLM response text

    Returns:
        The JSON text, or None if nothing JSON-like is found
    """
    if not response_text or not isinstance(response_text, str):
        logger.warning("Empty or non-string LLM response")
        return None

    text = response_text.strip()
    for start_tag in ("```json", "```"):
        start_index = text.find(start_tag)
        if start_index == -1:
            continue
        content_start = start_index + len(start_tag)
        end_index = text.find("```", content_start)
        if end_index != -1:
            block = text[content_start:end_index].strip()
            if block.startswith("{"):
                return block

    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        return text[first:last + 1]

    logger.warning("No JSON object found in LLM response")
    return None


def parse_fix_response(response_text: str) -> Dict[str, Any]:
    """
    Parses a fix response into a dict with 'reasoning' and 'fixes'.

    Returns:
        The parsed payload; {'reasoning': '', 'fixes': []} when the response
        cannot be parsed.
    """
    empty = {"reasoning": "", "fixes": []}
    block = extract_json_block(response_text)
    if block is None:
        return empty
    try:
        payload = json.loads(block)
    except json.JSONDecodeError as e:
        logger.warning(f"Could not decode LLM fix response: {e}")
        return empty
    if not isinstance(payload, dict):
        logger.warning("LLM fix response is not a JSON object")
        return empty

    fixes = payload.get("fixes")
    if not isinstance(fixes, list):
        fixes = []
    return {
        "reasoning": str(payload.get("reasoning") or ""),
        "fixes": [f for f in fixes if isinstance(f, dict)],
    }
