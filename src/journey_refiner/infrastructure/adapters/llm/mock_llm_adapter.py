import json
import logging
from typing import Any, Dict, List, Optional

from journey_refiner.domain.ports.llm_service import LLMResponse, LLMServicePort

logger = logging.getLogger(__name__)


class MockLLMAdapter(LLMServicePort):
    """
    A mock LLM adapter for running without API calls.

    Answers with the queued responses in order, then with an empty fix list.
    Responses may be given in config under llm.mock_responses.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, responses: Optional[List[Any]] = None):
        self.config = config or {}
        configured = self.config.get('llm', {}).get('mock_responses', [])
        self.responses = list(responses if responses is not None else configured)
        self.prompts: List[str] = []
        logger.info("MockLLMAdapter initialized.")

    def generate_fix(self, prompt: str) -> LLMResponse:
        self.prompts.append(prompt)
        logger.info(f"--- MockLLMAdapter: Built Prompt (first 500 chars) ---\n{prompt[:500]}...")

        if self.responses:
            payload = self.responses.pop(0)
        else:
            payload = {"reasoning": "Mock adapter has no fix to propose.", "fixes": []}
        text = payload if isinstance(payload, str) else f"```json\n{json.dumps(payload, indent=2)}\n```"

        # Rough token estimate, four characters per token
        return LLMResponse(text=text, prompt_tokens=len(prompt) // 4, completion_tokens=len(text) // 4)
