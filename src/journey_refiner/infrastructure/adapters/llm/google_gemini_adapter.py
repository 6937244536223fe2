import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from journey_refiner.domain.ports.llm_service import LLMResponse, LLMServicePort

logger = logging.getLogger(__name__)


class GoogleGeminiAdapter(LLMServicePort):
    """LLM service implementation using Google Gemini."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        llm_config = config.get('llm', {})
        self.model_name = llm_config.get('model_name', 'gemini-1.5-flash-latest')
        self.temperature = llm_config.get('temperature', 0.2)
        self.max_output_tokens = llm_config.get('max_output_tokens', 4096)
        self.prompt_dump_dir = llm_config.get('prompt_dump_dir')
        api_key = llm_config.get('api_key') or os.environ.get("GOOGLE_API_KEY")

        if not api_key:
            logger.error("Google API Key not found in config or environment variable GOOGLE_API_KEY.")
            raise ValueError("Missing Google API Key for Gemini.")

        try:
            genai.configure(api_key=api_key)
            self.model = genai.GenerativeModel(self.model_name)
            logger.info(f"Google Gemini Adapter initialized with model: {self.model_name}")
        except Exception as e:
            logger.error(f"Failed to configure Google Generative AI: {e}", exc_info=True)
            raise RuntimeError(f"Could not initialize Google Gemini client: {e}") from e

    def generate_fix(self, prompt: str) -> LLMResponse:
        """Sends the refinement prompt to Gemini and returns the raw answer with token usage."""
        logger.info(f"Sending fix request to Gemini model: {self.model_name}")
        logger.debug(f"Prompt (first 500 chars): {prompt[:500]}...")
        self._save_prompt_to_file(prompt)

        generation_config = genai.types.GenerationConfig(
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
        )
        safety_settings = [
            {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
            {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
            {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
            {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
        ]

        try:
            response = self.model.generate_content(
                prompt,
                generation_config=generation_config,
                safety_settings=safety_settings,
            )
        except google_exceptions.GoogleAPIError as e:
            logger.error(f"Google API Error during Gemini request: {e}", exc_info=True)
            raise

        if not response.candidates:
            block_reason = response.prompt_feedback.block_reason if response.prompt_feedback else "Unknown"
            logger.error(f"Gemini request blocked. Reason: {block_reason}")
            raise RuntimeError(f"Gemini request blocked by safety filters: {block_reason}")

        prompt_tokens, completion_tokens = 0, 0
        usage_metadata = getattr(response, 'usage_metadata', None)
        if usage_metadata:
            prompt_tokens = usage_metadata.prompt_token_count or 0
            completion_tokens = usage_metadata.candidates_token_count or 0
            logger.info(f"Token usage - Input: {prompt_tokens}, Output: {completion_tokens}, "
                        f"Total: {usage_metadata.total_token_count}")

        text = response.text
        logger.debug(f"Response (first 500 chars): {text[:500]}...")
        return LLMResponse(text=text, prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)

    def _save_prompt_to_file(self, prompt: str) -> None:
        """Saves the prompt for later inspection when prompt_dump_dir is configured."""
        if not self.prompt_dump_dir:
            return
        try:
            prompts_dir = Path(self.prompt_dump_dir)
            prompts_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
            filename = prompts_dir / f"refinement_{timestamp}.txt"
            filename.write_text(prompt, encoding="utf-8")
            logger.debug(f"Saved prompt to file: {filename}")
        except OSError as e:
            logger.warning(f"Failed to save prompt to file: {e}")
