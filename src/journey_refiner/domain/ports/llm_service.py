from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class LLMResponse:
    """Text returned by a model plus token accounting."""
    text: str
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class LLMServicePort(ABC):
    """Interface for interacting with a Large Language Model service."""

    @abstractmethod
    def generate_fix(self, prompt: str) -> LLMResponse:
        """
        Asks the model for fix proposals.

        Args:
            prompt: The complete refinement prompt.

        Returns:
            The raw model response with token usage.
            Raises an exception when the service cannot be reached.
        """
        pass
