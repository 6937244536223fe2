"""
Domain interfaces for UI components.
These interfaces define the contract for presenting refinement results.
"""
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, List


class LogLevel(Enum):
    """Log levels for UI messages."""
    DEBUG = "debug"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class UIServicePort(ABC):
    """Interface for UI services."""

    @abstractmethod
    def log(self, message: str, level: LogLevel = LogLevel.INFO, **kwargs) -> None:
        """
        Log a message with the specified level.

        Args:
            message: The message to log
            level: The log level
            **kwargs: Additional arguments for the specific implementation
        """
        pass

    @abstractmethod
    def table(self, columns: List[str], **kwargs) -> Any:
        """
        Create a table with the specified columns.

        Args:
            columns: The column headers
            **kwargs: Additional arguments for the specific implementation

        Returns:
            A table object with add_row() and render()
        """
        pass

    @abstractmethod
    def panel(self, content: str, title: str = "", **kwargs) -> None:
        """
        Display content in a panel.

        Args:
            content: The content to display
            title: The panel title
            **kwargs: Additional arguments for the specific implementation
        """
        pass

    @abstractmethod
    def syntax(self, code: str, language: str, **kwargs) -> None:
        """
        Display code with syntax highlighting.

        Args:
            code: The code to display
            language: The programming language
            **kwargs: Additional arguments for the specific implementation
        """
        pass
