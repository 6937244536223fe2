"""
Rich-based implementation of the UI service.
"""
import logging
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from journey_refiner.domain.ports.ui_service import LogLevel, UIServicePort

REFINER_THEME = Theme({
    "info": "cyan",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "critical": "red bold",
    "debug": "dim",
    "panel.border": "cyan",
    "panel.title": "cyan bold",
    "status.success": "green bold",
    "status.failure": "red bold",
})


class RichTable:
    """A Rich table that is printed on render()."""

    def __init__(self, table: Table, console: Console):
        self.table = table
        self.console = console

    def add_row(self, *values, **kwargs) -> None:
        self.table.add_row(*[str(v) for v in values], **kwargs)

    def render(self, **kwargs) -> None:
        self.console.print(self.table, **kwargs)


class RichUIAdapter(UIServicePort):
    """Rich implementation of the UI service."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, console: Optional[Console] = None):
        """
        Initialize the Rich UI adapter.

        Args:
            config: Application configuration; reads the 'ui' section.
            console: Console to print to. A themed console is created when omitted.
        """
        ui_config = (config or {}).get('ui', {})
        self.console = console or Console(theme=REFINER_THEME, no_color=not ui_config.get('color', True))

    def log(self, message: str, level: LogLevel = LogLevel.INFO, **kwargs) -> None:
        """
        Log a message with the specified level.

        Args:
            message: The message to log
            level: The log level
            **kwargs: Additional arguments for Rich
        """
        style = level.value
        self.console.print(f"[{style}]{message}[/{style}]", **kwargs)

    def table(self, columns: List[str], **kwargs) -> RichTable:
        """
        Create a table with the specified columns.

        Args:
            columns: The column headers
            **kwargs: Additional arguments for Rich

        Returns:
            A RichTable object
        """
        table = Table(**kwargs)
        for column in columns:
            table.add_column(column)
        return RichTable(table, self.console)

    def panel(self, content: str, title: str = "", **kwargs) -> None:
        panel = Panel(content, title=title, **kwargs)
        self.console.print(panel)

    def syntax(self, code: str, language: str, **kwargs) -> None:
        syntax = Syntax(code, language, theme="monokai", line_numbers=True, **kwargs)
        self.console.print(syntax)


class RichLoggingHandler(RichHandler):
    """Rich logging handler that colours level names with the refiner theme."""

    _LEVEL_STYLES = (
        (logging.CRITICAL, "critical"),
        (logging.ERROR, "error"),
        (logging.WARNING, "warning"),
        (logging.INFO, "info"),
    )

    def get_level_text(self, record: logging.LogRecord) -> Text:
        style = next((name for level, name in self._LEVEL_STYLES if record.levelno >= level), "debug")
        return Text.styled(record.levelname.ljust(8), style)
