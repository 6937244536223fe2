import logging
from typing import Any, Dict

from rich.console import Console

from journey_refiner.infrastructure.adapters.ui.rich_ui_adapter import REFINER_THEME, RichLoggingHandler


def setup_logging(config: Dict[str, Any]):
    """Configures logging based on the application configuration."""
    log_config = config.get('logging', {})
    level_name = str(log_config.get('level', 'INFO')).upper()
    level = getattr(logging, level_name, logging.INFO)
    file_format = log_config.get('format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    log_file = log_config.get('log_file')  # Path is already resolved

    console = Console(theme=REFINER_THEME, stderr=True)
    handlers = [RichLoggingHandler(
        console=console,
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
    )]

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setFormatter(logging.Formatter(file_format))
            handlers.append(file_handler)
        except OSError as e:
            console.print(f"[warning]Warning: Could not configure file logging to {log_file}: {e}[/warning]")

    # Rich renders time and level itself
    logging.basicConfig(level=level, format="%(message)s", handlers=handlers, force=True)

    # Suppress verbose logs from dependencies
    dependencies_to_silence = {
        "httpx": logging.WARNING,
        "google.api_core": logging.WARNING,
        "google.auth": logging.WARNING,
        "urllib3": logging.WARNING,
        "grpc": logging.WARNING,
    }
    for name, lvl in dependencies_to_silence.items():
        logging.getLogger(name).setLevel(lvl)

    logging.info(f"Logging configured. Level: {level_name}, File: {log_file or 'None'}")
