import logging
import sys
from pathlib import Path
from typing import List, Optional

from journey_refiner.cli.commands.argument_parser import parse_arguments
from journey_refiner.cli.commands.classify_command import handle_classify
from journey_refiner.cli.commands.config_loader import ensure_app_directories, load_and_resolve_config
from journey_refiner.cli.commands.refine_command import handle_refine
from journey_refiner.cli.logging_setup import setup_logging

logger = logging.getLogger(__name__)

COMMAND_HANDLERS = {
    "refine": handle_refine,
    "classify": handle_classify,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_arguments(argv)

    project_root = Path.cwd()
    config = load_and_resolve_config(project_root, args.config)
    ensure_app_directories(config)
    setup_logging(config)

    logger.info(f"--- Journey Refiner: {args.command} ---")
    try:
        return COMMAND_HANDLERS[args.command](args, config)
    except Exception as e:
        logger.critical(f"An error occurred during '{args.command}': {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
