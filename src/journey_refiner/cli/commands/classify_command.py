# src/journey_refiner/cli/commands/classify_command.py
import argparse
import logging
import sys
from typing import Any, Dict

from journey_refiner.application.services.error_classifier import ErrorClassifier
from journey_refiner.cli.adapter_factory import create_file_system_adapter, create_ui_service
from journey_refiner.domain.ports.ui_service import LogLevel

logger = logging.getLogger(__name__)


def handle_classify(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    """Handles the 'classify' command logic. Returns the process exit code."""
    ui = create_ui_service(config)

    if args.source == "-":
        output = sys.stdin.read()
    else:
        file_system = create_file_system_adapter()
        if not file_system.exists(args.source):
            ui.log(f"File not found: {args.source}", LogLevel.ERROR)
            return 2
        output = file_system.read_file(args.source)

    analyses = ErrorClassifier(config).parse_output(output, test_file=args.test_file)
    if not analyses:
        ui.log("No errors found in the given output.", LogLevel.SUCCESS)
        return 0

    table = ui.table(["Fingerprint", "Category", "Severity", "Location", "Selector", "Message"],
                     title=f"{len(analyses)} error(s)")
    for analysis in analyses:
        location = analysis.location
        where = f"{location.file or '?'}:{location.line}" if location and location.line else (location.file if location else "")
        table.add_row(
            analysis.fingerprint,
            analysis.category.value,
            analysis.severity.value,
            where or "-",
            analysis.selector or "-",
            analysis.message,
        )
    table.render()
    return 0
