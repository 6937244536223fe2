# src/journey_refiner/cli/commands/refine_command.py
import argparse
import logging
from typing import Any, Dict, List

from journey_refiner.application.use_cases.refine_test import RefineTestUseCase
from journey_refiner.cli.adapter_factory import create_file_system_adapter, create_orchestrator, create_ui_service
from journey_refiner.cli.commands.config_loader import build_refinement_config
from journey_refiner.domain.models.errors import RefinementConfigError
from journey_refiner.domain.models.refinement import FixAttempt, FixOutcome, RefinementResult
from journey_refiner.domain.ports.ui_service import LogLevel, UIServicePort

logger = logging.getLogger(__name__)

_OUTCOME_LEVELS = {
    FixOutcome.SUCCESS: LogLevel.SUCCESS,
    FixOutcome.PARTIAL: LogLevel.INFO,
    FixOutcome.FAILURE: LogLevel.WARNING,
    FixOutcome.SKIPPED: LogLevel.WARNING,
}


def handle_refine(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    """Handles the 'refine' command logic. Returns the process exit code."""
    ui = create_ui_service(config)

    if args.journey_id and len(args.test_files) > 1:
        ui.log("--journey-id can only be used with a single test file.", LogLevel.ERROR)
        return 2

    try:
        refinement_config = build_refinement_config(
            config,
            max_attempts=args.max_attempts,
            cooldown_ms=args.cooldown_ms,
            total_timeout_ms=args.timeout_ms,
            confidence_threshold=args.confidence_threshold,
        )
    except RefinementConfigError as e:
        ui.log(f"Invalid refinement configuration: {e}", LogLevel.ERROR)
        return 2

    ui.panel(
        f"Refining {len(args.test_files)} test file(s)\n"
        f"max attempts {refinement_config.max_attempts}, "
        f"fixers {', '.join(refinement_config.fixer_order)}"
        + (" (dry run)" if args.dry_run else ""),
        "Journey Refiner",
        border_style="cyan",
    )

    try:
        use_case = RefineTestUseCase(
            file_system=create_file_system_adapter(),
            orchestrator=create_orchestrator(config),
            config=refinement_config,
        )
    except Exception as e:
        logger.critical(f"Failed to set up the refinement use case: {e}", exc_info=True)
        return 1

    show_code = args.show_code or config.get('ui', {}).get('show_code', False)

    if len(args.test_files) == 1:
        test_file = args.test_files[0]
        try:
            result = use_case.execute(
                test_file,
                journey_id=args.journey_id,
                dry_run=args.dry_run,
                on_attempt_complete=lambda attempt: _report_attempt(ui, attempt),
            )
        except (FileNotFoundError, RefinementConfigError) as e:
            ui.log(str(e), LogLevel.ERROR)
            return 2
        render_result(ui, test_file, result, show_code)
        return 0 if result.success else 1

    results = use_case.execute_many(
        [(test_file, None) for test_file in args.test_files],
        max_workers=args.max_workers,
        dry_run=args.dry_run,
    )
    render_batch(ui, args.test_files, results)
    return 0 if all(r["result"] is not None and r["result"].success for r in results.values()) else 1


def _report_attempt(ui: UIServicePort, attempt: FixAttempt) -> None:
    fix = attempt.applied_fix
    fix_text = f"{fix.type.value} via {fix.fixer}" if fix else "no acceptable fix"
    ui.log(
        f"Attempt {attempt.attempt_number}: {fix_text} -> {attempt.outcome.value} "
        f"({len(attempt.new_errors)} error(s) remaining)",
        _OUTCOME_LEVELS[attempt.outcome],
    )


def render_result(ui: UIServicePort, test_file: str, result: RefinementResult, show_code: bool = False) -> None:
    """Summary panel, attempts table and, optionally, the refined code."""
    diagnostics = result.diagnostics
    style = "green" if result.success else "red"
    ui.panel(
        f"[bold]{result.status.value}[/bold]\n{diagnostics.summary if diagnostics else ''}",
        test_file,
        border_style=style,
    )

    if result.session.attempts:
        table = ui.table(["#", "Error", "Fix", "Confidence", "Outcome", "Rejected"], title="Attempts")
        for attempt in result.session.attempts:
            fix = attempt.applied_fix
            table.add_row(
                attempt.attempt_number,
                attempt.error.category.value if attempt.error else "-",
                f"{fix.type.value} ({fix.fixer})" if fix else "-",
                f"{fix.confidence:.2f}" if fix else "-",
                attempt.outcome.value,
                len(attempt.rejected_fixes),
            )
        table.render()

    if result.remaining_errors:
        table = ui.table(["Category", "Severity", "Message"], title="Remaining errors")
        for error in result.remaining_errors:
            table.add_row(error.category.value, error.severity.value, error.message)
        table.render()

    if result.lessons:
        ui.log(f"{len(result.lessons)} lesson(s) recorded", LogLevel.SUCCESS)
    if show_code and result.final_code:
        ui.syntax(result.final_code, "typescript")


def render_batch(ui: UIServicePort, test_files: List[str], results: Dict[str, Dict[str, Any]]) -> None:
    table = ui.table(["Test File", "Status", "Attempts", "Summary"], title="Refinement results")
    for test_file in test_files:
        entry = results.get(test_file, {"status": "error", "message": "not run", "result": None})
        result = entry["result"]
        table.add_row(
            test_file,
            entry["status"],
            len(result.session.attempts) if result else "-",
            entry["message"],
        )
    table.render()
