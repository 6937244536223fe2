# src/journey_refiner/application/use_cases/refine_test.py
import concurrent.futures
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from journey_refiner.application.orchestrators.refinement_orchestrator import RefinementOrchestrator
from journey_refiner.domain.models.refinement import FixAttempt, RefinementResult
from journey_refiner.domain.models.refinement_config import RefinementConfig
from journey_refiner.domain.ports.file_system import FileSystemPort

logger = logging.getLogger(__name__)


class RefineTestUseCase:
    """
    Use case entry point for refining generated test files.
    Reads the test file, delegates to the RefinementOrchestrator and writes the
    refined code back when the loop changed it.
    """

    def __init__(self,
                 file_system: FileSystemPort,
                 orchestrator: RefinementOrchestrator,
                 config: Optional[RefinementConfig] = None):
        """Initializes the use case with its dependencies."""
        self.file_system = file_system
        self.orchestrator = orchestrator
        self.config = config or RefinementConfig()
        logger.debug("RefineTestUseCase initialized.")

    def execute(self,
                test_file: str,
                journey_id: Optional[str] = None,
                dry_run: bool = False,
                cancel_event: Optional[threading.Event] = None,
                on_attempt_complete: Optional[Callable[[FixAttempt], None]] = None) -> RefinementResult:
        """
        Refines one test file.

        Args:
            test_file: Path to the generated test file.
            journey_id: Journey the test covers; defaults to the file name.
            dry_run: When True, the refined code is not written back.
            cancel_event: Stops the loop before its next test run when set.
            on_attempt_complete: Progress callback, called once per attempt.

        Returns:
            The RefinementResult of the session.

        Raises:
            FileNotFoundError: If the test file does not exist.
            RefinementConfigError: If the configuration is invalid.
        """
        if not self.file_system.exists(test_file):
            raise FileNotFoundError(f"Test file not found: {test_file}")

        journey_id = journey_id or self._default_journey_id(test_file)
        logger.info(f"RefineTestUseCase executing for: {test_file} (journey {journey_id})")
        original_code = self.file_system.read_file(test_file)

        result = self.orchestrator.run_refinement_loop(
            original_code,
            test_file,
            journey_id,
            config=self.config,
            cancel_event=cancel_event,
            on_attempt_complete=on_attempt_complete,
        )

        if result.final_code is not None and result.final_code != original_code:
            if dry_run:
                logger.info(f"Dry run: not writing {len(result.applied_fixes)} fix(es) back to {test_file}")
            else:
                self.file_system.write_file(test_file, result.final_code)
                logger.info(f"Wrote refined test back to {test_file}")
        return result

    def execute_many(self,
                     targets: List[Tuple[str, Optional[str]]],
                     max_workers: int = 4,
                     dry_run: bool = False,
                     cancel_event: Optional[threading.Event] = None) -> Dict[str, Dict[str, Any]]:
        """
        Refines several independent test files in parallel.

        Each file gets its own session; a failure in one does not affect the others.

        Args:
            targets: (test_file, journey_id) pairs; journey_id may be None.
            max_workers: Maximum number of parallel sessions.
            dry_run: When True, refined code is not written back.
            cancel_event: Shared cancellation signal for all sessions.

        Returns:
            Per test file, a dict with 'status', 'message' and 'result'.
        """
        results: Dict[str, Dict[str, Any]] = {}
        logger.info(f"Refining {len(targets)} test file(s) with {max_workers} worker(s)")

        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_to_file = {
                executor.submit(self.execute, test_file, journey_id, dry_run, cancel_event): test_file
                for test_file, journey_id in targets
            }

            for future in concurrent.futures.as_completed(future_to_file):
                test_file = future_to_file[future]
                try:
                    result = future.result()
                    results[test_file] = {
                        "status": result.status.value,
                        "message": result.diagnostics.summary if result.diagnostics else "",
                        "result": result,
                    }
                    logger.info(f"Completed refinement for {test_file} with status: {result.status.value}")
                except Exception as e:
                    logger.error(f"Error refining {test_file}: {e}", exc_info=True)
                    results[test_file] = {
                        "status": "error",
                        "message": f"Error: {e}",
                        "result": None,
                    }

        success_count = sum(1 for r in results.values() if r["result"] is not None and r["result"].success)
        logger.info(f"Refined {success_count}/{len(results)} test file(s) to a passing state")
        return results

    @staticmethod
    def _default_journey_id(test_file: str) -> str:
        name = test_file.replace("\\", "/").rsplit("/", 1)[-1]
        for suffix in (".spec.ts", ".spec.js", ".test.ts", ".test.js", ".ts", ".js"):
            if name.endswith(suffix):
                return name[: -len(suffix)]
        return name
