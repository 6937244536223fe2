import json
import logging
import os
import re
import subprocess
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from journey_refiner.domain.models.error_analysis import ErrorLocation, RawFailure
from journey_refiner.domain.models.errors import TestRunnerError
from journey_refiner.domain.ports.test_runner import TestRunnerPort, TestRunReport

logger = logging.getLogger(__name__)

ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")
FAILED_STATUSES = {"failed", "timedOut", "interrupted"}


def strip_ansi(text: str) -> str:
    return ANSI_ESCAPE_RE.sub("", text or "")


def parse_json_report(report: Dict[str, Any],
                      test_file: Optional[str] = None,
                      candidate: Optional[str] = None) -> List[RawFailure]:
    """
    Extracts failures from a Playwright JSON reporter document.

    Walks suites -> specs -> tests and takes the error of the last result of
    every test whose final status is a failure. Top-level report errors (for
    example a file that does not compile) become failures too.

    Args:
        report: The parsed JSON report.
        test_file: The real test file the run stands in for.
        candidate: The temporary file that was actually run. File names and
                   locations that point at it are reported against test_file.

    Returns:
        One RawFailure per failing test, in report order.
    """
    renamer = _CandidateRenamer(test_file, candidate)
    failures: List[RawFailure] = []
    for error in report.get("errors", []) or []:
        failures.append(_raw_failure(error, None, renamer))

    def walk(suite: Dict[str, Any], titles: List[str]) -> None:
        title = suite.get("title")
        # File-level suites are titled with the file name
        suite_titles = titles + [title] if title and title != suite.get("file") else titles
        for spec in suite.get("specs", []) or []:
            test_name = " > ".join(suite_titles + [spec.get("title", "")]).strip(" >")
            for test in spec.get("tests", []) or []:
                results = test.get("results") or []
                if not results:
                    continue
                last = results[-1]
                if last.get("status") not in FAILED_STATUSES:
                    continue
                error = last.get("error") or next(iter(last.get("errors") or []), None)
                if error is None:
                    error = {"message": f"Test {last.get('status')} without error details"}
                failures.append(_raw_failure(error, test_name, renamer, spec))
        for child in suite.get("suites", []) or []:
            walk(child, suite_titles)

    for suite in report.get("suites", []) or []:
        walk(suite, [])
    return failures


class _CandidateRenamer:
    """Maps the per-run candidate file back to the test file it was copied from."""

    def __init__(self, test_file: Optional[str], candidate: Optional[str]):
        self.test_file = test_file
        self.candidate_name = Path(candidate).name if candidate else None
        self.test_name = Path(test_file).name if test_file else None

    def file(self, file: str) -> str:
        if self.candidate_name and Path(file).name == self.candidate_name:
            return self.test_file
        return file

    def text(self, text: str) -> str:
        if self.candidate_name and text:
            return text.replace(self.candidate_name, self.test_name)
        return text


def _raw_failure(error: Dict[str, Any], test_name: Optional[str], renamer: _CandidateRenamer,
                 spec: Optional[Dict[str, Any]] = None) -> RawFailure:
    location = None
    loc = error.get("location")
    if isinstance(loc, dict) and loc.get("file"):
        location = ErrorLocation(file=renamer.file(loc["file"]), line=loc.get("line"), column=loc.get("column"),
                                 test_name=test_name)
    elif spec and spec.get("file"):
        location = ErrorLocation(file=renamer.file(spec["file"]), line=spec.get("line"), column=spec.get("column"),
                                 test_name=test_name)
    return RawFailure(
        message=renamer.text(strip_ansi(error.get("message") or error.get("value") or "Unknown error")),
        stack=renamer.text(strip_ansi(error.get("stack"))) or None,
        location=location,
        test_name=test_name,
    )


def extract_json_document(stdout: str) -> Optional[Dict[str, Any]]:
    """The JSON report from runner stdout, ignoring any lines printed before it."""
    start = stdout.find("{")
    if start == -1:
        return None
    try:
        return json.loads(stdout[start:])
    except json.JSONDecodeError as e:
        logger.warning(f"Could not parse Playwright JSON report: {e}")
        return None


class PlaywrightTestRunnerAdapter(TestRunnerPort):
    """Runs candidate tests with the Playwright test runner."""

    def __init__(self, config: Dict[str, Any]):
        runner_config = config.get('test_runner', {})
        self.command = runner_config.get('command', 'npx')
        pre_args = runner_config.get('pre_args', ['playwright', 'test'])
        self.pre_args = pre_args.split() if isinstance(pre_args, str) else list(pre_args)
        self.extra_args = list(runner_config.get('extra_args', []))
        self.cwd = runner_config.get('cwd') or os.getcwd()
        self.timeout = runner_config.get('timeout', 120)  # Seconds for the whole process
        self.test_timeout_ms = runner_config.get('test_timeout_ms')
        logger.info(f"Playwright runner initialized: {self.command} {' '.join(self.pre_args)} (cwd {self.cwd})")

    def run(self, code: str, test_file: str) -> TestRunReport:
        candidate = self._candidate_path(test_file)
        candidate.parent.mkdir(parents=True, exist_ok=True)
        candidate.write_text(code, encoding='utf-8')

        command = self.build_command(str(candidate))
        logger.debug(f"Running: {' '.join(command)}")
        start_time = time.time()
        try:
            result = subprocess.run(
                command,
                cwd=self.cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False
            )
        except subprocess.TimeoutExpired as e:
            raise TestRunnerError(f"Playwright run timed out after {self.timeout} seconds") from e
        except OSError as e:
            raise TestRunnerError(f"Failed to start Playwright ({self.command}): {e}") from e
        finally:
            try:
                candidate.unlink()
            except FileNotFoundError:
                pass

        duration = time.time() - start_time
        output = f"--- STDOUT ---\n{result.stdout}\n--- STDERR ---\n{result.stderr}"
        report = extract_json_document(result.stdout)
        failures = parse_json_report(report, test_file, str(candidate)) if report is not None else []
        passed = result.returncode == 0 and not failures
        logger.info(f"Playwright finished in {duration:.2f}s: exit code {result.returncode}, {len(failures)} failure(s)")
        return TestRunReport(passed=passed, failures=failures, duration=duration, output=strip_ansi(output))

    def build_command(self, test_path: str) -> List[str]:
        command = [self.command] + self.pre_args + [test_path, '--reporter=json']
        if self.test_timeout_ms:
            command.append(f'--timeout={self.test_timeout_ms}')
        return command + self.extra_args

    @staticmethod
    def _candidate_path(test_file: str) -> Path:
        """A sibling of the test file, so the project's test match patterns still apply."""
        path = Path(test_file)
        name = path.name
        for suffix in ('.spec.ts', '.spec.js', '.test.ts', '.test.js'):
            if name.endswith(suffix):
                return path.with_name(f"{name[:-len(suffix)]}.refine-{uuid.uuid4().hex[:8]}{suffix}")
        return path.with_name(f"{path.stem}.refine-{uuid.uuid4().hex[:8]}{path.suffix}")
