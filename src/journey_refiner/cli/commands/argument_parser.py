import argparse
from typing import List, Optional


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="journey-refiner",
        description="Iterative refinement of generated Playwright journey tests",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument(
        "--config",
        default="config/application.yml",
        help="Path to the YAML configuration file, relative to the project root."
    )
    subparsers = parser.add_subparsers(
        dest="command",
        required=True,
        help="Available commands"
    )

    # --- Refine Command Arguments ---
    parser_refine = subparsers.add_parser(
        "refine",
        help="Run, diagnose and fix a generated test until it passes or a stop rule fires.",
        description="Runs the test, classifies its failures, applies the highest-priority acceptable "
                    "fix and re-runs it. Stops on success, when no acceptable fix exists, or when the "
                    "circuit breaker opens (attempt limit, repeated error, oscillation, time, tokens).",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser_refine.add_argument(
        "test_files",
        nargs="+",
        metavar="test_file",
        help="Path(s) to generated Playwright test files (e.g., tests/journeys/checkout.spec.ts)."
    )
    parser_refine.add_argument(
        "--journey-id",
        help="Journey identifier; defaults to the test file name. Only valid with a single test file."
    )
    parser_refine.add_argument(
        "--max-attempts",
        type=int,
        help="Override refinement.max_attempts from the config."
    )
    parser_refine.add_argument(
        "--cooldown-ms",
        type=int,
        help="Override refinement.cooldown_ms from the config."
    )
    parser_refine.add_argument(
        "--timeout-ms",
        type=int,
        help="Override refinement.total_timeout_ms from the config."
    )
    parser_refine.add_argument(
        "--confidence-threshold",
        type=float,
        help="Override refinement.confidence_threshold from the config."
    )
    parser_refine.add_argument(
        "--max-workers",
        type=int,
        default=4,
        help="Maximum number of test files refined in parallel."
    )
    parser_refine.add_argument(
        "--dry-run",
        action="store_true",
        help="Do not write the refined code back to the test file."
    )
    parser_refine.add_argument(
        "--show-code",
        action="store_true",
        help="Print the refined code after a successful session."
    )

    # --- Classify Command Arguments ---
    parser_classify = subparsers.add_parser(
        "classify",
        help="Classify raw Playwright failure output.",
        description="Reads runner output from a file (or '-' for stdin), splits it into failures and "
                    "prints category, severity and fingerprint for each."
    )
    parser_classify.add_argument(
        "source",
        help="File with runner output, or '-' to read stdin."
    )
    parser_classify.add_argument(
        "--test-file",
        help="Test file path to attach to failures without a location."
    )

    return parser


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Configures and parses command line arguments for the application.

    Returns:
        argparse.Namespace: An object containing the parsed arguments.
    """
    return build_parser().parse_args(argv)
