#!/usr/bin/env python3
"""
Verification script to check if Journey Refiner is properly set up.
This script checks:
1. Python version
2. Required dependencies
3. Configuration file
4. Playwright runner command
5. LLM API key, when the LLM fixer is enabled
"""

import importlib
import os
import shutil
import sys
from pathlib import Path

import yaml
from rich.console import Console

console = Console()
CONFIG_PATH = Path(__file__).parent.parent / "config" / "application.yml"

_STATUS_STYLES = {"OK": "green", "WARNING": "yellow", "ERROR": "red"}


def print_status(message, status, details=None):
    """Print a status message with color coding."""
    style = _STATUS_STYLES.get(status, "white")
    console.print(f"{message:<50} [[{style}]{status}[/{style}]]")
    if details:
        console.print(f"  {details}")


def load_config():
    try:
        with open(CONFIG_PATH, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        return None


def check_python_version():
    """Check if Python version is 3.9 or higher."""
    version = sys.version_info
    found = f"Found Python {version.major}.{version.minor}.{version.micro}"
    if (version.major, version.minor) < (3, 9):
        print_status("Python version (3.9+ required)", "ERROR", found)
        return False
    print_status("Python version (3.9+ required)", "OK", found)
    return True


def check_dependencies():
    """Check if required dependencies are installed."""
    all_ok = True
    for package in ["yaml", "rich", "google.generativeai"]:
        try:
            importlib.import_module(package)
            print_status(f"Required package: {package}", "OK")
        except ImportError:
            print_status(f"Required package: {package}", "ERROR", "Not installed")
            all_ok = False
    return all_ok


def check_config_file(config):
    """Check if the configuration file exists and its refinement section is valid."""
    if config is None:
        print_status("Configuration file", "ERROR", f"Missing or invalid YAML at {CONFIG_PATH}")
        return False

    sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
    from journey_refiner.domain.models.refinement_config import RefinementConfig
    from journey_refiner.domain.models.errors import RefinementConfigError

    try:
        RefinementConfig.from_dict(config.get("refinement"))
    except RefinementConfigError as e:
        print_status("Refinement settings", "ERROR", str(e))
        return False
    print_status("Configuration file", "OK")
    return True


def check_test_runner(config):
    """Check that the configured runner command is on the PATH."""
    command = (config or {}).get("test_runner", {}).get("command", "npx")
    if shutil.which(command) is None:
        print_status(f"Test runner command: {command}", "ERROR", "Not found in PATH (install Node.js)")
        return False
    print_status(f"Test runner command: {command}", "OK")
    return True


def check_api_key(config):
    """Check if an API key is available for the configured LLM provider."""
    llm_config = (config or {}).get("llm", {})
    if not llm_config.get("enabled", False):
        print_status("LLM fixer", "OK", "Disabled; only rule-based fixers will run")
        return True

    provider = llm_config.get("provider", "")
    if provider == "mock":
        print_status("LLM API key", "OK", "Using mock LLM provider (no API key needed)")
        return True
    if provider == "google_gemini":
        if llm_config.get("api_key") or os.environ.get("GOOGLE_API_KEY"):
            print_status("Google Gemini API key", "OK")
            return True
        print_status("Google Gemini API key", "ERROR", "Not found in config or environment")
        return False
    print_status("LLM provider", "WARNING", f"Unknown provider: {provider}")
    return False


def main():
    """Run all verification checks."""
    console.print("\n[bold]Journey Refiner Setup Verification[/bold]\n")

    config = load_config()
    checks = [
        check_python_version(),
        check_dependencies(),
        check_config_file(config),
        check_test_runner(config),
        check_api_key(config),
    ]

    console.print("\n" + "-" * 60)
    if all(checks):
        console.print("\n[green bold]All checks passed! Journey Refiner is ready to use.[/green bold]\n")
        console.print("You can now run:")
        console.print("  python main.py refine tests/journeys/checkout.spec.ts")
        console.print("  python main.py classify playwright-output.txt")
    else:
        console.print("\n[yellow bold]Some checks failed. Please fix the issues above before refining tests.[/yellow bold]\n")
    return 0 if all(checks) else 1


if __name__ == "__main__":
    sys.exit(main())
