import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from journey_refiner.domain.models.refinement_config import RefinementConfig

logger = logging.getLogger(__name__)


def load_and_resolve_config(project_root: Path, config_path="config/application.yml") -> dict:
    """Loads YAML configuration and resolves relative paths."""
    absolute_config_path = Path(project_root) / config_path
    logger.debug(f"Attempting to load configuration from: {absolute_config_path}")
    try:
        with open(absolute_config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)
        if not config_data:
            raise ValueError("Configuration file is empty or invalid.")
        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a mapping at the top level.")

        # Resolve paths relative to project_root
        resolve_path(config_data, project_root, ['lessons', 'store_path'], 'var/lessons/lessons.json')
        resolve_path(config_data, project_root, ['test_runner', 'cwd'], '.')
        resolve_path(config_data, project_root, ['logging', 'log_file'])  # Optional
        resolve_path(config_data, project_root, ['llm', 'prompt_dump_dir'])  # Optional

        # Fail fast on an invalid refinement section
        build_refinement_config(config_data)

        logger.info(f"Configuration loaded successfully from {absolute_config_path}")
        return config_data

    except FileNotFoundError:
        logger.critical(f"Configuration file not found at {absolute_config_path}")
        sys.exit(1)
    except Exception as err:
        logger.critical(f"Error loading or resolving configuration from {absolute_config_path}: {err}", exc_info=True)
        sys.exit(1)


def resolve_path(config: dict, root: Path, keys: list, default: Optional[str] = None):
    """Helper to get, resolve, and update a path in the config dict."""
    current = config
    for key in keys[:-1]:
        if key not in current and default is not None:
            current[key] = {}
        current = current.get(key, {})
        if not isinstance(current, dict):
            logger.warning(f"Config path {'->'.join(keys)} structure invalid. Using default '{default}' if available.")
            return

    last_key = keys[-1]
    relative_path = current.get(last_key, default)

    if relative_path is not None:
        resolved_path = str((Path(root) / relative_path).resolve())
        current[last_key] = resolved_path
        logger.debug(f"Resolved config path '{'.'.join(keys)}': {relative_path} -> {resolved_path}")


def build_refinement_config(config: Dict[str, Any], **overrides) -> RefinementConfig:
    """
    RefinementConfig from the 'refinement' section, with CLI overrides applied.

    Raises:
        RefinementConfigError: If any value is invalid.
    """
    return RefinementConfig.from_dict(config.get('refinement')).with_overrides(**overrides)


def ensure_app_directories(config: dict):
    """Creates the directories the resolved config paths point into."""
    paths_to_ensure = [
        config.get('lessons', {}).get('store_path'),
        config.get('logging', {}).get('log_file'),
    ]
    for file_path in paths_to_ensure:
        if file_path:
            target_dir = Path(file_path).parent
            try:
                target_dir.mkdir(parents=True, exist_ok=True)
                logger.debug(f"Ensured directory exists: {target_dir}")
            except OSError as e:
                logger.error(f"Failed to create directory {target_dir}: {e}", exc_info=True)
