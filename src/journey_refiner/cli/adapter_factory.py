import logging
from typing import Any, Dict, Optional

from journey_refiner.application.orchestrators.refinement_orchestrator import RefinementOrchestrator
from journey_refiner.application.services.error_classifier import ErrorClassifier
from journey_refiner.application.services.fix_registry import FixerRegistry
from journey_refiner.domain.ports.file_system import FileSystemPort
from journey_refiner.domain.ports.learning_store import LearningStorePort
from journey_refiner.domain.ports.llm_service import LLMServicePort
from journey_refiner.domain.ports.test_runner import TestRunnerPort
from journey_refiner.domain.ports.ui_service import UIServicePort
from journey_refiner.infrastructure.adapters.file_system_adapter import FileSystemAdapter
from journey_refiner.infrastructure.adapters.learning_store.json_lesson_store import JsonLessonStore
from journey_refiner.infrastructure.adapters.llm.google_gemini_adapter import GoogleGeminiAdapter
from journey_refiner.infrastructure.adapters.llm.mock_llm_adapter import MockLLMAdapter
from journey_refiner.infrastructure.adapters.test_runner.playwright_adapter import PlaywrightTestRunnerAdapter
from journey_refiner.infrastructure.adapters.ui.rich_ui_adapter import RichUIAdapter

logger = logging.getLogger(__name__)


def create_file_system_adapter() -> FileSystemPort:
    logger.debug("Creating FileSystemAdapter")
    return FileSystemAdapter()


def create_test_runner(config: Dict[str, Any]) -> TestRunnerPort:
    runner = config.get('test_runner', {}).get('type', 'playwright')
    logger.debug(f"Creating TestRunner for type: {runner}")
    if runner == 'playwright':
        return PlaywrightTestRunnerAdapter(config)
    else:
        raise ValueError(f"Unsupported test runner: {runner}")


def create_llm_service(config: Dict[str, Any]) -> Optional[LLMServicePort]:
    """The configured LLM service, or None when the LLM fixer is disabled."""
    llm_config = config.get('llm', {})
    if not llm_config.get('enabled', False):
        logger.info("LLM fixer disabled in configuration")
        return None
    provider = llm_config.get('provider', 'mock')
    logger.info(f"Creating LLMService for provider: {provider}")
    if provider == 'google_gemini':
        return GoogleGeminiAdapter(config)
    elif provider == 'mock':
        return MockLLMAdapter(config)
    else:
        raise ValueError(f"Unsupported LLM provider: {provider}")


def create_learning_store(config: Dict[str, Any]) -> Optional[LearningStorePort]:
    lessons_config = config.get('lessons', {})
    if not lessons_config.get('enabled', True):
        logger.info("Lesson export disabled in configuration")
        return None
    return JsonLessonStore(lessons_config['store_path'])


def create_ui_service(config: Dict[str, Any]) -> UIServicePort:
    return RichUIAdapter(config)


def create_fixer_registry(config: Dict[str, Any], llm_service: Optional[LLMServicePort]) -> FixerRegistry:
    return FixerRegistry.build_default(config, llm_service)


def create_orchestrator(config: Dict[str, Any]) -> RefinementOrchestrator:
    """Wires the orchestrator with the configured adapters."""
    llm_service = create_llm_service(config)
    return RefinementOrchestrator(
        test_runner=create_test_runner(config),
        registry=create_fixer_registry(config, llm_service),
        classifier=ErrorClassifier(config),
        learning_store=create_learning_store(config),
    )
