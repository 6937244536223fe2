import json
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional

from journey_refiner.domain.models.error_analysis import ErrorCategory
from journey_refiner.domain.models.refinement import LessonLearned
from journey_refiner.domain.ports.learning_store import LearningStorePort

logger = logging.getLogger(__name__)


class JsonLessonStore(LearningStorePort):
    """
    Learning store backed by a single JSON file.

    Lessons are merged by lesson_id; a lesson seen again keeps the higher
    confidence and becomes verified if either copy was verified. Writes go
    through a temporary file and a rename.
    """

    def __init__(self, store_path: str):
        self.store_path = Path(store_path)
        self._lock = threading.Lock()
        logger.debug(f"JsonLessonStore using {self.store_path}")

    def save_lessons(self, lessons: List[LessonLearned]) -> int:
        if not lessons:
            return 0
        with self._lock:
            existing = self._load()
            for lesson in lessons:
                previous = existing.get(lesson.lesson_id)
                if previous is not None:
                    lesson = self._merge(previous, lesson)
                existing[lesson.lesson_id] = lesson
            self._write(existing)
        logger.info(f"Saved {len(lessons)} lesson(s) to {self.store_path} ({len(existing)} total)")
        return len(lessons)

    def get_lessons(self, category: Optional[ErrorCategory] = None) -> List[LessonLearned]:
        with self._lock:
            lessons = list(self._load().values())
        if category is not None:
            lessons = [lesson for lesson in lessons if lesson.category == category]
        return sorted(lessons, key=lambda lesson: lesson.confidence, reverse=True)

    @staticmethod
    def _merge(previous: LessonLearned, new: LessonLearned) -> LessonLearned:
        new.confidence = max(previous.confidence, new.confidence)
        new.verified = previous.verified or new.verified
        new.created_at = previous.created_at
        return new

    def _load(self) -> Dict[str, LessonLearned]:
        if not self.store_path.exists():
            return {}
        try:
            with open(self.store_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Lesson store {self.store_path} is not valid JSON: {e}")
            raise
        lessons = {}
        for item in data.get("lessons", []):
            try:
                lesson = LessonLearned.from_dict(item)
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed lesson in {self.store_path}: {e}")
                continue
            lessons[lesson.lesson_id] = lesson
        return lessons

    def _write(self, lessons: Dict[str, LessonLearned]) -> None:
        self.store_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.store_path.with_suffix(self.store_path.suffix + ".tmp")
        payload = {"version": 1, "lessons": [lesson.to_dict() for lesson in lessons.values()]}
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2)
        tmp_path.replace(self.store_path)
