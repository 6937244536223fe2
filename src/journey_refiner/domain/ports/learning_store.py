from abc import ABC, abstractmethod
from typing import List, Optional

from journey_refiner.domain.models.error_analysis import ErrorCategory
from journey_refiner.domain.models.refinement import LessonLearned


class LearningStorePort(ABC):
    """Interface for persisting lessons learned from successful sessions."""

    @abstractmethod
    def save_lessons(self, lessons: List[LessonLearned]) -> int:
        """
        Stores lessons, replacing any with the same lesson_id.

        Args:
            lessons: Lessons to store.

        Returns:
            Number of lessons written.
        """
        pass

    @abstractmethod
    def get_lessons(self, category: Optional[ErrorCategory] = None) -> List[LessonLearned]:
        """
        Loads stored lessons.

        Args:
            category: When given, only lessons for this error category.

        Returns:
            Lessons ordered by descending confidence.
        """
        pass
