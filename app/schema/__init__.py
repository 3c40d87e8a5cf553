"""ORM tables; importing the package registers every table on Base.metadata."""

from .courses import CourseGenerationInputRow, CourseOutlineRow, GeneratedLessonRow, LessonComponentRow, OutlineLessonRow, OutlineSectionRow
from .jobs import GenerationJobRow

__all__ = ["CourseGenerationInputRow", "CourseOutlineRow", "GeneratedLessonRow", "GenerationJobRow", "LessonComponentRow", "OutlineLessonRow", "OutlineSectionRow"]
