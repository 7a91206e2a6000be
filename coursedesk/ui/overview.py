"""Shared helpers for building overview snapshots of the course catalogue."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from ..services.storage import CourseRecord, CourseRepository, LessonRecord, ModuleRecord
from ..viewer.policy import FileCategory, UPLOAD_CATEGORIES, badge_for


FILE_LABELS: Dict[str, str] = {
    FileCategory.TEACHER.value: "Teacher files",
    FileCategory.STUDENT.value: "Student files",
    FileCategory.HOMEWORK.value: "Homework",
    FileCategory.SLIDES.value: "Slide decks",
}


@dataclass
class LessonOverview:
    record: LessonRecord
    file_counts: Dict[str, int]

    @property
    def labels(self) -> List[str]:
        labels: List[str] = []
        for category in UPLOAD_CATEGORIES:
            count = self.file_counts.get(category.value, 0)
            if count:
                badge = badge_for(category)
                suffix = f" ({badge})" if badge else ""
                labels.append(f"{count} {FILE_LABELS[category.value].lower()}{suffix}")
        if self.record.slide_path:
            labels.append("slide deck")
        return labels


@dataclass
class ModuleOverview:
    record: ModuleRecord
    lessons: List[LessonOverview]


@dataclass
class CourseOverview:
    record: CourseRecord
    modules: List[ModuleOverview]


@dataclass
class OverviewSnapshot:
    courses: List[CourseOverview]
    course_count: int
    module_count: int
    lesson_count: int
    file_totals: Dict[str, int] = field(default_factory=dict)


def collect_overview(repository: CourseRepository, *, active_only: bool = False) -> OverviewSnapshot:
    """Aggregate repository data into a convenient snapshot for UIs."""

    courses: List[CourseOverview] = []
    module_count = 0
    lesson_count = 0
    file_totals = {key: 0 for key in FILE_LABELS}

    for course_record in repository.iter_courses(active_only=active_only):
        modules: List[ModuleOverview] = []
        for module_record in repository.iter_modules(course_record.id, active_only=active_only):
            module_count += 1
            lessons: List[LessonOverview] = []
            for lesson_record in repository.iter_lessons(module_record.id, active_only=active_only):
                lesson_count += 1
                counts = {
                    category.value: len(repository.list_files(category, lesson_record.id))
                    for category in UPLOAD_CATEGORIES
                }
                counts[FileCategory.SLIDES.value] = 1 if lesson_record.slide_path else 0
                for key, value in counts.items():
                    file_totals[key] += value
                lessons.append(LessonOverview(record=lesson_record, file_counts=counts))
            modules.append(ModuleOverview(record=module_record, lessons=lessons))
        courses.append(CourseOverview(record=course_record, modules=modules))

    return OverviewSnapshot(
        courses=courses,
        course_count=len(courses),
        module_count=module_count,
        lesson_count=lesson_count,
        file_totals=file_totals,
    )


__all__ = [
    "CourseOverview",
    "FILE_LABELS",
    "LessonOverview",
    "ModuleOverview",
    "OverviewSnapshot",
    "collect_overview",
]
