"""Read-only course navigation tree and viewer links."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Any, Dict, List
from urllib.parse import urlencode

from ..viewer.policy import FileCategory, UPLOAD_CATEGORIES
from ..viewer.renderer import ViewRequest
from .storage import CourseRecord, CourseRepository, FileAssetRecord, LessonRecord, ModuleRecord


def viewer_link(request: ViewRequest) -> str:
    """Return the ``/viewer`` URL that opens *request*."""

    query = urlencode(
        {
            "file": request.file_path,
            "type": request.extension,
            "category": request.category.value,
            "name": request.file_name,
        }
    )
    return f"/viewer?{query}"


def view_request_for_file(record: FileAssetRecord) -> ViewRequest:
    return ViewRequest.build(
        record.stored_path,
        extension=record.extension,
        category=record.category,
        file_name=record.original_name,
    )


def view_request_for_slide(lesson: LessonRecord) -> ViewRequest:
    if not lesson.slide_path:
        raise ValueError(f"Lesson {lesson.id} has no slide deck")
    return ViewRequest.build(
        lesson.slide_path,
        category=FileCategory.SLIDES,
        file_name=f"{lesson.title} - Slides",
    )


def _serialize_file(record: FileAssetRecord) -> Dict[str, Any]:
    payload = record.to_dict()
    payload["viewer_url"] = viewer_link(view_request_for_file(record))
    return payload


def _serialize_lesson(repository: CourseRepository, lesson: LessonRecord) -> Dict[str, Any]:
    files: Dict[str, List[Dict[str, Any]]] = {
        f"{category.value}_files": [
            _serialize_file(record) for record in repository.list_files(category, lesson.id)
        ]
        for category in UPLOAD_CATEGORIES
    }
    slide: Dict[str, Any] | None = None
    if lesson.slide_path:
        request = view_request_for_slide(lesson)
        slide = {
            "file_path": lesson.slide_path,
            "file_type": request.extension,
            "file_name": PurePosixPath(lesson.slide_path).name,
            "viewer_url": viewer_link(request),
        }
    return {
        "id": lesson.id,
        "module_id": lesson.module_id,
        "title": lesson.title,
        "description": lesson.description,
        "position": lesson.position,
        "status": lesson.status,
        "slide_path": lesson.slide_path,
        "slide": slide,
        "quiz_link": lesson.quiz_link,
        **files,
    }


def _serialize_module(repository: CourseRepository, module: ModuleRecord) -> Dict[str, Any]:
    lessons = [
        _serialize_lesson(repository, lesson)
        for lesson in repository.iter_lessons(module.id, active_only=True)
    ]
    return {
        "id": module.id,
        "course_id": module.course_id,
        "title": module.title,
        "description": module.description,
        "position": module.position,
        "status": module.status,
        "lessons": lessons,
        "lesson_count": len(lessons),
    }


def _serialize_course(repository: CourseRepository, course: CourseRecord) -> Dict[str, Any]:
    modules = [
        _serialize_module(repository, module)
        for module in repository.iter_modules(course.id, active_only=True)
    ]
    return {
        "id": course.id,
        "title": course.title,
        "description": course.description,
        "position": course.position,
        "status": course.status,
        "modules": modules,
        "module_count": len(modules),
    }


def build_navigation(repository: CourseRepository) -> List[Dict[str, Any]]:
    """Return the active course tree with file references and viewer links."""

    return [
        _serialize_course(repository, course)
        for course in repository.iter_courses(active_only=True)
    ]


__all__ = [
    "build_navigation",
    "view_request_for_file",
    "view_request_for_slide",
    "viewer_link",
]
