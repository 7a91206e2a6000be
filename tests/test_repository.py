from __future__ import annotations

import pytest

from coursedesk.config import AppConfig
from coursedesk.services.storage import CourseRepository
from coursedesk.viewer.policy import FileCategory


def _add_sample_file(repository: CourseRepository, category, lesson_id: int, name: str, **extra):
    return repository.add_file(
        category,
        lesson_id,
        original_name=name,
        stored_name=f"1700000000000_{name}",
        stored_path=f"/uploads/{category}-files/1700000000000_{name}",
        extension=name.rsplit(".", 1)[-1],
        size_bytes=128,
        mime_type="application/pdf",
        **extra,
    )


def test_repository_course_tree_cycle(temp_config: AppConfig) -> None:
    repository = CourseRepository(temp_config)

    course_id = repository.add_course("Physics", "Introductory course")
    module_id = repository.add_module(course_id, "Classical Mechanics")
    lesson_id = repository.add_lesson(
        module_id,
        "Newton's Laws",
        description="Overview of Newtonian mechanics",
        slide_path="/uploads/lesson-files/1_abc.pptx",
        quiz_link="https://quiz.example.com/1",
    )

    lesson = repository.get_lesson(lesson_id)
    assert lesson is not None
    assert lesson.title == "Newton's Laws"
    assert lesson.module_id == module_id
    assert lesson.slide_path == "/uploads/lesson-files/1_abc.pptx"
    assert lesson.quiz_link == "https://quiz.example.com/1"

    modules = list(repository.iter_modules(course_id))
    assert [module.title for module in modules] == ["Classical Mechanics"]

    repository.update_lesson_slide(lesson_id, None)
    assert repository.get_lesson(lesson_id).slide_path is None

    assert repository.get_course(999) is None
    assert repository.get_module(999) is None
    assert repository.get_lesson(999) is None


def test_repository_orders_by_position_and_filters_inactive(temp_config: AppConfig) -> None:
    repository = CourseRepository(temp_config)

    first = repository.add_course("Algebra")
    second = repository.add_course("Biology")
    hidden = repository.add_course("Chemistry", status="inactive")

    assert [course.position for course in repository.iter_courses()] == [0, 1, 2]
    assert [course.id for course in repository.iter_courses(active_only=True)] == [first, second]

    repository.set_status("course", hidden, "active")
    repository.set_status("course", first, "archived")
    assert [course.id for course in repository.iter_courses(active_only=True)] == [second, hidden]

    with pytest.raises(ValueError):
        repository.set_status("course", first, "deleted")
    with pytest.raises(ValueError):
        repository.set_status("semester", first, "active")


def test_repository_file_collections(sample_lesson) -> None:
    repository, lesson_id = sample_lesson

    teacher = _add_sample_file(repository, FileCategory.TEACHER, lesson_id, "syllabus.pdf", uploaded_by=7)
    student = _add_sample_file(repository, "student", lesson_id, "essay.pdf", student_id=42)
    homework = _add_sample_file(repository, "homework", lesson_id, "week1.pdf", due_date="2024-05-01")

    assert teacher.category is FileCategory.TEACHER
    assert teacher.to_dict()["file_name"] == "syllabus.pdf"
    assert teacher.to_dict()["uploaded_by"] == 7
    assert "student_id" not in teacher.to_dict()
    assert student.to_dict()["student_id"] == 42
    assert homework.to_dict()["due_date"] == "2024-05-01"

    assert [record.id for record in repository.list_files("teacher", lesson_id)] == [teacher.id]
    assert repository.list_files(FileCategory.STUDENT, lesson_id + 1) == []

    assert repository.remove_file("student", student.id) is True
    assert repository.remove_file("student", student.id) is False
    assert repository.get_file("student", student.id) is None


def test_repository_lists_newest_files_first(sample_lesson) -> None:
    repository, lesson_id = sample_lesson

    older = _add_sample_file(repository, "teacher", lesson_id, "a.pdf")
    newer = _add_sample_file(repository, "teacher", lesson_id, "b.pdf")

    listed = repository.list_files("teacher", lesson_id)
    assert [record.id for record in listed] == [newer.id, older.id]


def test_repository_rejects_slide_collection(sample_lesson) -> None:
    repository, lesson_id = sample_lesson

    with pytest.raises(ValueError):
        repository.list_files(FileCategory.SLIDES, lesson_id)


def test_repository_emits_db_events(temp_config: AppConfig) -> None:
    events = []
    repository = CourseRepository(
        temp_config,
        event_emitter=lambda event_type, message, **kwargs: events.append((event_type, message, kwargs)),
    )

    course_id = repository.add_course("History")

    assert events
    event_type, message, kwargs = events[-1]
    assert event_type == "DB_QUERY"
    assert message == "add_course"
    assert kwargs["payload"]["course_id"] == course_id
    assert kwargs["payload"]["status"] == "ok"
    assert kwargs["duration_ms"] >= 0
