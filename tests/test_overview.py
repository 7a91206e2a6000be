from __future__ import annotations

from rich.console import Console

from coursedesk.services.storage import CourseRepository
from coursedesk.ui.modern import ModernUI
from coursedesk.ui.overview import collect_overview


def test_collect_overview_counts_files(sample_lesson) -> None:
    repository, lesson_id = sample_lesson
    repository.add_file(
        "teacher",
        lesson_id,
        original_name="syllabus.pdf",
        stored_name="1_abc.pdf",
        stored_path="/uploads/teacher-files/1_abc.pdf",
        extension="pdf",
        size_bytes=10,
        mime_type="application/pdf",
    )
    repository.update_lesson_slide(lesson_id, "/uploads/lesson-files/2_def.pptx")

    snapshot = collect_overview(repository)

    assert (snapshot.course_count, snapshot.module_count, snapshot.lesson_count) == (1, 1, 1)
    assert snapshot.file_totals == {"teacher": 1, "student": 0, "homework": 0, "slides": 1}
    lesson = snapshot.courses[0].modules[0].lessons[0]
    assert lesson.labels == ["1 teacher files (Protected)", "slide deck"]


def test_modern_ui_renders_tree(sample_lesson) -> None:
    repository, _lesson_id = sample_lesson
    console = Console(record=True, width=120)

    ModernUI(repository, console=console).run()

    output = console.export_text()
    assert "Physics" in output
    assert "Newton's Laws" in output
    assert "No files yet" in output


def test_modern_ui_handles_empty_catalogue(temp_config) -> None:
    console = Console(record=True, width=80)

    ModernUI(CourseRepository(temp_config), console=console).run()

    assert "No courses have been created yet." in console.export_text()
