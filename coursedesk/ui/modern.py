"""A Rich-powered console overview of courses and their files."""

from __future__ import annotations

from typing import Iterable, Optional

from rich import box
from rich.columns import Columns
from rich.console import Console, Group
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from ..services.storage import CourseRecord, CourseRepository, ModuleRecord
from .overview import CourseOverview, FILE_LABELS, LessonOverview, OverviewSnapshot, collect_overview


class ModernUI:
    """Render the course tree and file totals using Rich widgets."""

    def __init__(self, repository: CourseRepository, *, console: Optional[Console] = None) -> None:
        self._repository = repository
        self._console = console or Console()

    def run(self) -> None:
        snapshot = collect_overview(self._repository)
        console = self._console

        console.rule("[bold magenta]Course Desk Overview")

        if snapshot.course_count == 0:
            console.print(
                Panel(
                    "No courses have been created yet.",
                    border_style="yellow",
                    box=box.ROUNDED,
                )
            )
            return

        tree_panel = Panel(
            self._build_tree(snapshot.courses),
            title="Catalogue",
            border_style="cyan",
            box=box.ROUNDED,
        )
        console.print(Columns([tree_panel, self._build_stats_panel(snapshot)], expand=True, equal=True))

    def _build_tree(self, courses: Iterable[CourseOverview]) -> Tree:
        tree = Tree("[bold cyan]Courses", guide_style="cyan")

        for course_overview in courses:
            course_node = tree.add(self._build_course_label(course_overview.record))
            if not course_overview.modules:
                course_node.add("[dim]No modules yet")
                continue

            for module_overview in course_overview.modules:
                module_node = course_node.add(self._build_module_label(module_overview.record))
                if not module_overview.lessons:
                    module_node.add("[dim]No lessons yet")
                    continue

                for lesson_overview in module_overview.lessons:
                    module_node.add(self._build_lesson_label(lesson_overview))

        return tree

    @staticmethod
    def _status_suffix(status: str) -> str:
        return "" if status == "active" else f" [{status}]"

    @classmethod
    def _build_course_label(cls, record: CourseRecord) -> Text:
        label = Text(record.title + cls._status_suffix(record.status), style="bold")
        if record.description:
            label.append("\n")
            label.append(record.description, style="dim")
        return label

    @classmethod
    def _build_module_label(cls, record: ModuleRecord) -> Text:
        label = Text(record.title + cls._status_suffix(record.status), style="bright_cyan")
        if record.description:
            label.append("\n")
            label.append(record.description, style="dim")
        return label

    @classmethod
    def _build_lesson_label(cls, overview: LessonOverview) -> Text:
        record = overview.record
        label = Text(record.title + cls._status_suffix(record.status), style="white")
        label.append("  ")
        if overview.labels:
            label.append(" · ".join(overview.labels), style="green")
        else:
            label.append("No files yet", style="dim")
        return label

    def _build_stats_panel(self, snapshot: OverviewSnapshot) -> Panel:
        metrics = Table.grid(expand=True, padding=(0, 1))
        metrics.add_column(style="dim")
        metrics.add_column(justify="right", style="bold")
        metrics.add_row("Courses", str(snapshot.course_count))
        metrics.add_row("Modules", str(snapshot.module_count))
        metrics.add_row("Lessons", str(snapshot.lesson_count))

        files = Table.grid(expand=True, padding=(0, 1))
        files.add_column(style="dim")
        files.add_column(justify="right", style="bold")
        for key, label in FILE_LABELS.items():
            files.add_row(label, str(snapshot.file_totals.get(key, 0)))

        body = Group(metrics, Rule(style="magenta"), files)
        return Panel(body, title="At a glance", border_style="magenta", box=box.ROUNDED)


__all__ = ["ModernUI"]
