"""Persistence helpers backed by SQLite."""

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..config import AppConfig
from ..viewer.policy import FileCategory, UPLOAD_CATEGORIES


RECORD_STATUSES = ("active", "inactive", "archived")

FILE_TABLES: Dict[FileCategory, str] = {
    FileCategory.TEACHER: "teacher_files",
    FileCategory.STUDENT: "student_files",
    FileCategory.HOMEWORK: "homework_files",
}

_STATUS_TABLES = {"course": "courses", "module": "modules", "lesson": "lessons"}


@dataclass
class CourseRecord:
    id: int
    title: str
    description: str
    position: int
    status: str


@dataclass
class ModuleRecord:
    id: int
    course_id: int
    title: str
    description: str
    position: int
    status: str


@dataclass
class LessonRecord:
    id: int
    module_id: int
    title: str
    description: str
    position: int
    status: str
    slide_path: Optional[str]
    quiz_link: Optional[str]


@dataclass
class FileAssetRecord:
    id: int
    category: FileCategory
    lesson_id: int
    original_name: str
    stored_name: str
    stored_path: str
    extension: str
    size_bytes: int
    mime_type: Optional[str]
    uploaded_by: Optional[int]
    created_at: str
    student_id: Optional[int] = None
    due_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "category": self.category.value,
            "lesson_id": self.lesson_id,
            "file_name": self.original_name,
            "stored_name": self.stored_name,
            "file_path": self.stored_path,
            "file_type": self.extension,
            "file_size": self.size_bytes,
            "mime_type": self.mime_type,
            "uploaded_by": self.uploaded_by,
            "created_at": self.created_at,
        }
        if self.category is FileCategory.STUDENT:
            payload["student_id"] = self.student_id
        if self.category is FileCategory.HOMEWORK:
            payload["due_date"] = self.due_date
        return payload


_FILE_COLUMNS = (
    "id, lesson_id, original_name, stored_name, stored_path, extension, "
    "size_bytes, mime_type, uploaded_by, created_at"
)


LOGGER = logging.getLogger(__name__)


def _file_table(category: FileCategory | str) -> Tuple[FileCategory, str]:
    resolved = FileCategory(category)
    if resolved not in UPLOAD_CATEGORIES:
        raise ValueError(f"Category '{resolved.value}' has no file collection")
    return resolved, FILE_TABLES[resolved]


class CourseRepository:
    """CRUD helpers for the course tree and the three file collections."""

    def __init__(
        self,
        config: AppConfig,
        *,
        event_emitter: Optional[Callable[..., None]] = None,
    ) -> None:
        self._db_path = config.database_file
        self._event_emitter: Optional[Callable[..., None]] = event_emitter

    def configure_event_emitter(self, emitter: Optional[Callable[..., None]]) -> None:
        """Register the callable responsible for emitting structured DB events."""

        self._event_emitter = emitter

    @contextlib.contextmanager
    def _track_db_event(self, action: str, **payload: Any):
        """Emit a structured event capturing execution time for a DB action."""

        if self._event_emitter is None:
            yield payload
            return

        start = time.perf_counter()
        event_payload: Dict[str, Any] = dict(payload)
        failed = False
        try:
            yield event_payload
        except Exception as exc:
            failed = True
            event_payload.setdefault("status", "error")
            event_payload.setdefault("error", f"{exc.__class__.__name__}: {exc}")
            raise
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            if not failed:
                event_payload.setdefault("status", "ok")
            self._event_emitter(
                "DB_QUERY",
                action,
                payload={key: value for key, value in event_payload.items() if value is not None},
                duration_ms=duration_ms,
            )

    def _execute(
        self,
        connection: sqlite3.Connection,
        statement: str,
        parameters: Sequence[Any] | None = None,
        *,
        action: str,
    ) -> sqlite3.Cursor:
        params = tuple(parameters or ())
        LOGGER.debug("Executing %s with %s parameter(s)", action, len(params))
        return connection.execute(statement, params)

    def _connect(self) -> sqlite3.Connection:
        LOGGER.debug("Opening SQLite connection to %s", self._db_path)
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        return connection

    def _next_position(
        self,
        connection: sqlite3.Connection,
        table: str,
        *,
        filter_field: Optional[str] = None,
        filter_value: Optional[int] = None,
    ) -> int:
        query = f"SELECT COALESCE(MAX(position), -1) + 1 FROM {table}"
        params: List[object] = []
        if filter_field is not None:
            query += f" WHERE {filter_field} = ?"
            params.append(filter_value)
        row = self._execute(connection, query, params, action=f"{table}.next_position").fetchone()
        return int(row[0] or 0) if row is not None else 0

    # ---------------------------------------------------------------------
    # Course tree
    # ---------------------------------------------------------------------
    def add_course(self, title: str, description: str = "", *, status: str = "active") -> int:
        with self._track_db_event("add_course", table="courses", title=title) as event:
            with self._connect() as connection:
                position = self._next_position(connection, "courses")
                cursor = self._execute(
                    connection,
                    "INSERT INTO courses(title, description, position, status) VALUES (?, ?, ?, ?)",
                    (title, description, position, status),
                    action="courses.insert",
                )
                event.update({"course_id": int(cursor.lastrowid), "position": position})
                return int(cursor.lastrowid)

    def add_module(
        self, course_id: int, title: str, description: str = "", *, status: str = "active"
    ) -> int:
        with self._track_db_event(
            "add_module", table="modules", course_id=course_id, title=title
        ) as event:
            with self._connect() as connection:
                position = self._next_position(
                    connection, "modules", filter_field="course_id", filter_value=course_id
                )
                cursor = self._execute(
                    connection,
                    "INSERT INTO modules(course_id, title, description, position, status) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (course_id, title, description, position, status),
                    action="modules.insert",
                )
                event.update({"module_id": int(cursor.lastrowid), "position": position})
                return int(cursor.lastrowid)

    def add_lesson(
        self,
        module_id: int,
        title: str,
        description: str = "",
        *,
        status: str = "active",
        slide_path: Optional[str] = None,
        quiz_link: Optional[str] = None,
    ) -> int:
        with self._track_db_event(
            "add_lesson",
            table="lessons",
            module_id=module_id,
            title=title,
            has_slide=bool(slide_path),
        ) as event:
            with self._connect() as connection:
                position = self._next_position(
                    connection, "lessons", filter_field="module_id", filter_value=module_id
                )
                cursor = self._execute(
                    connection,
                    """
                    INSERT INTO lessons(
                        module_id, title, description, position, status, slide_path, quiz_link
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (module_id, title, description, position, status, slide_path, quiz_link),
                    action="lessons.insert",
                )
                event.update({"lesson_id": int(cursor.lastrowid), "position": position})
                return int(cursor.lastrowid)

    def get_course(self, course_id: int) -> Optional[CourseRecord]:
        with self._connect() as connection:
            row = self._execute(
                connection,
                "SELECT id, title, description, position, status FROM courses WHERE id = ?",
                (course_id,),
                action="courses.get",
            ).fetchone()
        return CourseRecord(**row) if row else None

    def get_module(self, module_id: int) -> Optional[ModuleRecord]:
        with self._connect() as connection:
            row = self._execute(
                connection,
                "SELECT id, course_id, title, description, position, status "
                "FROM modules WHERE id = ?",
                (module_id,),
                action="modules.get",
            ).fetchone()
        return ModuleRecord(**row) if row else None

    def get_lesson(self, lesson_id: int) -> Optional[LessonRecord]:
        with self._track_db_event("get_lesson", table="lessons", lesson_id=lesson_id) as event:
            with self._connect() as connection:
                row = self._execute(
                    connection,
                    "SELECT id, module_id, title, description, position, status, slide_path, "
                    "quiz_link FROM lessons WHERE id = ?",
                    (lesson_id,),
                    action="lessons.get",
                ).fetchone()
            event["found"] = bool(row)
        return LessonRecord(**row) if row else None

    def iter_courses(self, *, active_only: bool = False) -> Iterable[CourseRecord]:
        query = "SELECT id, title, description, position, status FROM courses"
        if active_only:
            query += " WHERE status = 'active'"
        query += " ORDER BY position, id"
        with self._connect() as connection:
            rows = self._execute(connection, query, action="courses.list").fetchall()
        for row in rows:
            yield CourseRecord(**row)

    def iter_modules(self, course_id: int, *, active_only: bool = False) -> Iterable[ModuleRecord]:
        query = (
            "SELECT id, course_id, title, description, position, status "
            "FROM modules WHERE course_id = ?"
        )
        if active_only:
            query += " AND status = 'active'"
        query += " ORDER BY position, id"
        with self._connect() as connection:
            rows = self._execute(connection, query, (course_id,), action="modules.list").fetchall()
        for row in rows:
            yield ModuleRecord(**row)

    def iter_lessons(self, module_id: int, *, active_only: bool = False) -> Iterable[LessonRecord]:
        query = (
            "SELECT id, module_id, title, description, position, status, slide_path, quiz_link "
            "FROM lessons WHERE module_id = ?"
        )
        if active_only:
            query += " AND status = 'active'"
        query += " ORDER BY position, id"
        with self._connect() as connection:
            rows = self._execute(connection, query, (module_id,), action="lessons.list").fetchall()
        for row in rows:
            yield LessonRecord(**row)

    def set_status(self, kind: str, record_id: int, status: str) -> None:
        """Set the visibility status of a course, module or lesson."""

        if status not in RECORD_STATUSES:
            raise ValueError(f"Unsupported status '{status}'")
        table = _STATUS_TABLES.get(kind)
        if table is None:
            raise ValueError(f"Unsupported record kind '{kind}'")
        with self._track_db_event("set_status", table=table, record_id=record_id, status=status):
            with self._connect() as connection:
                self._execute(
                    connection,
                    f"UPDATE {table} SET status = ? WHERE id = ?",
                    (status, record_id),
                    action=f"{table}.update_status",
                )

    def update_lesson_slide(self, lesson_id: int, slide_path: Optional[str]) -> None:
        with self._track_db_event(
            "update_lesson_slide",
            table="lessons",
            lesson_id=lesson_id,
            cleared=slide_path is None,
        ) as event:
            with self._connect() as connection:
                cursor = self._execute(
                    connection,
                    "UPDATE lessons SET slide_path = ? WHERE id = ?",
                    (slide_path, lesson_id),
                    action="lessons.update_slide",
                )
                event["rowcount"] = cursor.rowcount

    # ---------------------------------------------------------------------
    # File collections
    # ---------------------------------------------------------------------
    def add_file(
        self,
        category: FileCategory | str,
        lesson_id: int,
        *,
        original_name: str,
        stored_name: str,
        stored_path: str,
        extension: str,
        size_bytes: int,
        mime_type: Optional[str],
        uploaded_by: Optional[int] = None,
        student_id: Optional[int] = None,
        due_date: Optional[str] = None,
    ) -> FileAssetRecord:
        resolved, table = _file_table(category)
        created_at = datetime.now(timezone.utc).isoformat()
        columns = [
            "lesson_id",
            "original_name",
            "stored_name",
            "stored_path",
            "extension",
            "size_bytes",
            "mime_type",
            "uploaded_by",
            "created_at",
        ]
        values: List[Any] = [
            lesson_id,
            original_name,
            stored_name,
            stored_path,
            extension,
            int(size_bytes),
            mime_type,
            uploaded_by,
            created_at,
        ]
        if resolved is FileCategory.STUDENT:
            columns.append("student_id")
            values.append(student_id)
        if resolved is FileCategory.HOMEWORK:
            columns.append("due_date")
            values.append(due_date)
        placeholders = ", ".join("?" for _ in columns)

        with self._track_db_event(
            "add_file",
            table=table,
            lesson_id=lesson_id,
            extension=extension,
            size_bytes=size_bytes,
        ) as event:
            with self._connect() as connection:
                cursor = self._execute(
                    connection,
                    f"INSERT INTO {table}({', '.join(columns)}) VALUES ({placeholders})",
                    values,
                    action=f"{table}.insert",
                )
                file_id = int(cursor.lastrowid)
                event["file_id"] = file_id

        record = self.get_file(resolved, file_id)
        assert record is not None  # nosec - inserted above
        return record

    def _row_to_file(self, category: FileCategory, row: sqlite3.Row) -> FileAssetRecord:
        data = dict(row)
        return FileAssetRecord(category=category, **data)

    def _file_columns(self, category: FileCategory) -> str:
        if category is FileCategory.STUDENT:
            return f"{_FILE_COLUMNS}, student_id"
        if category is FileCategory.HOMEWORK:
            return f"{_FILE_COLUMNS}, due_date"
        return _FILE_COLUMNS

    def get_file(self, category: FileCategory | str, file_id: int) -> Optional[FileAssetRecord]:
        resolved, table = _file_table(category)
        with self._connect() as connection:
            row = self._execute(
                connection,
                f"SELECT {self._file_columns(resolved)} FROM {table} WHERE id = ?",
                (file_id,),
                action=f"{table}.get",
            ).fetchone()
        return self._row_to_file(resolved, row) if row else None

    def list_files(self, category: FileCategory | str, lesson_id: int) -> List[FileAssetRecord]:
        resolved, table = _file_table(category)
        with self._connect() as connection:
            rows = self._execute(
                connection,
                f"SELECT {self._file_columns(resolved)} FROM {table} "
                "WHERE lesson_id = ? ORDER BY created_at DESC, id DESC",
                (lesson_id,),
                action=f"{table}.list",
            ).fetchall()
        return [self._row_to_file(resolved, row) for row in rows]

    def remove_file(self, category: FileCategory | str, file_id: int) -> bool:
        resolved, table = _file_table(category)
        with self._track_db_event("remove_file", table=table, file_id=file_id) as event:
            with self._connect() as connection:
                cursor = self._execute(
                    connection,
                    f"DELETE FROM {table} WHERE id = ?",
                    (file_id,),
                    action=f"{table}.delete",
                )
                removed = cursor.rowcount > 0
                event["removed"] = removed
                return removed


__all__ = [
    "CourseRecord",
    "CourseRepository",
    "FILE_TABLES",
    "FileAssetRecord",
    "LessonRecord",
    "ModuleRecord",
    "RECORD_STATUSES",
]
