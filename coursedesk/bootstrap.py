"""Bootstrap logic that prepares runtime directories and the SQLite database."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from . import config as config_module
from .config import AppConfig, load_config

LOGGER = logging.getLogger(__name__)

CATEGORY_DIRECTORY_NAMES = ("teacher-files", "student-files", "homework-files", "lesson-files")


class BootstrapError(RuntimeError):
    """Raised when initialization cannot be completed."""


class Bootstrapper:
    """High level object orchestrating initialization steps."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    @property
    def config(self) -> AppConfig:
        return self._config

    def initialize(self) -> None:
        """Run all bootstrap tasks."""

        LOGGER.debug("Starting bootstrap sequence")
        self._ensure_directories()
        self._ensure_database()
        LOGGER.info("Bootstrap completed successfully")

    def _ensure_directories(self) -> None:
        if not config_module._ensure_writable_directory(self._config.storage_root):
            raise BootstrapError(
                f"Storage directory '{self._config.storage_root}' is not writable"
            )
        uploads_root = self._config.uploads_root
        for path in (uploads_root, *(uploads_root / name for name in CATEGORY_DIRECTORY_NAMES)):
            path.mkdir(parents=True, exist_ok=True)
            LOGGER.debug("Ensured directory exists: %s", path)

    def _ensure_database(self) -> None:
        LOGGER.debug("Ensuring database schema at %s", self._config.database_file)
        self._config.database_file.parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(self._config.database_file)
        try:
            cursor = connection.cursor()
            cursor.executescript(
                """
                PRAGMA foreign_keys = ON;
                CREATE TABLE IF NOT EXISTS courses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT DEFAULT '',
                    position INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'active'
                );

                CREATE TABLE IF NOT EXISTS modules (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    course_id INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT DEFAULT '',
                    position INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'active',
                    FOREIGN KEY(course_id) REFERENCES courses(id) ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS lessons (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    module_id INTEGER NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT DEFAULT '',
                    position INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'active',
                    slide_path TEXT,
                    FOREIGN KEY(module_id) REFERENCES modules(id) ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS teacher_files (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    lesson_id INTEGER NOT NULL,
                    original_name TEXT NOT NULL,
                    stored_name TEXT NOT NULL,
                    stored_path TEXT NOT NULL UNIQUE,
                    extension TEXT NOT NULL,
                    size_bytes INTEGER NOT NULL DEFAULT 0,
                    mime_type TEXT,
                    uploaded_by INTEGER,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(lesson_id) REFERENCES lessons(id) ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS student_files (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    lesson_id INTEGER NOT NULL,
                    original_name TEXT NOT NULL,
                    stored_name TEXT NOT NULL,
                    stored_path TEXT NOT NULL UNIQUE,
                    extension TEXT NOT NULL,
                    size_bytes INTEGER NOT NULL DEFAULT 0,
                    mime_type TEXT,
                    uploaded_by INTEGER,
                    created_at TEXT NOT NULL,
                    student_id INTEGER,
                    FOREIGN KEY(lesson_id) REFERENCES lessons(id) ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS homework_files (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    lesson_id INTEGER NOT NULL,
                    original_name TEXT NOT NULL,
                    stored_name TEXT NOT NULL,
                    stored_path TEXT NOT NULL UNIQUE,
                    extension TEXT NOT NULL,
                    size_bytes INTEGER NOT NULL DEFAULT 0,
                    mime_type TEXT,
                    uploaded_by INTEGER,
                    created_at TEXT NOT NULL,
                    due_date TEXT,
                    FOREIGN KEY(lesson_id) REFERENCES lessons(id) ON DELETE CASCADE
                );
                """
            )
            connection.commit()

            # quiz_link arrived after the first schema revision
            try:
                cursor.execute("ALTER TABLE lessons ADD COLUMN quiz_link TEXT")
            except sqlite3.OperationalError as error:
                message = str(error).lower()
                if "duplicate column name" not in message:
                    raise
            connection.commit()
        finally:
            connection.close()


def initialize_app(config_path: Path | None = None) -> AppConfig:
    """Convenience helper that loads configuration and runs initialization."""

    config = load_config(config_path=config_path)
    bootstrapper = Bootstrapper(config)
    bootstrapper.initialize()
    return config


__all__ = ["BootstrapError", "Bootstrapper", "CATEGORY_DIRECTORY_NAMES", "initialize_app"]
