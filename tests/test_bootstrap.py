import sqlite3
from pathlib import Path

import pytest

import coursedesk.config as config_module
from coursedesk.bootstrap import CATEGORY_DIRECTORY_NAMES, BootstrapError, Bootstrapper
from coursedesk.config import AppConfig


def test_bootstrapper_raises_when_storage_directory_unwritable(
    tmp_path: Path, monkeypatch
) -> None:
    storage_root = tmp_path / "storage"
    database_file = storage_root / "coursedesk.db"

    config = AppConfig(storage_root=storage_root, database_file=database_file)

    original_ensure = config_module._ensure_writable_directory

    def fake_ensure(path: Path) -> bool:
        if path.resolve() == storage_root.resolve():
            return False
        return original_ensure(path)

    monkeypatch.setattr(config_module, "_ensure_writable_directory", fake_ensure)

    bootstrapper = Bootstrapper(config)

    with pytest.raises(BootstrapError) as excinfo:
        bootstrapper.initialize()

    assert "storage" in str(excinfo.value).lower()


def test_bootstrapper_creates_upload_directories_and_tables(temp_config: AppConfig) -> None:
    for name in CATEGORY_DIRECTORY_NAMES:
        assert (temp_config.uploads_root / name).is_dir()

    connection = sqlite3.connect(temp_config.database_file)
    try:
        tables = {
            row[0]
            for row in connection.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
        lesson_columns = {row[1] for row in connection.execute("PRAGMA table_info(lessons)")}
    finally:
        connection.close()

    assert {
        "courses",
        "modules",
        "lessons",
        "teacher_files",
        "student_files",
        "homework_files",
    } <= tables
    assert {"slide_path", "quiz_link"} <= lesson_columns


def test_bootstrapper_is_idempotent(temp_config: AppConfig) -> None:
    Bootstrapper(temp_config).initialize()
    Bootstrapper(temp_config).initialize()
