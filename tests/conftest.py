from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from coursedesk.bootstrap import Bootstrapper
from coursedesk.config import AppConfig
from coursedesk.services.storage import CourseRepository


@pytest.fixture()
def temp_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    config_file = config_dir / "default.json"
    config_file.write_text(
        """
        {
            \"storage_root\": \"storage\",\n
            \"database_file\": \"storage/coursedesk.db\"\n
        }
        """,
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)

    config = AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "database_file": "storage/coursedesk.db",
            "public_base_url": "https://courses.example.com",
        },
        base_path=tmp_path,
    )

    Bootstrapper(config).initialize()
    return config


@pytest.fixture()
def sample_lesson(temp_config: AppConfig):
    repository = CourseRepository(temp_config)
    course_id = repository.add_course("Physics", "Introductory course")
    module_id = repository.add_module(course_id, "Classical Mechanics")
    lesson_id = repository.add_lesson(module_id, "Newton's Laws")
    return repository, lesson_id
