from pathlib import Path

import coursedesk.config as config_module
from coursedesk.config import (
    AppConfig,
    DEFAULT_MAX_UPLOAD_BYTES,
    DEFAULT_MESSAGE_WINDOW_SECONDS,
    DEFAULT_SESSION_RETENTION_SECONDS,
    DEFAULT_VIEWER_TIMEOUT_SECONDS,
    load_config,
)


def test_from_mapping_applies_defaults(tmp_path: Path) -> None:
    config = AppConfig.from_mapping(
        {"storage_root": "storage", "database_file": "storage/coursedesk.db"},
        base_path=tmp_path,
    )

    assert config.storage_root == (tmp_path / "storage").resolve()
    assert config.database_file == (tmp_path / "storage" / "coursedesk.db").resolve()
    assert config.uploads_root == (tmp_path / "storage" / "uploads").resolve()
    assert config.public_base_url is None
    assert config.max_upload_bytes == DEFAULT_MAX_UPLOAD_BYTES == 50 * 1024 * 1024
    assert config.viewer_timeout_seconds == DEFAULT_VIEWER_TIMEOUT_SECONDS
    assert config.message_window_seconds == DEFAULT_MESSAGE_WINDOW_SECONDS
    assert config.session_retention_seconds == DEFAULT_SESSION_RETENTION_SECONDS


def test_from_mapping_normalizes_overrides(tmp_path: Path) -> None:
    config = AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "database_file": "storage/coursedesk.db",
            "public_base_url": " https://courses.example.com/ ",
            "max_upload_bytes": "-5",
            "viewer_timeout_seconds": "8",
            "message_window_seconds": "not a number",
            "session_retention_seconds": "120",
        },
        base_path=tmp_path,
    )

    assert config.public_base_url == "https://courses.example.com"
    assert config.max_upload_bytes == DEFAULT_MAX_UPLOAD_BYTES
    assert config.viewer_timeout_seconds == 8.0
    assert config.message_window_seconds == DEFAULT_MESSAGE_WINDOW_SECONDS
    assert config.session_retention_seconds == 120.0


def test_storage_root_falls_back_when_preferred_is_unusable(
    tmp_path: Path, monkeypatch
) -> None:
    home_dir = tmp_path / "home"
    monkeypatch.setattr(config_module.Path, "home", lambda: home_dir)

    preferred_storage = tmp_path / "storage"
    preferred_storage.write_text("not a directory", encoding="utf-8")

    config = AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "database_file": "storage/coursedesk.db",
        },
        base_path=tmp_path,
    )

    expected_storage = (home_dir / ".coursedesk" / "storage").resolve()
    expected_database = (expected_storage / "coursedesk.db").resolve()

    assert config.storage_root == expected_storage
    assert config.database_file == expected_database
    assert expected_storage.exists()


def test_load_config_reads_json_file(tmp_path: Path) -> None:
    config_file = tmp_path / "custom.json"
    config_file.write_text(
        '{"storage_root": "storage", "database_file": "storage/coursedesk.db", '
        '"viewer_timeout_seconds": 2}',
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.viewer_timeout_seconds == 2.0
    assert config.database_file.name == "coursedesk.db"
