"""Configuration loading utilities for the Course Desk application."""

from __future__ import annotations

import contextlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple


LOGGER = logging.getLogger(__name__)


_PERMISSION_SENTINEL = ".coursedesk_write_check"

DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024
DEFAULT_VIEWER_TIMEOUT_SECONDS = 5.0
DEFAULT_MESSAGE_WINDOW_SECONDS = 3.0
DEFAULT_SESSION_RETENTION_SECONDS = 60.0


def _ensure_writable_directory(path: Path) -> bool:
    """Return ``True`` if *path* can be created and written to."""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False

    test_file = path / _PERMISSION_SENTINEL
    try:
        with test_file.open("w", encoding="utf-8") as handle:
            handle.write("ok")
    except OSError:
        return False
    finally:
        with contextlib.suppress(OSError):
            test_file.unlink()

    return True


def _select_writable_directory(
    preferred: Path,
    *,
    label: str,
    fallbacks: Iterable[Path] = (),
) -> Tuple[Path, bool]:
    """Return a usable directory based on ``preferred`` and ``fallbacks``.

    The first writable candidate wins. The returned flag tells the caller
    whether a fallback was used. When nothing can be prepared the original
    ``preferred`` path is returned so that the bootstrapper can report it.
    """

    preferred = preferred.resolve()
    if _ensure_writable_directory(preferred):
        return preferred, False

    for fallback in fallbacks:
        candidate = fallback.resolve()
        if candidate == preferred:
            continue
        if _ensure_writable_directory(candidate):
            LOGGER.warning(
                "Preferred %s directory '%s' is not writable; using fallback '%s'.",
                label,
                preferred,
                candidate,
            )
            return candidate, True

    LOGGER.warning(
        "%s directory '%s' is not writable and no fallback is available.",
        label.capitalize(),
        preferred,
    )
    return preferred, False


def _coerce_positive_float(value: Any, default: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _normalize_base_url(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip().rstrip("/")
    return cleaned or None


@dataclass(frozen=True)
class AppConfig:
    """Runtime paths and limits for the application."""

    storage_root: Path
    database_file: Path
    public_base_url: Optional[str] = None
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    viewer_timeout_seconds: float = DEFAULT_VIEWER_TIMEOUT_SECONDS
    message_window_seconds: float = DEFAULT_MESSAGE_WINDOW_SECONDS
    session_retention_seconds: float = DEFAULT_SESSION_RETENTION_SECONDS

    @property
    def uploads_root(self) -> Path:
        """Directory holding every uploaded file, served under ``/uploads``."""

        return (self.storage_root / "uploads").resolve()

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any], *, base_path: Path) -> "AppConfig":
        preferred_storage = (base_path / mapping["storage_root"]).resolve()
        storage_fallback = Path.home() / ".coursedesk" / "storage"
        storage_root, storage_fallback_used = _select_writable_directory(
            preferred_storage,
            label="storage",
            fallbacks=(storage_fallback,),
        )

        database_file = (base_path / mapping["database_file"]).resolve()
        if storage_fallback_used:
            try:
                relative_database = database_file.relative_to(preferred_storage)
            except ValueError:
                relative_database = None
            if relative_database is not None:
                fallback_database = (storage_root / relative_database).resolve()
                if _ensure_writable_directory(fallback_database.parent):
                    LOGGER.warning(
                        "Preferred database location '%s' is not writable; using fallback '%s'.",
                        database_file,
                        fallback_database,
                    )
                    database_file = fallback_database

        if not _ensure_writable_directory(database_file.parent):
            fallback_database = (storage_root / database_file.name).resolve()
            if fallback_database != database_file and _ensure_writable_directory(
                fallback_database.parent
            ):
                LOGGER.warning(
                    "Preferred database location '%s' is not writable; using fallback '%s'.",
                    database_file,
                    fallback_database,
                )
                database_file = fallback_database
            else:
                LOGGER.warning(
                    "Database location '%s' is not writable and no fallback is available.",
                    database_file,
                )

        raw_limit = mapping.get("max_upload_bytes", DEFAULT_MAX_UPLOAD_BYTES)
        try:
            max_upload_bytes = int(raw_limit)
        except (TypeError, ValueError):
            max_upload_bytes = DEFAULT_MAX_UPLOAD_BYTES
        if max_upload_bytes <= 0:
            max_upload_bytes = DEFAULT_MAX_UPLOAD_BYTES

        return cls(
            storage_root=storage_root,
            database_file=database_file,
            public_base_url=_normalize_base_url(mapping.get("public_base_url")),
            max_upload_bytes=max_upload_bytes,
            viewer_timeout_seconds=_coerce_positive_float(
                mapping.get("viewer_timeout_seconds"), DEFAULT_VIEWER_TIMEOUT_SECONDS
            ),
            message_window_seconds=_coerce_positive_float(
                mapping.get("message_window_seconds"), DEFAULT_MESSAGE_WINDOW_SECONDS
            ),
            session_retention_seconds=_coerce_positive_float(
                mapping.get("session_retention_seconds"), DEFAULT_SESSION_RETENTION_SECONDS
            ),
        )


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load the application configuration from ``config/default.json`` by default."""

    base_path = Path(__file__).resolve().parent.parent
    if config_path is None:
        config_path = base_path / "config" / "default.json"

    with config_path.open("r", encoding="utf-8") as config_file:
        raw_config = json.load(config_file)

    return AppConfig.from_mapping(raw_config, base_path=base_path)


__all__ = [
    "AppConfig",
    "DEFAULT_MAX_UPLOAD_BYTES",
    "DEFAULT_MESSAGE_WINDOW_SECONDS",
    "DEFAULT_SESSION_RETENTION_SECONDS",
    "DEFAULT_VIEWER_TIMEOUT_SECONDS",
    "load_config",
]
