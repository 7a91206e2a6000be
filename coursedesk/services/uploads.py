"""Validation and persistence of uploaded lesson files."""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import os
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Mapping, Optional, Tuple

from ..config import DEFAULT_MAX_UPLOAD_BYTES
from ..errors import StorageIOError, ValidationError
from ..viewer.policy import FileCategory
from .naming import build_storage_name, extension_of


LOGGER = logging.getLogger(__name__)

ALLOWED_FILE_TYPES: Dict[str, Tuple[str, ...]] = {
    "pdf": ("application/pdf",),
    "doc": ("application/msword",),
    "docx": ("application/vnd.openxmlformats-officedocument.wordprocessingml.document",),
    "xls": ("application/vnd.ms-excel", "application/excel"),
    "xlsx": ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",),
    "csv": ("text/csv", "application/csv", "text/plain"),
}

SLIDE_FILE_TYPES: Dict[str, Tuple[str, ...]] = {
    "ppt": ("application/vnd.ms-powerpoint",),
    "pptx": ("application/vnd.openxmlformats-officedocument.presentationml.presentation",),
}

CATEGORY_DIRECTORIES: Dict[FileCategory, str] = {
    FileCategory.TEACHER: "teacher-files",
    FileCategory.STUDENT: "student-files",
    FileCategory.HOMEWORK: "homework-files",
    FileCategory.SLIDES: "lesson-files",
}

UPLOADS_URL_PREFIX = "/uploads"

_DEFAULT_CHUNK_SIZE = 1024 * 1024
_TEMP_SUFFIX = ".part"


@dataclass(frozen=True)
class StoredFile:
    """Metadata describing a file written by :class:`StorageGateway`."""

    original_name: str
    stored_name: str
    stored_path: str
    extension: str
    size_bytes: int
    mime_type: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _format_megabytes(limit: int) -> str:
    value = limit / (1024 * 1024)
    return f"{value:g}MB"


def validate_file_type(
    filename: Optional[str],
    mime_type: Optional[str],
    *,
    allowed: Mapping[str, Tuple[str, ...]] = ALLOWED_FILE_TYPES,
) -> str:
    """Return the normalised extension or raise :class:`ValidationError`.

    An empty or missing ``mime_type`` skips the MIME comparison; browsers do
    not always declare one for office documents.
    """

    if not filename or not str(filename).strip():
        raise ValidationError("missing_file", "No file provided")
    extension = extension_of(filename)
    if not extension or extension not in allowed:
        shown = extension or (filename.rsplit(".", 1)[-1].lower() if "." in filename else "")
        raise ValidationError("unsupported_extension", f"File type .{shown} is not allowed")
    declared = (mime_type or "").split(";", 1)[0].strip().lower()
    if declared and declared not in allowed[extension]:
        raise ValidationError(
            "mime_mismatch",
            f"MIME type {mime_type} does not match file extension",
        )
    return extension


def validate_slide_name(filename: Optional[str], mime_type: Optional[str] = None) -> str:
    """Validate a slide deck upload; only PPT and PPTX are accepted."""

    try:
        return validate_file_type(filename, mime_type, allowed=SLIDE_FILE_TYPES)
    except ValidationError as error:
        if error.reason == "unsupported_extension":
            raise ValidationError(
                "unsupported_extension", "Only PPT and PPTX files are allowed"
            ) from error
        raise


def _copy_limited(source: BinaryIO, target: BinaryIO, *, limit: int, chunk_size: int) -> int:
    """Copy *source* to *target*, failing as soon as more than *limit* bytes arrive."""

    if hasattr(source, "seek"):
        with contextlib.suppress(OSError, ValueError):
            source.seek(0)
    written = 0
    while True:
        chunk = source.read(chunk_size)
        if not chunk:
            break
        written += len(chunk)
        if written > limit:
            raise ValidationError(
                "too_large",
                f"File size exceeds maximum allowed size of {_format_megabytes(limit)}",
            )
        target.write(chunk)
    return written


class StorageGateway:
    """Write, replace and delete uploads below ``uploads_root``."""

    def __init__(
        self,
        uploads_root: Path,
        *,
        max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        chunk_size: int = _DEFAULT_CHUNK_SIZE,
        event_emitter: Optional[Callable[..., None]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._root = Path(uploads_root).resolve()
        self._max_bytes = int(max_bytes)
        self._chunk_size = int(chunk_size)
        self._event_emitter = event_emitter
        self._clock = clock

    @property
    def uploads_root(self) -> Path:
        return self._root

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def configure_event_emitter(self, emitter: Optional[Callable[..., None]]) -> None:
        self._event_emitter = emitter

    def _emit(self, operation: str, *, payload: Dict[str, Any], duration_ms: float, level: int = logging.INFO) -> None:
        if self._event_emitter is None:
            return
        self._event_emitter(
            "FILE_OP",
            operation,
            payload=payload,
            duration_ms=duration_ms,
            level=level,
        )

    def category_directory(self, category: FileCategory | str) -> Path:
        directory = self._root / CATEGORY_DIRECTORIES[FileCategory(category)]
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def resolve(self, stored_path: str) -> Path:
        """Return the absolute path for a ``/uploads/...`` reference.

        Raises :class:`ValueError` when the reference escapes the uploads root.
        """

        relative = str(stored_path or "").strip().replace("\\", "/").lstrip("/")
        prefix = UPLOADS_URL_PREFIX.lstrip("/") + "/"
        if relative.startswith(prefix):
            relative = relative[len(prefix):]
        if not relative:
            raise ValueError("Empty storage reference")
        candidate = (self._root / relative).resolve()
        candidate.relative_to(self._root)
        return candidate

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def save(
        self,
        source: BinaryIO,
        *,
        filename: Optional[str],
        mime_type: Optional[str],
        category: FileCategory | str,
        lesson_id: Optional[int] = None,
    ) -> StoredFile:
        """Validate and persist *source* for *category*.

        Nothing is left on disk when validation or the write fails.
        """

        resolved = FileCategory(category)
        if resolved not in CATEGORY_DIRECTORIES:
            raise ValueError(f"Category '{resolved.value}' has no upload directory")
        if resolved is FileCategory.SLIDES:
            extension = validate_slide_name(filename, mime_type)
        else:
            extension = validate_file_type(filename, mime_type)
        return self._write(
            source,
            filename=str(filename),
            mime_type=mime_type,
            extension=extension,
            category=resolved,
            lesson_id=lesson_id,
        )

    def _write(
        self,
        source: BinaryIO,
        *,
        filename: str,
        mime_type: Optional[str],
        extension: str,
        category: FileCategory,
        lesson_id: Optional[int],
    ) -> StoredFile:
        directory = self.category_directory(category)
        start = time.perf_counter()
        while True:
            stored_name = build_storage_name(extension, timestamp_ms=int(self._clock() * 1000))
            target = directory / stored_name
            if not target.exists():
                break
        temporary = directory / f".{stored_name}{_TEMP_SUFFIX}"

        try:
            with temporary.open("xb") as buffer:
                size = _copy_limited(
                    source, buffer, limit=self._max_bytes, chunk_size=self._chunk_size
                )
            os.replace(temporary, target)
        except ValidationError as error:
            with contextlib.suppress(FileNotFoundError):
                temporary.unlink()
            LOGGER.info("Rejected upload %s: %s", filename, error.message)
            raise
        except OSError as error:
            with contextlib.suppress(OSError):
                temporary.unlink()
            LOGGER.error("Failed to store upload %s: %s", filename, error)
            raise StorageIOError(f"Failed to store {filename}: {error}") from error

        stored_path = f"{UPLOADS_URL_PREFIX}/{CATEGORY_DIRECTORIES[category]}/{stored_name}"
        self._emit(
            "store_upload",
            payload={
                "category": category.value,
                "lesson_id": lesson_id,
                "path": stored_path,
                "size_bytes": size,
            },
            duration_ms=(time.perf_counter() - start) * 1000.0,
        )
        return StoredFile(
            original_name=Path(filename.replace("\\", "/")).name,
            stored_name=stored_name,
            stored_path=stored_path,
            extension=extension,
            size_bytes=size,
            mime_type=mime_type or None,
        )

    async def save_upload(
        self,
        upload: Any,
        *,
        category: FileCategory | str,
        lesson_id: Optional[int] = None,
    ) -> StoredFile:
        """Persist an ``UploadFile`` on a worker thread without blocking the event loop."""

        loop = asyncio.get_running_loop()
        operation = functools.partial(
            self.save,
            upload.file,
            filename=upload.filename,
            mime_type=upload.content_type,
            category=category,
            lesson_id=lesson_id,
        )
        return await loop.run_in_executor(None, operation)

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------
    def delete(self, stored_path: Optional[str]) -> bool:
        """Remove a stored file.

        Returns ``False`` when the file was already gone. Other OS errors raise
        :class:`StorageIOError`.
        """

        if not stored_path:
            return False
        try:
            target = self.resolve(stored_path)
        except ValueError:
            LOGGER.warning("Refusing to delete path outside uploads: %s", stored_path)
            return False

        start = time.perf_counter()
        existed = True
        try:
            target.unlink()
        except FileNotFoundError:
            existed = False
            LOGGER.warning("Stored file already missing: %s", stored_path)
        except IsADirectoryError as error:
            raise StorageIOError(f"Refusing to delete directory {stored_path}") from error
        except OSError as error:
            LOGGER.error("Failed to delete %s: %s", stored_path, error)
            raise StorageIOError(f"Failed to delete {stored_path}: {error}") from error
        finally:
            self._emit(
                "delete_upload",
                payload={"path": stored_path, "existed": existed},
                duration_ms=(time.perf_counter() - start) * 1000.0,
            )
        return existed

    def replace_slide(
        self,
        source: BinaryIO,
        *,
        filename: Optional[str],
        mime_type: Optional[str],
        lesson_id: Optional[int] = None,
        previous_path: Optional[str] = None,
    ) -> StoredFile:
        """Delete the lesson's previous deck, then store the new one."""

        validate_slide_name(filename, mime_type)
        if previous_path:
            try:
                self.delete(previous_path)
            except StorageIOError as error:
                LOGGER.error("Error deleting previous slide deck %s: %s", previous_path, error)
        return self.save(
            source,
            filename=filename,
            mime_type=mime_type,
            category=FileCategory.SLIDES,
            lesson_id=lesson_id,
        )

    async def replace_slide_upload(
        self,
        upload: Any,
        *,
        lesson_id: Optional[int] = None,
        previous_path: Optional[str] = None,
    ) -> StoredFile:
        loop = asyncio.get_running_loop()
        operation = functools.partial(
            self.replace_slide,
            upload.file,
            filename=upload.filename,
            mime_type=upload.content_type,
            lesson_id=lesson_id,
            previous_path=previous_path,
        )
        return await loop.run_in_executor(None, operation)


__all__ = [
    "ALLOWED_FILE_TYPES",
    "CATEGORY_DIRECTORIES",
    "SLIDE_FILE_TYPES",
    "StorageGateway",
    "StoredFile",
    "UPLOADS_URL_PREFIX",
    "validate_file_type",
    "validate_slide_name",
]
