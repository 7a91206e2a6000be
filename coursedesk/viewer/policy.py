"""Category policy: which capabilities a viewer grants for a file.

Every renderer branch consults :func:`resolve_policy` instead of repeating the
category checks inline. The rules are asymmetric: student files
may be downloaded yet still have in-viewer copying disabled, while homework
files (other than slide decks) get neither restriction.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Literal, Optional


class FileCategory(str, Enum):
    TEACHER = "teacher"
    STUDENT = "student"
    HOMEWORK = "homework"
    SLIDES = "slides"
    OTHER = "other"


UPLOAD_CATEGORIES = (FileCategory.TEACHER, FileCategory.STUDENT, FileCategory.HOMEWORK)

SLIDE_EXTENSIONS = frozenset({"ppt", "pptx"})
DOWNLOADABLE_CATEGORIES = frozenset({FileCategory.STUDENT, FileCategory.HOMEWORK})

_CATEGORY_ALIASES: Dict[str, FileCategory] = {
    "ppt": FileCategory.SLIDES,
    "pptx": FileCategory.SLIDES,
    "slide": FileCategory.SLIDES,
}


def parse_category(value: Any, *, default: FileCategory = FileCategory.STUDENT) -> FileCategory:
    """Return the :class:`FileCategory` for *value*.

    Missing or blank input falls back to *default*; an unrecognised name maps to
    :attr:`FileCategory.OTHER`, which grants no download.
    """

    if isinstance(value, FileCategory):
        return value
    if value is None:
        return default
    normalized = str(value).strip().lower()
    if not normalized:
        return default
    if normalized in _CATEGORY_ALIASES:
        return _CATEGORY_ALIASES[normalized]
    try:
        return FileCategory(normalized)
    except ValueError:
        return FileCategory.OTHER


def normalize_extension(value: Optional[str]) -> str:
    """Return a lowercase extension without the leading dot."""

    if not value:
        return ""
    cleaned = str(value).strip().lower()
    if "/" in cleaned or "." in cleaned:
        cleaned = cleaned.rsplit("/", 1)[-1].rsplit(".", 1)[-1]
    return cleaned


@dataclass(frozen=True)
class CapabilitySet:
    allow_download: bool
    block_copy: bool
    block_screenshot_visual: bool

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)


BannerTone = Literal["danger", "warning", "caution"]


@dataclass(frozen=True)
class Banner:
    tone: BannerTone
    title: str
    text: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


PROTECTED_BANNER = Banner(
    tone="danger",
    title="Protected Content",
    text="View Only - Downloading, copying, and screenshots are disabled",
)
DOWNLOAD_DISABLED_BANNER = Banner(
    tone="warning",
    title="Download disabled",
    text="This file can be viewed in the browser but not downloaded",
)
COPY_DISABLED_BANNER = Banner(
    tone="caution",
    title="Protected Content",
    text="In-viewer download and copy disabled",
)


def resolve_policy(category: FileCategory | str, extension: Optional[str]) -> CapabilitySet:
    """Return the capabilities for a file of *category* with *extension*."""

    resolved = parse_category(category)
    ext = normalize_extension(extension)
    return CapabilitySet(
        allow_download=resolved in DOWNLOADABLE_CATEGORIES,
        block_copy=(
            resolved is FileCategory.TEACHER
            or resolved is FileCategory.STUDENT
            or ext in SLIDE_EXTENSIONS
        ),
        block_screenshot_visual=resolved is FileCategory.TEACHER,
    )


def banner_for(category: FileCategory | str, capabilities: CapabilitySet) -> Optional[Banner]:
    """Return the banner shown above a viewer with *capabilities*."""

    resolved = parse_category(category)
    if capabilities.block_copy and resolved is FileCategory.TEACHER:
        return PROTECTED_BANNER
    if not capabilities.allow_download and not capabilities.block_copy:
        return DOWNLOAD_DISABLED_BANNER
    if capabilities.block_copy:
        return COPY_DISABLED_BANNER
    return None


def badge_for(category: FileCategory | str) -> Optional[str]:
    resolved = parse_category(category)
    if resolved is FileCategory.TEACHER:
        return "Protected"
    if resolved in DOWNLOADABLE_CATEGORIES:
        return "Downloadable"
    return None


_SUBTITLES: Dict[FileCategory, str] = {
    FileCategory.TEACHER: "Teacher File - View Only",
    FileCategory.STUDENT: "Student File - View & Download",
    FileCategory.HOMEWORK: "Homework File - View & Download",
    FileCategory.SLIDES: "Slide Deck - View Only",
    FileCategory.OTHER: "File - View Only",
}


def subtitle_for(category: FileCategory | str) -> str:
    return _SUBTITLES[parse_category(category)]


def describe_policy(category: FileCategory | str, extension: Optional[str]) -> Dict[str, Any]:
    """Return a JSON-friendly summary used by the policy endpoint and pages."""

    resolved = parse_category(category)
    capabilities = resolve_policy(resolved, extension)
    banner = banner_for(resolved, capabilities)
    return {
        "category": resolved.value,
        "extension": normalize_extension(extension),
        "capabilities": capabilities.to_dict(),
        "banner": banner.to_dict() if banner is not None else None,
        "badge": badge_for(resolved),
        "subtitle": subtitle_for(resolved),
    }


__all__ = [
    "Banner",
    "CapabilitySet",
    "COPY_DISABLED_BANNER",
    "DOWNLOAD_DISABLED_BANNER",
    "FileCategory",
    "PROTECTED_BANNER",
    "SLIDE_EXTENSIONS",
    "UPLOAD_CATEGORIES",
    "badge_for",
    "banner_for",
    "describe_policy",
    "normalize_extension",
    "parse_category",
    "resolve_policy",
    "subtitle_for",
]
