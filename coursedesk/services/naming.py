"""Helpers for server-generated storage names."""

from __future__ import annotations

import re
import secrets
import time
from typing import Optional

__all__ = [
    "build_storage_name",
    "extension_of",
    "generate_token",
]

_TOKEN_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
_EXTENSION_PATTERN = re.compile(r"^[a-z0-9]{1,10}$")


def extension_of(filename: Optional[str]) -> str:
    """Return the lowercase extension of *filename* or an empty string."""

    if not filename:
        return ""
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    candidate = name.rsplit(".", 1)[-1].strip().lower()
    return candidate if _EXTENSION_PATTERN.match(candidate) else ""


def generate_token(length: int = 13) -> str:
    """Return a random lowercase alphanumeric token."""

    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


def build_storage_name(
    extension: str,
    *,
    timestamp_ms: Optional[int] = None,
    token: Optional[str] = None,
) -> str:
    """Return ``{timestamp}_{token}.{ext}``; the original filename never appears."""

    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    suffix = extension.lstrip(".").lower()
    return f"{stamp}_{token or generate_token()}.{suffix}"
