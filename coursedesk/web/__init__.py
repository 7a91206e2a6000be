"""HTTP interface for Course Desk."""

from .server import create_app

__all__ = ["create_app"]
