"""Course Desk: lesson documents with category-scoped viewing rules."""

__version__ = "0.1.0"
