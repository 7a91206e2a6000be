"""Terminal views of the course catalogue."""
