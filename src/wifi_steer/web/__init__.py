"""Web admin interface."""
