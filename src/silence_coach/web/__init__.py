"""Web presentation layer."""
