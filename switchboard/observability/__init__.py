"""Observability helpers: structured logging and request correlation."""
