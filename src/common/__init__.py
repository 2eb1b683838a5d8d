"""Shared helpers: logging, error taxonomy and the subprocess dispatcher."""
