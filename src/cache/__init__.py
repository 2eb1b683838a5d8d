"""Content-addressed on-disk cache."""
