"""Package registry access."""
