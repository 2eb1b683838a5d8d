"""Plugin models, tag ranking and version target selection."""
