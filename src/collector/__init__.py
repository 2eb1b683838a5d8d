"""Spec collection: declaration files to deduplicated plugin specs."""
