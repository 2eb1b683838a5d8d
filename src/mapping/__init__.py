"""Mapping of plugin identifiers to registry package names."""
