"""Manifest serialization and the extraction report."""
