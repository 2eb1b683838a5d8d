"""Supplemental extractors over the extras tree: parsers, tools and the extras catalogue."""
