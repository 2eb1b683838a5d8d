"""Semantic-version ranking of remote tags."""

import re
from typing import Dict, Optional, Tuple

import semantic_version

# "1.2" or "1.2-rc1": padded to a full triple before parsing
_SHORT_VERSION = re.compile(r"^(\d+)\.(\d+)(?:-([0-9A-Za-z.-]+))?$")


def parse_tag(tag: str) -> Optional[semantic_version.Version]:
    """Parse a tag name as a semantic version, or None when it is not one.

    An optional leading ``v`` is stripped. Tags that only carry major.minor
    are padded with a zero patch level; anything else that fails strict
    parsing (dates, names like ``stable``) is rejected.
    """
    cleaned = tag[1:] if tag.startswith("v") else tag
    try:
        return semantic_version.Version(cleaned)
    except ValueError:
        pass
    m = _SHORT_VERSION.match(cleaned)
    if not m:
        return None
    padded = f"{m.group(1)}.{m.group(2)}.0"
    if m.group(3):
        padded += f"-{m.group(3)}"
    try:
        return semantic_version.Version(padded)
    except ValueError:
        return None


def select_latest_tag(tags: Dict[str, str]) -> Tuple[Optional[str], Optional[str]]:
    """Pick the highest-versioned tag.

    Pre-releases rank below the final release of the same version. Equal
    versions (``v1.0.0`` and ``1.0.0``) keep the byte-wise smallest name.

    Args:
        tags: Tag name to commit.

    Returns:
        Tuple[Optional[str], Optional[str]]: (tag, commit), or (None, None)
        when no tag parses.
    """
    best_tag: Optional[str] = None
    best_version: Optional[semantic_version.Version] = None
    for tag in sorted(tags):
        parsed = parse_tag(tag)
        if parsed is None:
            continue
        if best_version is None or parsed > best_version:
            best_version = parsed
            best_tag = tag
    if best_tag is None:
        return None, None
    return best_tag, tags[best_tag]
