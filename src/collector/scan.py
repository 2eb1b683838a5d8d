"""Discovery of declaration files on disk."""
import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Tuple

from cache.store import content_key
from common.errors import DeclarationRootError
from common.logging_utils import log_discovered_files
from constants import Constants

logger = logging.getLogger(__name__)


@dataclass
class DeclarationFile:
    """One declaration file read into memory."""
    path: str
    relative: str  # posix path relative to the scanned directory
    content: str

    @property
    def digest(self) -> str:
        """sha256 of the file text; the content-addressed cache key."""
        return content_key(self.content)


def check_root(root: str) -> str:
    """Validate the declaration root and return its plugins directory.

    Raises:
        DeclarationRootError: The root or its plugins directory is missing.
    """
    if not root or not os.path.isdir(root):
        raise DeclarationRootError(f"Declaration root not found: {root}")
    plugins_dir = os.path.join(root, Constants.PLUGINS_SUBDIR)
    if not os.path.isdir(plugins_dir):
        raise DeclarationRootError(f"Plugins directory not found: {plugins_dir}")
    return plugins_dir


def _read(path: str) -> Optional[str]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return handle.read()
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Could not read %s: %s", path, exc)
        return None


def core_module_files(root: str) -> List[Tuple[str, Optional[DeclarationFile]]]:
    """Locate ``<module>.lua`` or ``<module>/init.lua`` for each core module."""
    plugins_dir = os.path.join(root, Constants.PLUGINS_SUBDIR)
    found: List[Tuple[str, Optional[DeclarationFile]]] = []
    for module in Constants.CORE_MODULES:
        candidates = [
            os.path.join(plugins_dir, module + Constants.DECLARATION_SUFFIX),
            os.path.join(plugins_dir, module, "init" + Constants.DECLARATION_SUFFIX),
        ]
        entry: Optional[DeclarationFile] = None
        for path in candidates:
            if os.path.isfile(path):
                content = _read(path)
                if content is not None:
                    entry = DeclarationFile(path=path, relative=os.path.relpath(path, plugins_dir).replace(os.sep, "/"), content=content)
                break
        if entry is None:
            logger.warning("Core module %s not found under %s", module, plugins_dir)
        found.append((module, entry))
    return found


def scan_tree(directory: str) -> List[DeclarationFile]:
    """Recursively collect declaration files below ``directory``, sorted by relative path."""
    files: List[DeclarationFile] = []
    if not os.path.isdir(directory):
        return files
    for dirpath, dirnames, filenames in os.walk(directory):
        dirnames.sort()
        for filename in sorted(filenames):
            if not filename.endswith(Constants.DECLARATION_SUFFIX):
                continue
            path = os.path.join(dirpath, filename)
            content = _read(path)
            if content is None:
                continue
            relative = os.path.relpath(path, directory).replace(os.sep, "/")
            files.append(DeclarationFile(path=path, relative=relative, content=content))
    files.sort(key=lambda f: f.relative)
    return files


def scan_extras(root: str) -> List[DeclarationFile]:
    """All extras declaration files under the fixed extras subdirectory."""
    extras_dir = os.path.join(root, Constants.EXTRAS_SUBDIR)
    if not os.path.isdir(extras_dir):
        logger.warning("Could not scan extras directory: %s", extras_dir)
        return []
    files = scan_tree(extras_dir)
    log_discovered_files(logger, "scan", {"extras": [f.relative for f in files]})
    return files


def scan_user_dir(directory: Optional[str]) -> List[DeclarationFile]:
    """Declaration files from a local user-config directory (may not exist)."""
    if not directory:
        return []
    expanded = os.path.expanduser(directory)
    if not os.path.isdir(expanded):
        logger.info("No user plugin directory at %s", expanded)
        return []
    files = scan_tree(expanded)
    log_discovered_files(logger, "scan", {"user": [f.relative for f in files]})
    return files


def extra_source_tag(relative: str) -> str:
    """``ai/copilot.lua`` -> ``extras.ai.copilot``."""
    stem = relative[: -len(Constants.DECLARATION_SUFFIX)] if relative.endswith(Constants.DECLARATION_SUFFIX) else relative
    return "extras." + stem.replace("/", ".")
