"""Identifier normalization and constraint classification."""
import re
from typing import Any, Dict, List, Optional, Tuple

from constants import ConstraintKind, Constants
from luaspec.interpreter import LuaTable
from versioning.models import DeclaredConstraint

IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9-]+/[A-Za-z0-9._-]+$")


def normalize_name(name: Any, aliases: Optional[Dict[str, str]] = None) -> Optional[str]:
    """Return the canonical ``owner/repo`` for ``name``, or None.

    Already-canonical identifiers are returned unchanged; known short names
    map through the alias table; everything else is rejected.
    """
    if not isinstance(name, str):
        return None
    if IDENTIFIER_RE.match(name):
        return name
    table = Constants.SHORT_NAME_ALIASES if aliases is None else aliases
    return table.get(name)


def split_identifier(identifier: str) -> Tuple[str, str]:
    owner, _, repo = identifier.partition("/")
    return owner, repo


def normalize_deps(deps: Any) -> List[str]:
    """Flatten a ``dependencies`` field into names.

    Names that do not normalize are kept verbatim so the recorded list
    mirrors the declaration.
    """
    if deps is None:
        return []
    if isinstance(deps, str):
        norm = normalize_name(deps)
        return [norm] if norm else []
    if not isinstance(deps, LuaTable):
        return []
    names: List[str] = []
    for dep in deps.array():
        if isinstance(dep, str):
            names.append(normalize_name(dep) or dep)
        elif isinstance(dep, LuaTable) and isinstance(dep.get(1), str):
            names.append(normalize_name(dep.get(1)) or dep.get(1))
    return names


def classify_constraint(spec: Optional[LuaTable]) -> DeclaredConstraint:
    """Classify a spec table's declared version constraint.

    When several fields coexist the precedence is branch, commit, tag,
    then version. ``version = false`` means "track the default branch".
    """
    if spec is None:
        return DeclaredConstraint()
    branch = spec.get("branch")
    if isinstance(branch, str):
        return DeclaredConstraint(ConstraintKind.BRANCH, branch)
    commit = spec.get("commit")
    if isinstance(commit, str):
        return DeclaredConstraint(ConstraintKind.COMMIT, commit)
    tag = spec.get("tag")
    if isinstance(tag, str):
        return DeclaredConstraint(ConstraintKind.TAG, tag)
    version = spec.get("version")
    if version is False:
        return DeclaredConstraint(ConstraintKind.FLOATING_FALSE, False)
    if isinstance(version, (str, int, float)):
        return DeclaredConstraint(ConstraintKind.VERSION, version)
    return DeclaredConstraint()
