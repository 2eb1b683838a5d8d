"""Ranked registry-name suggestions for unmapped plugins."""
from __future__ import annotations

import difflib
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from collector.normalize import split_identifier
from constants import Constants
from mapping.mapper import guess_registry_name


@dataclass
class Suggestion:
    plugin: str
    candidate: Optional[str]
    suggestions: List[str] = field(default_factory=list)
    recommended: Optional[str] = None
    verified: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "plugin": self.plugin,
            "candidate": self.candidate,
            "suggestions": list(self.suggestions),
            "recommended": self.recommended,
        }


def name_variants(identifier: str) -> List[str]:
    """Plausible registry spellings of a repository name, most likely first."""
    _, repo = split_identifier(identifier)
    if not repo:
        return []
    base = re.sub(r"(\.nvim|-nvim|\.vim|-vim|\.lua)$", "", repo)
    base = re.sub(r"^(nvim-|vim-)", "", base)
    raw = [
        guess_registry_name(identifier),
        repo,
        repo.replace(".", "-"),
        base + "-nvim",
        "nvim-" + base,
        base + "-vim",
        "vim-" + base,
        base,
        re.sub(r"[-.]", "_", repo),
    ]
    variants: List[str] = []
    for name in raw:
        if name and name not in variants:
            variants.append(name)
    return variants


def suggest(
    identifier: str,
    candidate: Optional[str],
    registry_names: Optional[Sequence[str]] = None,
    limit: int = Constants.SUGGESTION_LIMIT,
    cutoff: float = Constants.SUGGESTION_CUTOFF,
) -> Suggestion:
    """Rank registry names near ``candidate``.

    With ``registry_names`` (a snapshot or the live registry listing) the
    ranking is an exact-variant hit first, then ``difflib`` close matches.
    Without it, the suggestions are the unverified name variants.
    """
    variants = name_variants(identifier)
    if registry_names is None:
        return Suggestion(identifier, candidate, variants[:limit], candidate or (variants[0] if variants else None))

    present = set(registry_names)
    ranked: List[str] = [v for v in variants if v in present]
    probe = candidate or (variants[0] if variants else "")
    if probe:
        for match in difflib.get_close_matches(probe, list(registry_names), n=limit, cutoff=cutoff):
            if match not in ranked:
                ranked.append(match)
    ranked = ranked[:limit]
    return Suggestion(identifier, candidate, ranked, ranked[0] if ranked else None, verified=True)


def format_report(suggestions: List[Suggestion], generated: str) -> str:
    """Markdown remediation report for unmapped plugins."""
    lines = [
        "# Plugin Mapping Analysis Report",
        "",
        f"Generated: {generated}",
        "",
        f"Unmapped plugins: {len(suggestions)}",
        "",
    ]
    if not suggestions:
        lines.append("All plugins are mapped.")
        return "\n".join(lines) + "\n"
    for item in suggestions:
        lines.append(f"## {item.plugin}")
        lines.append("")
        lines.append(f"- Heuristic candidate: `{item.candidate}`" if item.candidate else "- Heuristic candidate: none")
        if item.suggestions:
            label = "Registry matches" if item.verified else "Possible names (unverified)"
            lines.append(f"- {label}: " + ", ".join(f"`{s}`" for s in item.suggestions))
        else:
            lines.append("- No similar registry names found")
        if item.recommended:
            lines.append(f"- Recommended: `\"{item.plugin}\": \"{item.recommended}\"`")
        lines.append("")
    recommended = [s for s in suggestions if s.recommended]
    if recommended:
        lines.append("## Suggested mappings.json additions")
        lines.append("")
        lines.append("```json")
        lines.append("{")
        for i, item in enumerate(recommended):
            comma = "," if i < len(recommended) - 1 else ""
            lines.append(f"  \"{item.plugin}\": \"{item.recommended}\"{comma}")
        lines.append("}")
        lines.append("```")
        lines.append("")
    return "\n".join(lines)
