"""TOML reading and writing utilities.

Uses tomlkit to preserve formatting and comments when modifying pyproject.toml
files. This keeps release commits small and diff-friendly.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomlkit
from packaging.utils import canonicalize_name


def load_pyproject(path: Path) -> tomlkit.TOMLDocument:
    """Load and parse a pyproject.toml file.

    Returns a TOMLDocument that preserves formatting when modified and saved.
    """
    return tomlkit.parse(path.read_text())


def save_pyproject(path: Path, doc: tomlkit.TOMLDocument) -> None:
    """Save a TOMLDocument back to disk, preserving original formatting."""
    path.write_text(tomlkit.dumps(doc))


def get_project_name(doc: tomlkit.TOMLDocument, fallback: str) -> str:
    """Extract the canonical package name from [project].name.

    Names are normalized per PEP 503 (lowercase, hyphens instead of
    underscores) for consistent comparison.
    """
    return canonicalize_name(doc.get("project", {}).get("name", fallback))


def get_project_version(doc: tomlkit.TOMLDocument) -> str | None:
    """Extract the static [project].version, or None if it is dynamic or unset."""
    version = doc.get("project", {}).get("version")
    return str(version) if version is not None else None


def get_workspace_member_globs(doc: tomlkit.TOMLDocument) -> list[str]:
    """Extract workspace member glob patterns from [tool.uv.workspace].

    Returns an empty list when the repository is not a uv workspace.
    """
    members = doc.get("tool", {}).get("uv", {}).get("workspace", {}).get("members")
    return [str(m) for m in members] if members else []


def get_tool_config(doc: tomlkit.TOMLDocument) -> dict[str, Any]:
    """Return the [tool.lockstep] table as plain Python data."""
    table = doc.get("tool", {}).get("lockstep")
    if table is None:
        return {}
    return table.unwrap()
