"""Dependency handling utilities.

Provides functions for parsing PEP 508 dependency strings and rewriting
pyproject.toml files so a released package requires the new versions of the
components it depends on.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, cast

from packaging.requirements import Requirement
from packaging.utils import canonicalize_name
from packaging.version import Version

from .semver import Semver
from .toml import load_pyproject, save_pyproject
from .versions import format_segments, release_segments


def dep_canonical_name(dep_str: str) -> str:
    """Extract the canonical package name from a PEP 508 dependency string.

    Examples:
        "requests>=2.0" → "requests"
        "My_Package[extra]~=1.0" → "my-package"
    """
    return canonicalize_name(Requirement(dep_str).name)


def constraint_for(version: Version, level: Semver) -> str:
    """Build the version specifier a dependent should publish for `version`.

    The constraint may float up to, but not past, the segment above `level`.
    NONE pins exactly.

    Examples:
        constraint_for(1.2.3, MINOR) → ">=1.2.3,<2"
        constraint_for(1.2.3, PATCH) → ">=1.2.3,<1.3"
        constraint_for(1.2.3, NONE) → "==1.2.3"
    """
    if level.segment is None:
        return f"=={version}"
    size = max(level.segment, 1)
    upper = release_segments(version, size)[:size]
    upper[-1] += 1
    return f">={version},<{format_segments(upper)}"


def constrain_dep(dep_str: str, specifier: str) -> str:
    """Replace the version specifier of a PEP 508 dependency.

    Preserves extras and environment markers.

    Examples:
        constrain_dep("pkg[b,a]>=1.0; python_version>'3.9'", ">=2.0,<3")
            → "pkg[a,b]>=2.0,<3; python_version > \"3.9\""
    """
    req = Requirement(dep_str)
    # Sort extras alphabetically for consistent output
    extras = f"[{','.join(sorted(req.extras))}]" if req.extras else ""
    marker = f"; {req.marker}" if req.marker else ""
    return f"{req.name}{extras}{specifier}{marker}"


def rewrite_pyproject(
    pyproject_path: Path,
    new_version: Version | str | None,
    dependency_constraints: dict[str, str],
) -> None:
    """Update a package's version and its internal dependency constraints.

    The version is only written when [project].version is static. Internal
    dependencies are constrained in all locations:
    - [project].dependencies
    - [project].optional-dependencies.*
    - [dependency-groups].*

    Uses tomlkit to preserve formatting and comments.

    Args:
        pyproject_path: Path to the pyproject.toml file.
        new_version: New version string to set, or None to leave it.
        dependency_constraints: Map of canonical package name → specifier.
    """
    doc = load_pyproject(pyproject_path)
    # Cast needed because tomlkit types are complex unions
    project = cast(dict[str, Any], doc["project"])
    if new_version is not None and "version" in project:
        project["version"] = str(new_version)

    if dependency_constraints:
        deps = project.get("dependencies")
        if isinstance(deps, list):
            _constrain_dep_list(deps, dependency_constraints)

        opt_deps = project.get("optional-dependencies")
        if isinstance(opt_deps, dict):
            for group in opt_deps.values():
                if isinstance(group, list):
                    _constrain_dep_list(group, dependency_constraints)

        dep_groups = doc.get("dependency-groups")
        if isinstance(dep_groups, dict):
            for group in dep_groups.values():
                if isinstance(group, list):
                    _constrain_dep_list(group, dependency_constraints)

    save_pyproject(pyproject_path, doc)


def _constrain_dep_list(deps: list, constraints: dict[str, str]) -> None:
    """Constrain internal dependencies in a list, modifying in place.

    Entries that are not PEP 508 strings (e.g. include-group tables) are left
    alone.
    """
    for i, dep_str in enumerate(deps):
        if not isinstance(dep_str, str):
            continue
        name = dep_canonical_name(str(dep_str))
        if name in constraints:
            deps[i] = constrain_dep(str(dep_str), constraints[name])
