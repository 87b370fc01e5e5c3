"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest

from lockstep.settings import RepoSettings


def make_settings(**overrides: Any) -> RepoSettings:
    """Build validated settings for a two-package repo, with overrides applied."""
    data: dict[str, Any] = {
        "repo": "acme/widgets",
        "components": [
            {"name": "pkg-a", "directory": "packages/pkg-a"},
            {"name": "pkg-b", "directory": "packages/pkg-b"},
        ],
    }
    data.update(overrides)
    settings = RepoSettings.from_dict(data)
    assert settings.errors == []
    return settings


@pytest.fixture
def settings() -> RepoSettings:
    """Default settings for the two-package repo."""
    return make_settings()


@pytest.fixture
def settings_factory() -> Callable[..., RepoSettings]:
    """make_settings, for tests that need overrides."""
    return make_settings


@pytest.fixture
def tmp_pyproject(tmp_path: Path) -> Path:
    """Create a temporary pyproject.toml file."""
    content = """\
[project]
name = "test-package"
version = "1.0.0"
dependencies = [
    "requests>=2.0",
    "internal-dep>=1.0",
]

[project.optional-dependencies]
dev = ["pytest>=8.0", "another-internal>=0.5"]

[dependency-groups]
test = ["pytest>=8.0", "group-internal>=0.1"]
"""
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text(content)
    return pyproject


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A uv workspace with two packages and a [tool.lockstep] table.

    pkg-b depends on pkg-a and is released when pkg-a is.
    """
    (tmp_path / "pyproject.toml").write_text(
        """\
[tool.uv.workspace]
members = ["packages/*"]

[tool.lockstep]
repo = "acme/widgets"

[[tool.lockstep.components]]
name = "pkg-a"
directory = "packages/pkg-a"
version_file = "pkg_a/__init__.py"

[[tool.lockstep.components]]
name = "pkg-b"
directory = "packages/pkg-b"

[tool.lockstep.components.update_dependencies]
dependencies = ["pkg-a"]
"""
    )
    for name, deps in (("pkg-a", []), ("pkg-b", ["pkg-a>=1.0"])):
        package_dir = tmp_path / "packages" / name
        module_dir = package_dir / name.replace("-", "_")
        module_dir.mkdir(parents=True)
        (module_dir / "__init__.py").write_text('__version__ = "1.0.0"\n')
        dep_list = ", ".join(f'"{d}"' for d in deps)
        (package_dir / "pyproject.toml").write_text(
            f'[project]\nname = "{name}"\nversion = "1.0.0"\ndependencies = [{dep_list}]\n'
        )
        (package_dir / "CHANGELOG.md").write_text(
            "# Release History\n\n### v1.0.0 / 2024-01-01\n\n* Initial release\n"
        )
    return tmp_path
