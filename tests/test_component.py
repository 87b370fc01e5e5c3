"""Tests for lockstep.component."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from packaging.version import Version

from lockstep.component import Component
from lockstep.repository import Repository
from lockstep.semver import Semver


@pytest.fixture
def repository(workspace: Path) -> Repository:
    return Repository.load(workspace)


def fake_git(log: dict[str, str], files: dict[str, str], shas: str) -> MagicMock:
    """A git stand-in answering the commands make_change_set issues."""

    def answer(*args: str, check: bool = True) -> str:
        if args[0] == "log" and "--format=%H" in args:
            return shas
        if args[0] == "log":
            return log[args[1]]
        if args[0] == "diff-tree":
            return files[args[-1]]
        raise AssertionError(f"unexpected git call: {args}")

    return MagicMock(side_effect=answer)


class TestComponent:
    def test_paths(self, repository: Repository, workspace: Path) -> None:
        component = repository.component_named("pkg-a")
        assert component is not None
        assert component.path == (workspace / "packages" / "pkg-a").resolve()
        assert component.changelog_file.path == component.path / "CHANGELOG.md"
        assert component.version_file is not None
        assert component.version_file.current_version == Version("1.0.0")

    def test_version_tag(self, repository: Repository) -> None:
        component = repository.component_named("pkg-a")
        assert component is not None
        assert component.version_tag(Version("1.2.0")) == "pkg-a/v1.2.0"
        assert component.version_tag(None) is None

    @patch("lockstep.component.git")
    def test_latest_tag_version(self, mock_git: MagicMock, repository: Repository) -> None:
        """Only this component's well-formed tags count; the newest wins."""
        mock_git.return_value = "pkg-a/v1.2.0\npkg-a/v1.10.0\npkg-b/v3.0.0\npkg-a/vbogus\nv9.0.0"
        component = repository.component_named("pkg-a")
        assert component is not None

        assert component.latest_tag_version("abc123") == Version("1.10.0")
        mock_git.assert_called_once_with("tag", "--merged", "abc123")

    @patch("lockstep.component.git")
    def test_latest_tag_version_none(self, mock_git: MagicMock, repository: Repository) -> None:
        mock_git.return_value = ""
        component = repository.component_named("pkg-a")
        assert component is not None
        assert component.latest_tag_version() is None

    def test_make_change_set_filters_by_directory(self, repository: Repository) -> None:
        component = repository.component_named("pkg-a")
        assert component is not None
        git = fake_git(
            log={"s1": "feat: widgets", "s2": "fix: other package", "s3": "fix: docs typo"},
            files={
                "s1": "packages/pkg-a/pkg_a/widgets.py",
                "s2": "packages/pkg-b/pkg_b/x.py",
                "s3": "README.md\npackages/pkg-a/README.md",
            },
            shas="s3\ns2\ns1",
        )
        with patch("lockstep.component.git", git):
            change_set = component.make_change_set("pkg-a/v1.0.0", "HEAD")

        assert change_set.semver == Semver.MINOR
        assert change_set.significant_shas == ["s1", "s3"]
        git.assert_any_call("log", "pkg-a/v1.0.0..HEAD", "--format=%H")

    def test_touch_component_directive(self, repository: Repository) -> None:
        component = repository.component_named("pkg-b")
        assert component is not None
        git = fake_git(
            log={"s1": "fix: shared config\n\ntouch-component: pkg-b"},
            files={"s1": "config/shared.toml"},
            shas="s1",
        )
        with patch("lockstep.component.git", git):
            change_set = component.make_change_set(None)

        assert change_set.significant_shas == ["s1"]

    def test_include_and_exclude_globs(self, repository: Repository) -> None:
        component = repository.component_named("pkg-a")
        assert component is not None
        component.settings.include_globs = ["shared/*"]
        component.settings.exclude_globs = ["packages/pkg-a/tests/*"]
        git = fake_git(
            log={"s1": "fix: shared helper", "s2": "fix: flaky test"},
            files={"s1": "shared/util.py", "s2": "packages/pkg-a/tests/test_x.py"},
            shas="",
        )
        with patch("lockstep.component.git", git):
            assert component.touched_message("s1") == "fix: shared helper"
            assert component.touched_message("s2") is None


class TestVerifyVersion:
    def test_consistent(self, repository: Repository) -> None:
        component = repository.component_named("pkg-a")
        assert component is not None
        assert component.verify_version(Version("1.0.0")) == []

    def test_reports_each_mismatched_file(self, repository: Repository) -> None:
        component = repository.component_named("pkg-a")
        assert component is not None
        errors = component.verify_version(Version("1.1.0"))
        assert len(errors) == 3
        assert all("reports version 1.0.0" in e for e in errors)

    def test_validate(self, repository: Repository) -> None:
        component = repository.component_named("pkg-b")
        assert component is not None
        assert component.validate() == []

    def test_validate_missing_directory(self, workspace: Path) -> None:
        repository = Repository.load(workspace)
        component = repository.component_named("pkg-b")
        assert component is not None
        component.settings.directory = "packages/gone"
        assert component.validate() == [f"Missing directory {component.path} for pkg-b"]


class TestEquality:
    def test_compares_by_name(self, repository: Repository) -> None:
        component = repository.component_named("pkg-a")
        assert component is not None
        other = Component(repository.settings, component.settings, Path("/elsewhere"))
        assert component == other
        assert len({component, other}) == 1
