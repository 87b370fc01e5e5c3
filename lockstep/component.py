"""Releasable components.

A Component is one independently versioned unit of the repository, usually a
Python package in a workspace. It knows where its files live, how its release
tags are named, and which commits affect it.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterator
from contextlib import contextmanager
from fnmatch import fnmatchcase
from pathlib import Path

from packaging.version import InvalidVersion, Version

from .change_set import ChangeSet
from .files import ChangelogFile, VersionFile
from .settings import ComponentSettings, RepoSettings, UpdateDependencySettings
from .shell import git
from .toml import get_project_version, load_pyproject
from .versions import parse_version


class Component:
    """A releasable unit and its coordination group.

    Components compare equal by name. `coordination_group` lists the
    components that must always release together with this one, and holds
    just this component when it is not coordinated.
    """

    def __init__(self, repo_settings: RepoSettings, settings: ComponentSettings, root: Path) -> None:
        self.repo_settings = repo_settings
        self.settings = settings
        self.root = root
        self.coordination_group: list[Component] = [self]
        self.changelog_file = ChangelogFile(self.path / settings.changelog_path)
        self.version_file = (
            VersionFile(self.path / settings.version_file) if settings.version_file else None
        )

    @property
    def name(self) -> str:
        return self.settings.name

    @property
    def type(self) -> str:
        return self.settings.type

    @property
    def directory(self) -> str:
        """Directory relative to the repository root."""
        return self.settings.directory or "."

    @property
    def path(self) -> Path:
        return (self.root / self.directory).resolve()

    @property
    def pyproject_path(self) -> Path:
        return self.path / "pyproject.toml"

    @property
    def update_dependencies(self) -> UpdateDependencySettings | None:
        return self.settings.update_dependencies

    @contextmanager
    def cd(self) -> Iterator[Path]:
        """Temporarily change into the component directory."""
        previous = Path.cwd()
        os.chdir(self.path)
        try:
            yield self.path
        finally:
            os.chdir(previous)

    def version_tag(self, version: Version | None) -> str | None:
        """The release tag for a version, e.g. "pkg-a/v1.2.0"."""
        return f"{self.name}/v{version}" if version is not None else None

    def latest_tag_version(self, ref: str | None = None) -> Version | None:
        """Find the newest release version tagged on or before `ref`.

        Only tags reachable from `ref` count, so releasing from an older
        commit ignores releases made after it.
        """
        pattern = re.compile(rf"^{re.escape(self.name)}/v(\d+\.\d+\.\d+(?:\.\w+)*)$")
        latest: Version | None = None
        for tag in git("tag", "--merged", ref or "HEAD").splitlines():
            match = pattern.match(tag.strip())
            if not match:
                continue
            try:
                version = parse_version(match[1])
            except ValueError:
                continue
            if latest is None or version > latest:
                latest = version
        return latest

    def make_change_set(self, since: str | None, to: str = "HEAD") -> ChangeSet:
        """Analyze the commits after `since` up to `to` that touch this component.

        Args:
            since: Tag or sha of the last release, or None to scan all history.
            to: The release anchor.

        Returns:
            A finished ChangeSet.
        """
        commits = f"{since}..{to}" if since else to
        change_set = ChangeSet(self.repo_settings)
        shas = git("log", commits, "--format=%H").splitlines()
        # git log lists newest first; analysis needs oldest first.
        for sha in reversed(shas):
            message = self.touched_message(sha)
            if message is not None:
                change_set.add_message(sha, message)
        return change_set.finish()

    def touched_message(self, sha: str) -> str | None:
        """Return the commit message if the commit affects this component, else None.

        A commit affects the component when it changes a file under the
        component directory or matching include_globs (and not matching
        exclude_globs), or when its message has a `touch-component: <name>`
        line. A component at the repository root is affected by everything.
        """
        message = git("log", sha, "--max-count=1", "--format=%B")
        if self.directory in (".", "./"):
            return message
        touch = re.compile(rf"(^|\n)touch-component: {re.escape(self.name)}(\s|$)", re.IGNORECASE)
        if touch.search(message):
            return message
        prefix = self.directory.rstrip("/") + "/"
        files = git("diff-tree", "--no-commit-id", "--name-only", "-r", "--root", sha)
        for file in files.splitlines():
            included = file.startswith(prefix) or any(
                fnmatchcase(file, pattern) for pattern in self.settings.include_globs
            )
            if included and not any(
                fnmatchcase(file, pattern) for pattern in self.settings.exclude_globs
            ):
                return message
        return None

    def pyproject_version(self) -> Version | None:
        """The static [project].version, or None if dynamic, missing or invalid."""
        if not self.pyproject_path.exists():
            return None
        version = get_project_version(load_pyproject(self.pyproject_path))
        if version is None:
            return None
        try:
            return Version(version)
        except InvalidVersion:
            return None

    def validate(self) -> list[str]:
        """Check that the component's files exist. Returns a list of problems."""
        errors: list[str] = []
        if not self.path.is_dir():
            errors.append(f"Missing directory {self.path} for {self.name}")
            return errors
        if self.version_file is not None and self.version_file.current_version is None:
            errors.append(f"{self.version_file.path} for {self.name} doesn't define __version__")
        return errors

    def verify_version(self, version: Version) -> list[str]:
        """Compare `version` against the changelog, pyproject and version file.

        Returns:
            One message per file that reports a different version.
        """
        errors: list[str] = []
        changelog_version = self.changelog_file.current_version
        if changelog_version != version:
            errors.append(f"{self.changelog_file.path} reports version {changelog_version}.")
        pyproject_version = self.pyproject_version()
        if pyproject_version is not None and pyproject_version != version:
            errors.append(f"{self.pyproject_path} reports version {pyproject_version}.")
        if self.version_file is not None:
            file_version = self.version_file.current_version
            if file_version != version:
                errors.append(f"{self.version_file.path} reports version {file_version}.")
        return errors

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Component) and other.name == self.name

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        return f"Component({self.name!r})"
