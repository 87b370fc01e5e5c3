"""Commit message analysis.

A ChangeSet reads conventional-commit messages, classifies each line by its
tag and scope, and works out how significant the set of changes is. Once
finished it exposes changelog groups and a suggested next version.

Recognized lines look like:

    feat: add a widget
    fix(parser)!: reject empty input (#123)
    BREAKING CHANGE: the widget API changed
    semver-change: minor
    revert-commit: 1a2b3c4
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from packaging.version import Version

from .errors import ChangeSetFinishedError, ChangeSetNotFinishedError
from .semver import Semver

if TYPE_CHECKING:
    from .models import CommitInfo
    from .settings import RepoSettings

_LINE_RE = re.compile(
    r"^(?P<tag>[\w-]+|BREAKING CHANGE)(?:\((?P<scope>[^()]+)\))?(?P<bang>!?):\s+(?P<content>.*)$"
)
_BREAKING_RE = re.compile(r"^BREAKING[\s_-]CHANGE$")
_ISSUE_SUFFIX_RE = re.compile(r"^(.*\S)(\s*\(#\d+\))$")


@dataclass
class Input:
    """What one commit contributes to a change set.

    Attributes:
        sha: The commit sha.
        changes: (header, description) pairs for the changelog.
        breaks: Breaking-change descriptions.
        semver: Bump level implied by the commit.
        semver_locked: Set by a semver-change line; nothing else may change
            the level afterwards.
        reverts: Sha prefixes of earlier commits this commit reverts.
    """

    sha: str
    changes: list[tuple[str, str]] = field(default_factory=list)
    breaks: list[str] = field(default_factory=list)
    semver: Semver = Semver.NONE
    semver_locked: bool = False
    reverts: list[str] = field(default_factory=list)

    @property
    def significant(self) -> bool:
        return bool(self.semver.significant or self.reverts or self.changes or self.breaks)

    def apply_breaking_change(self, description: str) -> None:
        if not self.semver_locked:
            self.semver = Semver.MAJOR
        self.breaks.append(description)

    def apply_semver_change(self, value: str) -> None:
        level = Semver.for_name(value)
        if level is not None:
            self.semver = level
            self.semver_locked = True

    def apply_commit(self, header: str | None, level: Semver, bang: bool, description: str) -> None:
        if header:
            self.changes.append((header, description))
        if not self.semver_locked and level > self.semver:
            self.semver = level
        if bang:
            if not self.semver_locked:
                self.semver = Semver.MAJOR
            self.breaks.append(description)

    def matches(self, prefixes: set[str]) -> bool:
        return any(self.sha.startswith(prefix) for prefix in prefixes)


class Group:
    """Changes that share a changelog header.

    A group with no header holds plain notices, such as the
    "no significant updates" message.
    """

    def __init__(self, header: str | None) -> None:
        self.header = header
        self.changes: list[str] = []

    def add(self, *changes: str) -> Group:
        self.changes.extend(changes)
        return self

    @property
    def empty(self) -> bool:
        return not self.changes

    @property
    def prefixed_changes(self) -> list[str]:
        """Changes rendered as "HEADER: change", or bare when there is no header."""
        return [f"{self.header}: {c}" if self.header else c for c in self.changes]

    def __repr__(self) -> str:
        return f"Group({self.header!r}, {self.changes!r})"


class ChangeSet:
    """A set of changes from commit messages, and the release they call for.

    Commits are added while scanning history, then finish() freezes the set.
    Adding a commit after finish() is an error; reading results before
    finish() is an error too.
    """

    def __init__(self, settings: RepoSettings) -> None:
        self._settings = settings
        self._inputs: list[Input] | None = []
        self._groups: list[Group] = []
        self._semver = Semver.NONE
        self._significant_shas: list[str] = []
        self.updated_dependency_versions: dict[str, Version] = {}

    @property
    def finished(self) -> bool:
        return self._inputs is None

    @property
    def semver(self) -> Semver:
        return self._semver

    @property
    def change_groups(self) -> list[Group]:
        self._require_finished()
        return self._groups

    @property
    def significant_shas(self) -> list[str]:
        self._require_finished()
        return self._significant_shas

    @property
    def empty(self) -> bool:
        self._require_finished()
        return not self._groups

    def add_commit(self, commit: CommitInfo) -> ChangeSet:
        """Analyze one commit. See add_message()."""
        return self.add_message(commit.sha, commit.message)

    def add_message(self, sha: str, message: str) -> ChangeSet:
        """Analyze a commit message line by line.

        Commits must be added oldest first. A commit that contributes nothing
        is ignored.
        """
        if self._inputs is None:
            raise ChangeSetFinishedError("ChangeSet is already finished")
        commit_input = Input(sha)
        for line in message.splitlines():
            self._analyze_line(line, commit_input)
        if commit_input.significant:
            self._inputs.append(commit_input)
        return self

    def finish(self) -> ChangeSet:
        """Apply reverts, group the changes and compute the release level."""
        if self._inputs is None:
            raise ChangeSetFinishedError("ChangeSet is already finished")
        inputs = self._apply_reverts(self._inputs)

        groups: dict[str, Group] = {}
        breaking = Group(self._settings.breaking_change_header)
        for tag_settings in self._settings.commit_tags:
            for header in tag_settings.all_headers():
                groups.setdefault(header, Group(header))

        semver = Semver.NONE
        for commit_input in inputs:
            semver = max(semver, commit_input.semver)
            for header, change in commit_input.changes:
                if header in groups:
                    groups[header].add(change)
            breaking.add(*commit_input.breaks)

        self._semver = semver
        self._groups = [g for g in [breaking, *groups.values()] if not g.empty]
        if not self._groups and semver.significant:
            self._groups.append(Group(None).add(self._settings.no_significant_updates_notice))
        self._significant_shas = [i.sha for i in inputs]
        self._inputs = None
        return self

    def force_release(self) -> ChangeSet:
        """Make an empty finished change set into a patch release.

        Used when a release is requested even though no commit calls for one.
        Has no effect on a change set that already has changes.
        """
        self._require_finished()
        if not self._groups:
            self._semver = Semver.PATCH
            self._groups.append(Group(None).add(self._settings.no_significant_updates_notice))
        return self

    def add_dependency_updates(
        self, updates: dict[str, tuple[Version | None, Version]]
    ) -> bool:
        """Record releases of dependencies that trigger a release of this component.

        This is the only change permitted after finish(). `updates` maps a
        dependency name to its (last version, new version). Each update adds
        a changelog entry and raises the release level to the significance of
        the dependency's own bump.

        Returns:
            True if any update was new.
        """
        self._require_finished()
        header = self._settings.update_dependency_header
        group = next((g for g in self._groups if g.header == header), None)
        added = False
        for name, (last, new) in updates.items():
            previous = self.updated_dependency_versions.get(name)
            if previous == new:
                continue
            self.updated_dependency_versions[name] = new
            if group is None:
                group = Group(header)
                # Replace a lone "no significant updates" notice.
                self._groups = [g for g in self._groups if g.header is not None]
                self._groups.append(group)
            entry = f"Updated {name} to {new}"
            stale = f"Updated {name} to {previous}"
            if previous is not None and stale in group.changes:
                # The dependency was raised again; only its final version ships.
                group.changes[group.changes.index(stale)] = entry
            else:
                group.add(entry)
            self._semver = max(self._semver, Semver.for_diff(last, new))
            added = True
        return added

    def suggested_version(self, last: Version | None) -> Version | None:
        """Suggest the next version, or None if nothing calls for a release."""
        self._require_finished()
        if not self._semver.significant:
            return None
        return self._semver.bump(last)

    def _require_finished(self) -> None:
        if self._inputs is not None:
            raise ChangeSetNotFinishedError("ChangeSet is not finished")

    def _analyze_line(self, line: str, commit_input: Input) -> None:
        match = _LINE_RE.match(line)
        if not match:
            return
        tag = match["tag"]
        content = match["content"]
        if _BREAKING_RE.match(tag):
            commit_input.apply_breaking_change(self._normalize(content))
        elif tag.lower() == "semver-change":
            if content.split():
                commit_input.apply_semver_change(content.split()[0])
        elif tag.lower() == "revert-commit":
            if content.split():
                commit_input.reverts.append(content.split()[0])
        else:
            tag_settings = self._settings.commit_tag(tag)
            if tag_settings is None:
                return
            scope = match["scope"]
            commit_input.apply_commit(
                tag_settings.header_for(scope),
                tag_settings.semver_for(scope),
                match["bang"] == "!",
                self._normalize(content),
            )

    @staticmethod
    def _apply_reverts(inputs: list[Input]) -> list[Input]:
        # Newest first. A reverted commit still contributes its own revert
        # directives, so a revert of a revert never resurrects the original.
        # This differs from skip-list semantics, where reverting a revert
        # would restore the original commit.
        reverted: set[str] = set()
        dropped: set[int] = set()
        for index in range(len(inputs) - 1, -1, -1):
            commit_input = inputs[index]
            if commit_input.matches(reverted):
                dropped.add(index)
            reverted.update(commit_input.reverts)
        return [i for index, i in enumerate(inputs) if index not in dropped]

    def _normalize(self, description: str) -> str:
        description = description.strip()
        if description[:1].islower():
            description = description[0].upper() + description[1:]
        handling = self._settings.issue_number_suffix_handling
        if handling == "plain":
            return description
        suffixes: list[str] = []
        match = _ISSUE_SUFFIX_RE.match(description)
        while match:
            description = match[1]
            suffixes.insert(0, match[2])
            match = _ISSUE_SUFFIX_RE.match(description)
        if handling == "link":
            repo = self._settings.repo
            description += "".join(
                re.sub(r"#(\d+)", rf"[#\1](https://github.com/{repo}/pull/\1)", suffix)
                for suffix in suffixes
            )
        return description

    def __repr__(self) -> str:
        if not self.finished:
            return "ChangeSet(unfinished)"
        return f"ChangeSet({self._semver}, {self._groups!r})"
