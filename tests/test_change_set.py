"""Tests for lockstep.change_set."""

from __future__ import annotations

from typing import Callable

import pytest
from packaging.version import Version

from lockstep.change_set import ChangeSet
from lockstep.errors import ChangeSetFinishedError, ChangeSetNotFinishedError
from lockstep.models import CommitInfo
from lockstep.semver import Semver
from lockstep.settings import RepoSettings


def analyze(settings: RepoSettings, *messages: str) -> ChangeSet:
    """Build a finished change set from messages, oldest first, with shas c0, c1, ..."""
    change_set = ChangeSet(settings)
    for index, message in enumerate(messages):
        change_set.add_message(f"c{index}", message)
    return change_set.finish()


def groups_of(change_set: ChangeSet) -> dict[str | None, list[str]]:
    return {g.header: g.changes for g in change_set.change_groups}


class TestClassification:
    def test_breaking_fix_makes_major(self, settings: RepoSettings) -> None:
        """A ! on any commit makes the set a major release."""
        change_set = analyze(settings, "fix: a (#1)", "feat: b", "fix!: c")

        assert change_set.semver == Semver.MAJOR
        groups = groups_of(change_set)
        assert groups["BREAKING CHANGE"] == ["C"]
        assert groups["ADDED"] == ["B"]
        assert groups["FIXED"] == ["A (#1)", "C"]

    def test_breaking_group_comes_first(self, settings: RepoSettings) -> None:
        change_set = analyze(settings, "feat: b", "fix!: c")
        assert change_set.change_groups[0].header == "BREAKING CHANGE"

    def test_feature_is_minor(self, settings: RepoSettings) -> None:
        assert analyze(settings, "fix: x", "feat: y").semver == Semver.MINOR

    def test_docs_is_patch_with_default_header(self, settings: RepoSettings) -> None:
        change_set = analyze(settings, "docs: clarify the README")
        assert change_set.semver == Semver.PATCH
        assert groups_of(change_set) == {"DOCS": ["Clarify the README"]}

    def test_unrecognized_tags_contribute_nothing(self, settings: RepoSettings) -> None:
        """Even a ! on an unknown tag is ignored."""
        change_set = analyze(settings, "chore!: bump tooling", "wip: stuff")
        assert change_set.semver == Semver.NONE
        assert change_set.empty

    def test_non_conventional_lines_are_ignored(self, settings: RepoSettings) -> None:
        change_set = analyze(settings, "Merge branch 'main'\n\nfeat: real change")
        assert groups_of(change_set) == {"ADDED": ["Real change"]}

    @pytest.mark.parametrize("spelling", ["BREAKING CHANGE", "BREAKING-CHANGE", "BREAKING_CHANGE"])
    def test_breaking_change_footer(self, settings: RepoSettings, spelling: str) -> None:
        change_set = analyze(settings, f"fix: x\n\n{spelling}: the API changed")
        assert change_set.semver == Semver.MAJOR
        assert groups_of(change_set)["BREAKING CHANGE"] == ["The API changed"]

    def test_semver_change_overrides_and_locks(self, settings: RepoSettings) -> None:
        """semver-change pins the commit's level even against later lines."""
        change_set = analyze(settings, "semver-change: patch\nfeat!: big thing")
        assert change_set.semver == Semver.PATCH
        assert groups_of(change_set)["BREAKING CHANGE"] == ["Big thing"]

    def test_add_commit(self, settings: RepoSettings) -> None:
        change_set = ChangeSet(settings)
        change_set.add_commit(CommitInfo(sha="abc", message="feat: from a commit"))
        assert change_set.finish().significant_shas == ["abc"]


class TestScopesAndHidden:
    @pytest.fixture
    def scoped(self, settings_factory: Callable[..., RepoSettings]) -> RepoSettings:
        return settings_factory(
            commit_tags=[
                {"tag": "feat", "header": "ADDED", "semver": "minor",
                 "scopes": {"internal": {"hidden": True, "semver": "patch"}, "docs": "none"}},
                {"tag": "fix", "header": "FIXED"},
                {"tag": "chore", "hidden": True},
            ]
        )

    def test_scope_overrides_semver(self, scoped: RepoSettings) -> None:
        change_set = analyze(scoped, "feat(internal): refactor")
        assert change_set.semver == Semver.PATCH

    def test_hidden_scope_counts_but_is_not_listed(self, scoped: RepoSettings) -> None:
        change_set = analyze(scoped, "feat(internal): refactor")
        assert groups_of(change_set) == {None: ["No significant updates."]}

    def test_hidden_tag(self, scoped: RepoSettings) -> None:
        change_set = analyze(scoped, "chore: update lockfile")
        assert change_set.semver == Semver.PATCH
        assert groups_of(change_set) == {None: ["No significant updates."]}

    def test_scope_with_no_release(self, scoped: RepoSettings) -> None:
        change_set = analyze(scoped, "feat(docs): document the widget")
        assert change_set.semver == Semver.NONE
        assert groups_of(change_set) == {"ADDED": ["Document the widget"]}


class TestReverts:
    def test_revert_removes_target(self, settings: RepoSettings) -> None:
        change_set = analyze(settings, "feat: widgets", "fix: gadgets", "revert-commit: c0")
        assert change_set.semver == Semver.PATCH
        assert groups_of(change_set) == {"FIXED": ["Gadgets"]}

    def test_revert_matches_sha_prefix(self, settings: RepoSettings) -> None:
        change_set = ChangeSet(settings)
        change_set.add_message("deadbeef1234", "feat: widgets")
        change_set.add_message("cafe", "revert-commit: deadbeef")
        assert change_set.finish().empty

    def test_revert_of_revert_does_not_resurrect(self, settings: RepoSettings) -> None:
        change_set = analyze(
            settings, "feat: widgets", "revert-commit: c0", "revert-commit: c1"
        )
        assert change_set.semver == Semver.NONE
        assert change_set.empty
        assert change_set.significant_shas == ["c2"]


class TestIssueSuffixes:
    def test_plain_keeps_suffix(self, settings: RepoSettings) -> None:
        change_set = analyze(settings, "fix: crash on start (#12)")
        assert groups_of(change_set)["FIXED"] == ["Crash on start (#12)"]

    def test_delete(self, settings_factory: Callable[..., RepoSettings]) -> None:
        change_set = analyze(
            settings_factory(issue_number_suffix_handling="delete"),
            "fix: crash on start (#12) (#13)",
        )
        assert groups_of(change_set)["FIXED"] == ["Crash on start"]

    def test_link(self, settings_factory: Callable[..., RepoSettings]) -> None:
        change_set = analyze(
            settings_factory(issue_number_suffix_handling="link"), "fix: crash (#12)"
        )
        assert groups_of(change_set)["FIXED"] == [
            "Crash ([#12](https://github.com/acme/widgets/pull/12))"
        ]


class TestLifecycle:
    def test_add_after_finish(self, settings: RepoSettings) -> None:
        change_set = analyze(settings, "fix: a")
        with pytest.raises(ChangeSetFinishedError):
            change_set.add_message("c9", "fix: b")

    def test_finish_twice(self, settings: RepoSettings) -> None:
        change_set = analyze(settings)
        with pytest.raises(ChangeSetFinishedError):
            change_set.finish()

    def test_read_before_finish(self, settings: RepoSettings) -> None:
        change_set = ChangeSet(settings).add_message("c0", "fix: a")
        with pytest.raises(ChangeSetNotFinishedError):
            change_set.change_groups

    def test_force_release_on_empty_set(self, settings: RepoSettings) -> None:
        change_set = analyze(settings).force_release().force_release()
        assert change_set.semver == Semver.PATCH
        assert groups_of(change_set) == {None: ["No significant updates."]}

    def test_force_release_keeps_existing_changes(self, settings: RepoSettings) -> None:
        change_set = analyze(settings, "feat: x").force_release()
        assert change_set.semver == Semver.MINOR
        assert groups_of(change_set) == {"ADDED": ["X"]}

    def test_suggested_version(self, settings: RepoSettings) -> None:
        assert analyze(settings, "feat: x").suggested_version(Version("1.2.3")) == Version("1.3.0")
        assert analyze(settings).suggested_version(Version("1.2.3")) is None


class TestDependencyUpdates:
    def test_replaces_notice(self, settings: RepoSettings) -> None:
        change_set = analyze(settings).force_release()
        added = change_set.add_dependency_updates({"pkg-a": (Version("1.0.0"), Version("1.1.0"))})

        assert added
        assert change_set.semver == Semver.MINOR
        assert groups_of(change_set) == {"DEPENDENCY": ["Updated pkg-a to 1.1.0"]}
        assert change_set.updated_dependency_versions == {"pkg-a": Version("1.1.0")}

    def test_repeated_update_is_not_new(self, settings: RepoSettings) -> None:
        change_set = analyze(settings, "fix: x")
        update = {"pkg-a": (Version("1.0.0"), Version("1.0.1"))}
        assert change_set.add_dependency_updates(update)
        assert not change_set.add_dependency_updates(update)
        assert groups_of(change_set) == {
            "FIXED": ["X"],
            "DEPENDENCY": ["Updated pkg-a to 1.0.1"],
        }

    def test_raised_dependency_replaces_entry(self, settings: RepoSettings) -> None:
        change_set = analyze(settings).force_release()
        change_set.add_dependency_updates({"pkg-a": (Version("1.0.0"), Version("1.0.1"))})

        assert change_set.add_dependency_updates({"pkg-a": (Version("1.0.0"), Version("1.1.0"))})

        assert change_set.semver == Semver.MINOR
        assert groups_of(change_set) == {"DEPENDENCY": ["Updated pkg-a to 1.1.0"]}
        assert change_set.updated_dependency_versions == {"pkg-a": Version("1.1.0")}
