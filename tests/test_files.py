"""Tests for lockstep.files."""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest
from packaging.version import Version

from lockstep.change_set import ChangeSet
from lockstep.errors import ReleaseError
from lockstep.files import ChangelogFile, VersionFile
from lockstep.settings import RepoSettings

EXISTING = """\
# Release History

### v1.1.0 / 2024-02-01

* ADDED: Widgets

### v1.0.0 / 2024-01-01

* Initial release
"""


@pytest.fixture
def changelog(tmp_path: Path) -> ChangelogFile:
    path = tmp_path / "CHANGELOG.md"
    path.write_text(EXISTING)
    return ChangelogFile(path)


class TestChangelogFile:
    def test_current_version(self, changelog: ChangelogFile) -> None:
        assert changelog.current_version == Version("1.1.0")

    def test_missing_file_has_no_version(self, tmp_path: Path) -> None:
        assert ChangelogFile(tmp_path / "nope.md").current_version is None

    def test_append_inserts_above_newest(self, changelog: ChangelogFile, settings: RepoSettings) -> None:
        change_set = ChangeSet(settings).add_message("c0", "fix: gadgets (#4)").finish()

        changelog.append(change_set, Version("1.1.1"), date(2024, 3, 5))

        content = changelog.path.read_text()
        assert content.startswith(
            "# Release History\n\n### v1.1.1 / 2024-03-05\n\n* FIXED: Gadgets (#4)\n\n### v1.1.0"
        )
        assert changelog.current_version == Version("1.1.1")

    def test_append_creates_file(self, tmp_path: Path, settings: RepoSettings) -> None:
        changelog = ChangelogFile(tmp_path / "docs" / "CHANGELOG.md")
        change_set = ChangeSet(settings).finish().force_release()

        changelog.append(change_set, Version("0.0.1"), "2024-01-01")

        assert changelog.content() == (
            "# Release History\n\n### v0.0.1 / 2024-01-01\n\n* No significant updates.\n"
        )

    def test_read_latest_entry(self, changelog: ChangelogFile) -> None:
        entry = changelog.read_and_verify_latest_entry("1.1.0")
        assert entry == "### v1.1.0 / 2024-02-01\n\n* ADDED: Widgets\n\n"

    def test_read_latest_entry_wrong_version(self, changelog: ChangelogFile) -> None:
        with pytest.raises(ReleaseError, match="isn't for version 1.2.0"):
            changelog.read_and_verify_latest_entry("1.2.0")

    def test_read_latest_entry_without_entries(self, tmp_path: Path) -> None:
        path = tmp_path / "CHANGELOG.md"
        path.write_text("# Release History\n")
        with pytest.raises(ReleaseError, match="doesn't have any entries"):
            ChangelogFile(path).read_and_verify_latest_entry("1.0.0")


class TestVersionFile:
    def test_reads_dunder_version(self, tmp_path: Path) -> None:
        path = tmp_path / "__init__.py"
        path.write_text('"""Pkg."""\n\n__version__ = "2.3.4"\n')
        assert VersionFile(path).current_version == Version("2.3.4")

    def test_reads_constant(self, tmp_path: Path) -> None:
        path = tmp_path / "version.py"
        path.write_text("VERSION: str = '0.9.0'\n")
        assert VersionFile(path).current_version == Version("0.9.0")

    def test_update_preserves_surroundings(self, tmp_path: Path) -> None:
        path = tmp_path / "__init__.py"
        path.write_text('"""Pkg."""\n\n__version__ = "2.3.4"  # managed\nOTHER = "1.0.0"\n')

        VersionFile(path).update_version(Version("2.4.0"))

        assert path.read_text() == '"""Pkg."""\n\n__version__ = "2.4.0"  # managed\nOTHER = "1.0.0"\n'

    def test_update_without_assignment(self, tmp_path: Path) -> None:
        path = tmp_path / "__init__.py"
        path.write_text("")
        with pytest.raises(ReleaseError, match="does not define __version__"):
            VersionFile(path).update_version("1.0.0")
