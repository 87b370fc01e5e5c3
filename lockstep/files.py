"""Changelog and version file accessors.

Both files are patched as text with regular expressions, so everything around
the version heading or version assignment is preserved exactly.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from packaging.version import Version

from .errors import ReleaseError
from .versions import parse_version

if TYPE_CHECKING:
    from .change_set import ChangeSet

_ENTRY_VERSION_RE = re.compile(r"### v(\d+(?:\.[a-zA-Z0-9]+)+) / \d{4}-\d\d-\d\d")
_ENTRY_HEADING_RE = re.compile(r"^### v\S+ / \d{4}-\d\d-\d\d$", re.MULTILINE)
_VERSION_ASSIGN_RE = re.compile(
    r"^(?P<prefix>\s*(?:__version__|VERSION)\s*(?::\s*str\s*)?=\s*)"
    r"(?P<quote>[\"'])(?P<version>\d+(?:\.[a-zA-Z0-9]+)+)(?P=quote)",
    re.MULTILINE,
)

CHANGELOG_TITLE = "# Release History\n"


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


class ChangelogFile:
    """A markdown changelog with one `### vX.Y.Z / YYYY-MM-DD` section per release."""

    def __init__(self, path: Path) -> None:
        self.path = path

    @property
    def exists(self) -> bool:
        return self.path.is_file()

    def content(self) -> str:
        return self.path.read_text()

    @property
    def current_version(self) -> Version | None:
        """Version of the newest entry, or None if there are no entries."""
        if not self.exists:
            return None
        return self.current_version_from_content(self.content())

    @staticmethod
    def current_version_from_content(content: str) -> Version | None:
        match = _ENTRY_VERSION_RE.search(content)
        return parse_version(match[1]) if match else None

    def append(
        self, change_set: ChangeSet, version: Version, when: date | str | None = None
    ) -> None:
        """Insert a new entry above the newest existing entry.

        A missing changelog is created with a title.
        """
        if when is None:
            when = _today()
        elif isinstance(when, date):
            when = when.strftime("%Y-%m-%d")
        lines = [f"### v{version} / {when}", ""]
        for group in change_set.change_groups:
            lines.extend(f"* {change}" for change in group.prefixed_changes)
        entry = "\n".join(lines)

        content = self.content() if self.exists else CHANGELOG_TITLE
        match = _ENTRY_HEADING_RE.search(content)
        if match:
            content = f"{content[: match.start()]}{entry}\n\n{content[match.start():]}"
        else:
            content = f"{content.rstrip()}\n\n{entry}\n"
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(content)

    def read_and_verify_latest_entry(self, version: Version | str) -> str:
        """Return the newest entry, checking that it is for `version`.

        Raises:
            ReleaseError: If the changelog is missing, has no entries, or its
                newest entry is for a different version.
        """
        if not self.exists:
            raise ReleaseError(f"The changelog {self.path} does not exist.")
        expected = re.compile(rf"^### v{re.escape(str(version))} / \d{{4}}-\d\d-\d\d$")
        entry: list[str] = []
        for line in self.content().splitlines(keepends=True):
            if not entry:
                if line.startswith("### "):
                    if not expected.match(line.rstrip("\n")):
                        raise ReleaseError(
                            f"The first changelog entry in {self.path} isn't for version "
                            f"{version}. It should start with: ### v{version} / {_today()}"
                        )
                    entry.append(line)
            elif line.startswith("### "):
                break
            else:
                entry.append(line)
        if not entry:
            raise ReleaseError(f"The changelog {self.path} doesn't have any entries.")
        return "".join(entry)


class VersionFile:
    """A Python source file containing `__version__ = "X.Y.Z"`.

    A `VERSION = "X.Y.Z"` assignment is also recognized.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    @property
    def exists(self) -> bool:
        return self.path.is_file()

    @property
    def current_version(self) -> Version | None:
        if not self.exists:
            return None
        return self.current_version_from_content(self.path.read_text())

    @staticmethod
    def current_version_from_content(content: str) -> Version | None:
        match = _VERSION_ASSIGN_RE.search(content)
        return parse_version(match["version"]) if match else None

    def update_version(self, version: Version | str) -> None:
        """Rewrite the first version assignment in place.

        Raises:
            ReleaseError: If the file has no version assignment.
        """
        content = self.path.read_text()
        if not _VERSION_ASSIGN_RE.search(content):
            raise ReleaseError(f"{self.path} does not define __version__")
        content = _VERSION_ASSIGN_RE.sub(
            lambda m: f"{m['prefix']}{m['quote']}{version}{m['quote']}", content, count=1
        )
        self.path.write_text(content)
