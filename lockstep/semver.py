"""Semantic version bump levels.

A Semver level names which segment of a version a change affects. Levels are
ordered by significance, so the most significant change in a set of commits
can be found with max().
"""

from __future__ import annotations

from enum import Enum
from functools import total_ordering

from packaging.version import Version

from .versions import format_segments, parse_version, release_segments

# Rank used for NONE so it sorts below every real segment.
_NO_SEGMENT = 99


@total_ordering
class Semver(Enum):
    """A bump level, valued by the index of the segment it increments.

    MAJOR > MINOR > PATCH > PATCH2 > NONE.
    """

    MAJOR = 0
    MINOR = 1
    PATCH = 2
    PATCH2 = 3
    NONE = None

    @property
    def segment(self) -> int | None:
        return self.value

    @property
    def significant(self) -> bool:
        return self.value is not None

    def _rank(self) -> int:
        return _NO_SEGMENT if self.value is None else self.value

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Semver):
            return NotImplemented
        # A lower segment index is a more significant change.
        return self._rank() > other._rank()

    def __str__(self) -> str:
        return self.name.lower()

    @classmethod
    def for_name(cls, name: str | None) -> Semver | None:
        """Look up a level by name, case-insensitively. Returns None if unknown."""
        if not name:
            return None
        return cls.__members__.get(str(name).strip().upper())

    @classmethod
    def for_segment(cls, segment: int) -> Semver:
        """Return the level addressing `segment`, or PATCH2 for deeper segments."""
        for level in cls:
            if level.value == segment:
                return level
        return cls.PATCH2

    @classmethod
    def for_diff(cls, v1: str | Version | None, v2: str | Version | None) -> Semver:
        """Return the level of the most significant segment that differs.

        Missing versions are treated as 0.0.0. Identical versions yield NONE.
        Differences past the known segments, including pre-release or dev
        markers, yield PATCH2.

        Examples:
            for_diff("1.2.3", "1.3.0") → MINOR
            for_diff("1.2.3", "1.2.3") → NONE
            for_diff("1.2.3.4.5", "1.2.3.4.6") → PATCH2
        """
        segs1 = release_segments(v1)
        segs2 = release_segments(v2)
        size = max(len(segs1), len(segs2))
        segs1 += [0] * (size - len(segs1))
        segs2 += [0] * (size - len(segs2))
        for index, (a, b) in enumerate(zip(segs1, segs2)):
            if a != b:
                return cls.for_segment(index)
        if v1 is not None and v2 is not None and parse_version(v1) != parse_version(v2):
            return cls.PATCH2
        return cls.NONE

    def bump(self, version: str | Version | None) -> Version | None:
        """Increment the addressed segment and zero every later segment.

        A missing version is treated as 0.0.0. Bumping MAJOR while the major
        segment is 0 bumps MINOR instead, following the pre-1.0 convention.
        NONE returns the version unchanged.

        Examples:
            MINOR.bump("0.3.1") → 0.4.0
            MAJOR.bump("1.3.1") → 2.0.0
            MAJOR.bump("0.0.5") → 0.1.0
            PATCH2.bump("1.2.3") → 1.2.3.1
        """
        if self.value is None:
            return None if version is None else parse_version(version)
        segment = self.value
        size = max(segment, 2) + 1
        segments = release_segments(version, size)[:size]
        if segment == 0 and segments[0] == 0:
            segment = 1
        segments[segment] += 1
        for index in range(segment + 1, size):
            segments[index] = 0
        return format_segments(segments)
