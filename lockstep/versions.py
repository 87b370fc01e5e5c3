"""Version parsing utilities.

Versions are handled as packaging.version.Version objects so that release
versions with any number of numeric segments (e.g. "1.2.3.4") compare
correctly.
"""

from __future__ import annotations

from packaging.version import InvalidVersion, Version


def parse_version(value: str | Version) -> Version:
    """Parse a version string into a Version object.

    Raises:
        ValueError: If the string is not a valid version.
    """
    if isinstance(value, Version):
        return value
    try:
        return Version(str(value).strip())
    except InvalidVersion as exc:
        raise ValueError(f"Malformed version: {value}") from exc


def release_segments(version: str | Version | None, size: int = 3) -> list[int]:
    """Return the numeric release segments, padded with zeros to `size`.

    Examples:
        "1.2" → [1, 2, 0]
        "1.2.3.4" → [1, 2, 3, 4]
        None → [0, 0, 0]
    """
    segments = list(parse_version(version).release) if version is not None else []
    while len(segments) < size:
        segments.append(0)
    return segments


def format_segments(segments: list[int]) -> Version:
    """Join numeric segments back into a Version."""
    return Version(".".join(str(segment) for segment in segments))


def max_version(*versions: Version | None) -> Version | None:
    """Return the largest of the given versions, ignoring None."""
    present = [v for v in versions if v is not None]
    return max(present) if present else None
