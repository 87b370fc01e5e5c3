"""Data models for lockstep.

These Pydantic models represent values passed between the release phases.
"""

from __future__ import annotations

from packaging.version import Version
from pydantic import BaseModel, ConfigDict, Field

from .change_set import ChangeSet


class CommitInfo(BaseModel):
    """A commit as seen by change analysis.

    Attributes:
        sha: Full commit sha.
        message: Full commit message (subject and body).
    """

    sha: str
    message: str


class ResolvedComponent(BaseModel):
    """The release plan for one component.

    Attributes:
        component_name: Name of the component.
        change_set: Finished change set since the last release.
        last_version: Latest released version, or None for a first release.
        version: Version to release. None until resolution completes, and
                 None afterwards for components that need no release.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    component_name: str
    change_set: ChangeSet
    last_version: Version | None = None
    version: Version | None = None


class Result(BaseModel):
    """Successes and errors recorded while releasing one component.

    Steps append to this as they go, so a partially completed release still
    reports how far it got.

    Attributes:
        component_name: The component, or None for job setup.
        version: The version being released, if known.
        successes: One line per completed action.
        errors: One line per failure.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    component_name: str | None = None
    version: Version | None = None
    successes: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors

    @property
    def empty(self) -> bool:
        return not self.successes and not self.errors

    def formatted_successes(self) -> list[str]:
        return [f"* {line}" for line in self.successes]

    def formatted_errors(self) -> list[str]:
        return [f"* ERROR: {line}" for line in self.errors]
