"""Exception types raised by lockstep.

Configuration and resolution errors carry the full list of problems found,
so callers can report every issue in one pass instead of stopping at the
first one.
"""

from __future__ import annotations


class ReleaseError(Exception):
    """Base class for errors that should stop a release command."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors: list[str] = list(errors) if errors else [message]

    def describe(self) -> str:
        """Render the message followed by each collected error as a bullet."""
        lines = [str(self)]
        if self.errors != [str(self)]:
            lines.extend(f"  * {error}" for error in self.errors)
        return "\n".join(lines)


class ConfigurationError(ReleaseError):
    """The release configuration is invalid. Raised before any step runs."""


class UnknownStepType(ConfigurationError):
    """A step names a type that is not in the step registry."""


class UnknownDependencyError(ConfigurationError):
    """A step depends on a step that is not declared before it."""


class ResolutionError(ReleaseError):
    """The requested components and versions could not be reconciled."""


class ChangeSetFinishedError(RuntimeError):
    """A change set was modified after it was finished."""


class ChangeSetNotFinishedError(RuntimeError):
    """A change set result was read before the change set was finished."""


class StepExit(Exception):
    """Ends the current pipeline step. Later steps still run."""


class PipelineExit(Exception):
    """Aborts the pipeline. No later steps run."""
