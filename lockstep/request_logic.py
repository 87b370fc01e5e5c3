"""Release request preparation.

RequestLogic turns a resolved RequestSpec into the artifacts of a release
pull request: the branch name, the commit, the PR text and labels, and the
edits to each component's changelog, version file and pyproject.toml.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

from packaging.utils import canonicalize_name

from .deps import constraint_for, rewrite_pyproject
from .errors import ReleaseError
from .models import ResolvedComponent
from .repository import Repository
from .request_spec import RequestSpec
from .semver import Semver
from .shell import log

REQUEST_METADATA_MARKER = "lockstep-request:"


class RequestLogic:
    """Builds the release pull request for a resolved RequestSpec."""

    def __init__(
        self, repository: Repository, request_spec: RequestSpec, target_branch: str | None = None
    ) -> None:
        self.repository = repository
        self.settings = repository.settings
        self.request_spec = request_spec
        self._target_branch = target_branch

    @property
    def target_branch(self) -> str:
        if self._target_branch is None:
            self._target_branch = self.repository.current_branch() or self.settings.main_branch
        return self._target_branch

    @property
    def resolved_components(self) -> list[ResolvedComponent]:
        return self.request_spec.resolved_components or []

    @property
    def single_component(self) -> bool:
        return len(self.resolved_components) == 1

    def verify_component_status(self) -> RequestLogic:
        """Check that no component's files are already at or past the new version.

        Raises:
            ReleaseError: Listing every component in an inconsistent state.
        """
        if self.request_spec.empty:
            raise ReleaseError("No components to release.")
        errors: list[str] = []
        for resolved in self.resolved_components:
            component = self.repository.component_named(resolved.component_name)
            if component is None or resolved.version is None:
                continue
            changelog_version = component.changelog_file.current_version
            if changelog_version is not None and changelog_version >= resolved.version:
                errors.append(
                    f"Cannot add version {resolved.version} to {component.name} changelog because"
                    f" the existing changelog already contains version {changelog_version}."
                )
            if component.version_file is not None:
                file_version = component.version_file.current_version
                if file_version is not None and file_version >= resolved.version:
                    errors.append(
                        f"Cannot change {component.name} version to {resolved.version} because"
                        f" {component.version_file.path} is already at {file_version}."
                    )
        if errors:
            raise ReleaseError("One or more components was in an inconsistent state", errors)
        return self

    def determine_release_branch(self, now: datetime | None = None) -> str:
        prefix = self.settings.release_branch_prefix
        if self.single_component:
            return f"{prefix}/component/{self.resolved_components[0].component_name}"
        now = now or datetime.now(timezone.utc)
        return f"{prefix}/multi/{now.strftime('%Y%m%d%H%M%S')}"

    def build_commit_title(self) -> str:
        if self.single_component:
            return f"release: Release {_component_info(self.resolved_components[0])}"
        return f"release: Release {len(self.resolved_components)} items"

    def build_commit_details(self) -> str:
        """One bullet per component for multi-component releases, else empty."""
        if self.single_component:
            return ""
        return "\n".join(f"* {_component_info(r)}" for r in self.resolved_components)

    def build_pr_body(self) -> str:
        """Describe the release, followed by the generated changelog entries.

        The last line carries the request as JSON so automation can tell
        which components and versions the pull request releases.
        """
        lines = [
            "This pull request prepares new releases for the following components:",
            "",
        ]
        lines.extend(f"* {_component_info(r, bold=True)}" for r in self.resolved_components)
        lines.extend(
            [
                "",
                "For each releasable component, this pull request modifies the version and"
                " provides an initial changelog entry based on"
                " [conventional commit](https://conventionalcommits.org) messages. You can"
                " edit these changes before merging, to release a different version or to"
                " alter the changelog text.",
                "",
                "Once these changes are merged, run `lockstep perform` for each component.",
                "",
                "The generated changelog entries have been copied below:",
            ]
        )
        for resolved in self.resolved_components:
            lines.extend(["", "----", "", f"## {resolved.component_name}", ""])
            for group in resolved.change_set.change_groups:
                lines.extend(f"* {change}" for change in group.prefixed_changes)
        metadata = {
            "release_sha": self.request_spec.release_sha,
            "components": {r.component_name: str(r.version) for r in self.resolved_components},
        }
        lines.extend(["", f"<!-- {REQUEST_METADATA_MARKER} {json.dumps(metadata)} -->"])
        return "\n".join(lines)

    def determine_pr_labels(self) -> list[str]:
        return [self.settings.release_pending_label]

    def change_files(self) -> RequestLogic:
        """Write the new version and changelog entry for every component."""
        for resolved in self.resolved_components:
            component = self.repository.component_named(resolved.component_name)
            if component is None or resolved.version is None:
                continue
            log(f"Updating files for {component.name} {resolved.version}")
            component.changelog_file.append(resolved.change_set, resolved.version)
            if component.version_file is not None:
                component.version_file.update_version(resolved.version)
            if component.pyproject_path.exists():
                rewrite_pyproject(
                    component.pyproject_path,
                    resolved.version,
                    self._dependency_constraints(resolved),
                )
        return self

    def _dependency_constraints(self, resolved: ResolvedComponent) -> dict[str, str]:
        component = self.repository.component_named(resolved.component_name)
        config = component.update_dependencies if component else None
        level = config.pessimistic_constraint_level if config else Semver.MINOR
        return {
            canonicalize_name(name): constraint_for(version, level)
            for name, version in resolved.change_set.updated_dependency_versions.items()
        }


def _component_info(resolved: ResolvedComponent, bold: bool = False) -> str:
    last = f"was {resolved.last_version}" if resolved.last_version else "initial release"
    decor = "**" if bold else ""
    return f"{decor}{resolved.component_name} {resolved.version}{decor} ({last})"
