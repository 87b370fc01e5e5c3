"""Release execution.

The Performer runs component pipelines at a release sha and collects what
happened into Result objects. Step failures never raise out of a Performer;
they end up in the report built by build_report_text().
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from subprocess import CalledProcessError

from packaging.version import InvalidVersion, Version

from .artifact_dir import ArtifactDir
from .component import Component
from .errors import ConfigurationError
from .models import Result
from .pipeline import Pipeline
from .repository import Repository
from .shell import log, step

__all__ = ["Performer", "Result"]

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S UTC"


class Performer:
    """Releases components and reports the outcome.

    Args:
        repository: The repository to release from.
        release_ref: Ref to release. Defaults to HEAD.
        enable_prechecks: Verify the working tree and version files before
            running any pipeline.
        git_remote: Remote that steps push to. Defaults to "origin".
        work_dir: Base directory for step artifacts. A temporary directory
            is used when None.
        dry_run: Ask steps not to publish anything.
    """

    def __init__(
        self,
        repository: Repository,
        release_ref: str | None = None,
        enable_prechecks: bool = True,
        git_remote: str | None = None,
        work_dir: Path | str | None = None,
        dry_run: bool = False,
    ) -> None:
        self.repository = repository
        self.enable_prechecks = enable_prechecks
        self.git_remote = git_remote
        self.work_dir = Path(work_dir).resolve() if work_dir is not None else None
        self.dry_run = dry_run
        self.init_result = Result()
        self.component_results: list[Result] = []
        self.start_time = datetime.now(timezone.utc)
        self.release_sha: str | None = None

        try:
            self.release_sha = repository.current_sha(release_ref)
        except CalledProcessError:
            self.init_result.errors.append(f"Unable to resolve release ref {release_ref or 'HEAD'}.")
            return
        log(f"Releasing from sha {self.release_sha}")
        if enable_prechecks:
            self.init_result.errors.extend(repository.verify_git_clean())
            if release_ref and repository.current_sha() != self.release_sha:
                self.init_result.errors.append(
                    f"Release ref {release_ref} is not the checked out commit."
                )

    @property
    def error(self) -> bool:
        """True if setup or any component release recorded an error."""
        return bool(self.init_result.errors) or any(
            not result.succeeded for result in self.component_results
        )

    def perform_adhoc_release(self, name: str, assert_version: str | Version | None = None) -> Performer:
        """Release one component at the version its changelog reports.

        Args:
            name: Component name.
            assert_version: If given, the changelog version must equal it.
        """
        result = Result(component_name=name)
        self.component_results.append(result)
        if self.init_result.errors:
            result.errors.append("Skipped because the release job failed to initialize.")
            return self
        component = self.repository.component_named(name)
        if component is None:
            result.errors.append(f"Component {name!r} not found.")
            return self

        version = component.changelog_file.current_version
        if version is None:
            result.errors.append(f"No released versions found in the changelog for {name!r}.")
            return self
        result.version = version
        if assert_version is not None:
            try:
                asserted = Version(str(assert_version))
            except InvalidVersion:
                result.errors.append(f"Malformed asserted version {assert_version}.")
                return self
            if asserted != version:
                result.errors.append(
                    f"Asserted version {asserted} does not match version {version}"
                    f" found in the changelog for {name!r}."
                )
                return self
        return self.internal_perform_release(component, version, result)

    def internal_perform_release(self, component: Component, version: Version, result: Result) -> Performer:
        """Run the component's pipeline, recording into `result`."""
        step(f"Releasing {component.name} {version}")
        if self.enable_prechecks:
            errors = component.verify_version(version)
            if errors:
                result.errors.append(
                    f"Requested {component.name} version {version} doesn't match existing files."
                )
                result.errors.extend(errors)
                return self

        artifact_dir = ArtifactDir(self.work_dir)
        try:
            with component.cd():
                pipeline = Pipeline(
                    self.repository,
                    component,
                    version,
                    result,
                    artifact_dir,
                    dry_run=self.dry_run,
                    git_remote=self.git_remote,
                )
                for step_settings in component.settings.steps or []:
                    pipeline.add_step(step_settings)
                pipeline.resolve_run()
                pipeline.run()
        except ConfigurationError as exc:
            result.errors.extend(exc.errors)
        finally:
            artifact_dir.cleanup()
        return self

    def build_report_text(self, finish_time: datetime | None = None) -> str:
        """Render the results as markdown, suitable for a pull request comment."""
        finish_time = finish_time or datetime.now(timezone.utc)
        lines = [
            "## Release job results",
            "",
            f"* Job started {self.start_time.strftime(_TIME_FORMAT)}",
            f"* Job finished {finish_time.strftime(_TIME_FORMAT)}",
            f"* Release SHA: {self.release_sha or 'unknown'}",
        ]
        if self.error:
            lines.append("* **Release job completed with errors.**")
        else:
            lines.append("* **All releases completed successfully.**")
        logs_url = _run_logs_url()
        if logs_url:
            lines.append(f"* Run logs: {logs_url}")

        if not self.init_result.empty:
            lines.extend(["", "### Setup", ""])
            lines.extend(self.init_result.formatted_errors())
            lines.extend(self.init_result.formatted_successes())
        for result in self.component_results:
            if result.empty:
                continue
            title = " ".join(str(part) for part in (result.component_name, result.version) if part)
            lines.extend(["", f"### {title}", ""])
            lines.extend(result.formatted_errors())
            lines.extend(result.formatted_successes())
        return "\n".join(lines) + "\n"


def _run_logs_url() -> str | None:
    server = os.environ.get("GITHUB_SERVER_URL")
    repo = os.environ.get("GITHUB_REPOSITORY")
    run_id = os.environ.get("GITHUB_RUN_ID")
    if server and repo and run_id:
        return f"{server}/{repo}/actions/runs/{run_id}"
    return None
