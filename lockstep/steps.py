"""Built-in pipeline step types.

Each step type is a Step subclass registered under a type name. A step's
configuration options are validated against its `options_model` when the
pipeline is built. Options a model does not declare are kept, so custom
keys pass through to `StepContext.option()`.
"""

from __future__ import annotations

import json
import shlex
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Callable, TypeVar

from pydantic import BaseModel, ConfigDict

from .errors import ReleaseError, UnknownStepType
from .shell import git, run

if TYPE_CHECKING:
    from .pipeline import StepContext

GITHUB_ACCEPT = "Accept: application/vnd.github.v3+json"


class StepOptions(BaseModel):
    """Options shared by every step.

    Attributes:
        clean: Reset the working tree before the step runs. Defaults to True.
    """

    model_config = ConfigDict(extra="allow")

    clean: bool = True


class Step:
    """Base class for step types.

    Override run(). Override primary() to make a step run without being
    requested, and dependencies() to pull in earlier steps by name.
    """

    options_model: type[StepOptions] = StepOptions

    def primary(self, context: StepContext) -> bool:
        return False

    def dependencies(self, context: StepContext) -> list[str]:
        return []

    def run(self, context: StepContext) -> None:
        pass


STEP_TYPES: dict[str, type[Step]] = {}

S = TypeVar("S", bound=type[Step])


def register_step(name: str) -> Callable[[S], S]:
    """Class decorator adding a step type to the registry under `name`."""

    def decorator(cls: S) -> S:
        STEP_TYPES[name] = cls
        return cls

    return decorator


def create_step(type_name: str) -> Step:
    """Instantiate a registered step type.

    Raises:
        UnknownStepType: If no step type is registered under the name.
    """
    cls = STEP_TYPES.get(type_name)
    if cls is None:
        raise UnknownStepType(f"Unknown step type: {type_name}")
    return cls()


def find_dist_files(context: StepContext, step_name: str) -> list[Path]:
    """List the built distributions in another step's output, aborting if there are none."""
    dist_dir = context.output_dir(step_name) / "dist"
    files = sorted(p for p in dist_dir.glob("*") if p.is_file()) if dist_dir.is_dir() else []
    if not files:
        context.abort_pipeline(
            f"The output of step {step_name} did not include any distributions in {dist_dir}"
        )
    return files


@register_step("noop")
class NoopStep(Step):
    """Does nothing. Useful as a named anchor for inputs and outputs."""


class CommandOptions(StepOptions):
    command: list[str] | str
    abort_pipeline_on_error: bool = True


@register_step("command")
class CommandStep(Step):
    """Runs an arbitrary command in the component directory."""

    options_model = CommandOptions

    def run(self, context: StepContext) -> None:
        options = context.options
        command = options.command
        args = shlex.split(command) if isinstance(command, str) else list(command)
        context.log(f"Running command {args}...")
        result = run(*args, check=False)
        if result.returncode != 0:
            message = f"Command failed: {args}. Check the logs for details."
            if options.abort_pipeline_on_error:
                context.abort_pipeline(message)
            context.exit_step(message)
        context.log("Completed command")


class BuildWheelOptions(StepOptions):
    sdist: bool = False


@register_step("build_wheel")
class BuildWheelStep(Step):
    """Builds the component with uv into `<output>/dist`."""

    options_model = BuildWheelOptions

    def run(self, context: StepContext) -> None:
        description = context.release_description
        out_dir = context.output_dir() / "dist"
        context.log(f"Building {description}...")
        args = ["uv", "build", ".", "--out-dir", str(out_dir)]
        if not context.options.sdist:
            args.append("--wheel")
        result = run(*args, check=False)
        if result.returncode != 0:
            context.abort_pipeline(f"Build failed for {description}. Check the logs for details.")
        context.log(f"Built {description} into {out_dir}")


class ReleaseGithubOptions(StepOptions):
    assets: str | None = None


@register_step("release_github")
class ReleaseGithubStep(Step):
    """Creates the GitHub release and tag, with the changelog entry as notes.

    When `assets` names a step, the distributions in that step's output are
    attached to the release.
    """

    options_model = ReleaseGithubOptions

    def primary(self, context: StepContext) -> bool:
        return True

    def dependencies(self, context: StepContext) -> list[str]:
        return [context.options.assets] if context.options.assets else []

    def run(self, context: StepContext) -> None:
        tag = context.tag_name
        repo = context.repository.repo_path
        context.log(f"Checking whether {tag} already exists...")
        if context.repository.release_exists(tag):
            context.warning(f"GitHub release {tag} already exists. Skipping.")
            context.add_success(f"GitHub release {tag} already exists.")
            context.exit_step()
        context.log(f"GitHub release {tag} has not yet been created.")

        try:
            notes = context.component.changelog_file.read_and_verify_latest_entry(
                context.release_version
            )
        except ReleaseError as exc:
            context.abort_pipeline(str(exc))
        assets = context.options.assets
        files = find_dist_files(context, assets) if assets else []

        if context.dry_run:
            context.add_success(f"DRY RUN GitHub release {tag}.")
            context.log(f"DRY RUN: GitHub release {tag} not actually created.")
            return

        body = json.dumps(
            {
                "tag_name": tag,
                "target_commitish": context.repository.current_sha(),
                "name": context.release_description,
                "body": notes,
            }
        )
        result = run(
            "gh", "api", f"repos/{repo}/releases", "--input", "-", "-H", GITHUB_ACCEPT,
            check=False,
            input=body,
        )
        if result.returncode != 0:
            context.abort_pipeline(f"Unable to create release {tag}. Check the logs for details.")
        context.add_success(f"Created release with tag {tag} on GitHub.")

        if files:
            result = run(
                "gh", "release", "upload", tag, *(str(f) for f in files), "--repo", repo,
                check=False,
            )
            if result.returncode != 0:
                context.abort_pipeline(f"Unable to upload assets to release {tag}.")
            context.add_success(f"Uploaded {len(files)} files to release {tag}.")


class PublishOptions(StepOptions):
    source: str = "build_wheel"
    publish_url: str | None = None
    check_url: str | None = None


@register_step("publish")
class PublishStep(Step):
    """Uploads the distributions built by the source step with uv publish.

    Files already on the index are skipped when `check_url` is set.
    """

    options_model = PublishOptions

    def primary(self, context: StepContext) -> bool:
        return True

    def dependencies(self, context: StepContext) -> list[str]:
        return [context.options.source]

    def run(self, context: StepContext) -> None:
        description = context.release_description
        files = find_dist_files(context, context.options.source)
        if context.dry_run:
            context.add_success(f"DRY RUN PyPI publish for {description}.")
            context.log("DRY RUN: Distributions not actually published.")
            return
        args = ["uv", "publish"]
        if context.options.publish_url:
            args.extend(["--publish-url", context.options.publish_url])
        if context.options.check_url:
            args.extend(["--check-url", context.options.check_url])
        args.extend(str(f) for f in files)
        context.log(f"Publishing {description}...")
        result = run(*args, check=False)
        if result.returncode != 0:
            context.abort_pipeline(f"Publish failed for {description}. Check the logs for details.")
        context.add_success(f"Published {description} to the package index.")


class BuildDocsOptions(StepOptions):
    command: list[str] | str = "uv run mkdocs build --site-dir {docs_dir}"


@register_step("build_docs")
class BuildDocsStep(Step):
    """Builds the component's documentation into `<output>/docs`.

    The command runs in the component directory. `{docs_dir}` in any of its
    arguments is replaced with the output path.
    """

    options_model = BuildDocsOptions

    def run(self, context: StepContext) -> None:
        description = context.release_description
        docs_dir = context.output_dir() / "docs"
        command = context.options.command
        args = shlex.split(command) if isinstance(command, str) else list(command)
        args = [arg.replace("{docs_dir}", str(docs_dir)) for arg in args]
        context.log(f"Building docs for {description}...")
        result = run(*args, check=False)
        if result.returncode != 0 or not docs_dir.is_dir():
            context.abort_pipeline(f"Docs build failed for {description}. Check the logs for details.")
        context.log(f"Built docs for {description} into {docs_dir}")


class PushGhPagesOptions(StepOptions):
    source: str = "build_docs"
    branch: str = "gh-pages"


@register_step("push_gh_pages")
class PushGhPagesStep(Step):
    """Publishes the docs built by the source step to the gh-pages branch.

    Each release lands in `<gh_pages_directory>/v<version>` on the branch.
    Runs by default only for components with gh_pages_enabled.
    """

    options_model = PushGhPagesOptions

    def primary(self, context: StepContext) -> bool:
        return bool(context.component.settings.gh_pages_enabled)

    def dependencies(self, context: StepContext) -> list[str]:
        return [context.options.source]

    def run(self, context: StepContext) -> None:
        description = context.release_description
        branch = context.options.branch
        pages_dir = context.temp_dir / branch
        if not context.repository.checkout_separate_dir(branch, context.git_remote, pages_dir):
            context.abort_pipeline(f"Unable to access the {branch} branch.")

        directory = context.component.settings.gh_pages_directory or "."
        dest_dir = pages_dir / directory / f"v{context.release_version}"
        if dest_dir.exists():
            context.warning(f"Docs already published for {description}. Skipping.")
            context.add_success(f"Docs already published for {description}.")
            context.exit_step()

        source_dir = context.output_dir(context.options.source) / "docs"
        if not source_dir.is_dir():
            context.abort_pipeline(
                f"The output of step {context.options.source} did not include docs in {source_dir}"
            )
        shutil.copytree(source_dir, dest_dir)
        if not git("status", "--porcelain", cwd=pages_dir):
            context.add_success(f"No documentation changes to publish for {description}.")
            context.exit_step()
        context.repository.git_commit(f"Generated docs for {description}", cwd=pages_dir)

        if context.dry_run:
            context.add_success(f"DRY RUN documentation published for {description}.")
            context.log(f"DRY RUN: {branch} not actually pushed.")
            return
        result = run("git", "-C", str(pages_dir), "push", context.git_remote, branch, check=False)
        if result.returncode != 0:
            context.abort_pipeline(f"Unable to push docs for {description} to {branch}.")
        context.add_success(f"Published documentation for {description}.")
