"""Release step pipeline.

A Pipeline runs the configured steps for one component release. It works
in two phases:

1. resolve_run() decides which steps run: every step that is requested in
   configuration or declares itself primary, plus everything those steps
   depend on. A step may only depend on steps declared before it.
2. run() executes the chosen steps in declaration order. Before each step
   the working tree is reset. Inputs are then copied in from earlier steps'
   output directories, the step runs, and its outputs are copied out.

A step ends itself early with StepExit (the pipeline continues) or stops
the whole release with PipelineExit. Both are recorded in the Result.
"""

from __future__ import annotations

import shutil
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any

from packaging.version import Version
from pydantic import ValidationError

from .errors import (
    ConfigurationError,
    PipelineExit,
    StepExit,
    UnknownDependencyError,
)
from .settings import InputSettings, OutputSettings, StepSettings, format_validation_errors
from .shell import git, log, warning
from .steps import create_step

if TYPE_CHECKING:
    from .artifact_dir import ArtifactDir
    from .component import Component
    from .models import Result
    from .repository import Repository

_MISSING: Any = object()


class StepContext:
    """A configured step within a pipeline, and the API step types use.

    Step implementations receive the context in primary(), dependencies()
    and run(). It gives them options, directories, release metadata and
    the exit/abort controls.
    """

    def __init__(self, pipeline: Pipeline, settings: StepSettings) -> None:
        self._pipeline = pipeline
        self.settings = settings
        self.impl = create_step(settings.type)
        try:
            self.options = self.impl.options_model.model_validate(settings.options)
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid options for step {settings.name}", format_validation_errors(exc)
            ) from exc
        self.will_run = False

    @property
    def name(self) -> str:
        return self.settings.name

    @property
    def requested(self) -> bool:
        return self.settings.requested

    @property
    def input_settings(self) -> list[InputSettings]:
        return self.settings.inputs

    @property
    def output_settings(self) -> list[OutputSettings]:
        return self.settings.outputs

    @property
    def repository(self) -> Repository:
        return self._pipeline.repository

    @property
    def component(self) -> Component:
        return self._pipeline.component

    @property
    def release_version(self) -> Version:
        return self._pipeline.release_version

    @property
    def git_remote(self) -> str:
        return self._pipeline.git_remote

    @property
    def dry_run(self) -> bool:
        return self._pipeline.dry_run

    @property
    def release_description(self) -> str:
        return f"{self.component.name} {self.release_version}"

    @property
    def tag_name(self) -> str:
        return f"{self.component.name}/v{self.release_version}"

    @property
    def primary(self) -> bool:
        return bool(self.impl.primary(self))

    @property
    def dependencies(self) -> list[str]:
        return list(self.impl.dependencies(self))

    def log(self, message: str) -> None:
        log(message)

    def warning(self, message: str) -> None:
        warning(message)

    def add_success(self, message: str) -> None:
        self._pipeline.result.successes.append(message)

    def exit_step(self, error_message: str | None = None) -> None:
        """End this step. If a message is given it is recorded as an error."""
        if error_message:
            self._pipeline.result.errors.append(error_message)
        raise StepExit(error_message or "")

    def abort_pipeline(self, error_message: str) -> None:
        """Record an error and stop the pipeline. No later steps run."""
        self._pipeline.result.errors.append(error_message)
        raise PipelineExit(error_message)

    def option(self, key: str, required: bool = False, default: Any = None) -> Any:
        """Look up a raw option, aborting the pipeline if a required one is missing."""
        value = self.settings.options.get(key, _MISSING)
        if value is not _MISSING:
            return value
        if required:
            self.abort_pipeline(f"Missing required option: {key!r} for step {self.name!r}")
        return default

    def output_dir(self, step_name: str | None = None) -> Path:
        """Output directory of this step, or of `step_name`."""
        return self._pipeline.artifact_dir.output(step_name or self.name)

    @property
    def temp_dir(self) -> Path:
        return self._pipeline.artifact_dir.temp(self.name)

    def copy_from_input(
        self,
        source_step: str,
        source_path: str | None = None,
        dest: str = "component",
        dest_path: str | None = None,
        collisions: str = "error",
    ) -> None:
        """Copy files from another step's output directory."""
        source_path = source_path or "."
        source = self.output_dir(source_step) / source_path
        target = self._pipeline.destination_dir(self, dest) / (dest_path or source_path)
        self.log(f"Copying {source_path!r} from step {source_step!r}")
        self._pipeline.copy_tree(self, source, target, source_path, collisions)

    def copy_to_output(
        self,
        source: str = "component",
        source_path: str | None = None,
        dest_path: str | None = None,
        collisions: str = "error",
    ) -> None:
        """Copy files into this step's output directory."""
        source_path = source_path or "."
        origin = self._pipeline.source_dir(self, source) / source_path
        target = self.output_dir() / (dest_path or source_path)
        self.log(f"Copying {source_path!r} to output")
        self._pipeline.copy_tree(self, origin, target, source_path, collisions)

    def run(self) -> None:
        self.impl.run(self)


class Pipeline:
    """The ordered steps of one component release."""

    def __init__(
        self,
        repository: Repository,
        component: Component,
        version: Version,
        result: Result,
        artifact_dir: ArtifactDir,
        dry_run: bool = False,
        git_remote: str | None = None,
    ) -> None:
        self.repository = repository
        self.component = component
        self.release_version = version
        self.result = result
        self.artifact_dir = artifact_dir
        self.dry_run = dry_run
        self.git_remote = git_remote or "origin"
        self.steps: list[StepContext] = []
        self._locked = False
        self._git_files: set[str] | None = None

    def add_step(self, settings: StepSettings) -> StepContext:
        """Append a step.

        Raises:
            UnknownStepType: If the step type is not registered.
            ConfigurationError: If the step's options are invalid.
            RuntimeError: If resolve_run() was already called.
        """
        if self._locked:
            raise RuntimeError("Steps locked")
        context = StepContext(self, settings)
        self.steps.append(context)
        return context

    def resolve_run(self) -> Pipeline:
        """Mark requested and primary steps, and their dependencies, to run.

        Raises:
            UnknownDependencyError: If a step depends on a step that is not
                declared before it.
        """
        log("Resolving which steps to run...")
        self._locked = True
        for index, context in enumerate(self.steps):
            if context.requested:
                log(f"Step {context.name} is explicitly requested in config")
                self._mark(index)
            elif context.primary:
                log(f"Step {context.name} declares itself as a primary step")
                self._mark(index)
        return self

    def run(self) -> Pipeline | None:
        """Run the marked steps in order.

        Returns:
            self, or None if a step aborted the pipeline.
        """
        for context in self.steps:
            if not context.will_run:
                log(f"Skipping step {context.name}")
                continue
            try:
                self._clean_repo(context)
                self._pull_inputs(context)
                log(f"Running step {context.name}")
                context.run()
                log(f"Completed step {context.name}")
                self._push_outputs(context)
            except StepExit as exc:
                log(f"Exited step {context.name}: {exc}")
            except PipelineExit as exc:
                log(f"Aborted pipeline: {exc}")
                return None
        return self

    def copy_tree(
        self, context: StepContext, src: Path, dest: Path, src_name: str, collisions: str
    ) -> None:
        """Recursively copy `src` to `dest`, applying the collision policy per file."""
        if src.is_dir():
            if dest.exists() and not dest.is_dir():
                if self._handle_collision(context, collisions, dest, src_name) == "keep":
                    return
            dest.mkdir(parents=True, exist_ok=True)
            for child in sorted(src.iterdir()):
                self.copy_tree(
                    context,
                    child,
                    dest / child.name,
                    str(PurePosixPath(src_name) / child.name),
                    collisions,
                )
        elif src.exists():
            if dest.exists() or dest.is_symlink():
                if self._handle_collision(context, collisions, dest, src_name) == "keep":
                    return
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dest)
        else:
            context.abort_pipeline(f"Unable to copy {src_name} because it does not exist")

    def destination_dir(self, context: StepContext, dest: str) -> Path:
        if dest == "component":
            return self.component.path
        if dest == "repo_root":
            return self.repository.root
        if dest == "output":
            return context.output_dir()
        if dest == "temp":
            return context.temp_dir
        context.abort_pipeline(f"Unrecognized destination: {dest!r}")
        raise AssertionError("unreachable")

    def source_dir(self, context: StepContext, source: str) -> Path:
        if source == "component":
            return self.component.path
        if source == "repo_root":
            return self.repository.root
        if source == "temp":
            return context.temp_dir
        context.abort_pipeline(f"Unrecognized source: {source!r}")
        raise AssertionError("unreachable")

    def _mark(self, index: int) -> None:
        context = self.steps[index]
        if context.will_run:
            return
        context.will_run = True
        for input_settings in context.input_settings:
            dep_index = self._find_earlier(input_settings.step_name, index)
            if dep_index is None:
                raise UnknownDependencyError(
                    f"Input dependency {input_settings.step_name} not found before step {context.name}"
                )
            log(f"Step {self.steps[dep_index].name} requested as a dependency of {context.name}")
            self._mark(dep_index)
        for dep_name in context.dependencies:
            dep_index = self._find_earlier(dep_name, index)
            if dep_index is None:
                raise UnknownDependencyError(
                    f"Dependency {dep_name} not found before step {context.name}"
                )
            log(f"Step {dep_name} requested as a dependency of {context.name}")
            self._mark(dep_index)

    def _find_earlier(self, name: str, index: int) -> int | None:
        for earlier, context in enumerate(self.steps[:index]):
            if context.name == name:
                return earlier
        return None

    def _clean_repo(self, context: StepContext) -> None:
        if not context.options.clean:
            log(f"Pre-cleaning disabled by the step {context.name}")
            return
        log(f"Pre-cleaning the repo for step {context.name}")
        count = self._clean_tree(Path("."))
        if count:
            log(f"Cleaned {count} items")
        git("reset", "--hard")

    def _clean_tree(self, directory: Path) -> int:
        tracked = self._tracked_files()
        count = 0
        for child in sorted(directory.iterdir()):
            if child.name == ".git":
                continue
            rel = child.as_posix()
            if child.is_dir() and not child.is_symlink():
                if any(path.startswith(rel + "/") for path in tracked):
                    count += self._clean_tree(child)
                else:
                    log(f"Cleaning: {rel}")
                    shutil.rmtree(child)
                    count += 1
            elif rel not in tracked:
                log(f"Cleaning: {rel}")
                child.unlink()
                count += 1
        return count

    def _tracked_files(self) -> set[str]:
        if self._git_files is None:
            self._git_files = set(git("ls-files").splitlines())
        return self._git_files

    def _pull_inputs(self, context: StepContext) -> None:
        for input_settings in context.input_settings:
            if input_settings.dest == "none":
                continue
            source_path = input_settings.source_path or "."
            dest_path = input_settings.dest_path or source_path
            source = self.artifact_dir.output(input_settings.step_name) / source_path
            dest = self.destination_dir(context, input_settings.dest) / dest_path
            log(f"Copying {source_path!r} from step {input_settings.step_name!r}")
            self.copy_tree(context, source, dest, source_path, input_settings.collisions)

    def _push_outputs(self, context: StepContext) -> None:
        for output_settings in context.output_settings:
            source_path = output_settings.source_path or "."
            dest_path = output_settings.dest_path or source_path
            source = self.source_dir(context, output_settings.source) / source_path
            dest = context.output_dir() / dest_path
            log(f"Copying {source_path!r} to output")
            self.copy_tree(context, source, dest, source_path, output_settings.collisions)

    def _handle_collision(
        self, context: StepContext, collisions: str, dest: Path, src_name: str
    ) -> str:
        if collisions == "keep":
            return "keep"
        if collisions == "replace":
            if dest.is_dir() and not dest.is_symlink():
                shutil.rmtree(dest)
            else:
                dest.unlink()
            return "replace"
        context.abort_pipeline(
            f"Unable to copy {src_name} because it already exists at the destination"
        )
        raise AssertionError("unreachable")
