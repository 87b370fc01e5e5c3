"""Release configuration.

Settings are read from the [tool.lockstep] table of the repository's root
pyproject.toml and validated into Pydantic models. Problems are collected into
RepoSettings.errors rather than raised one at a time, so a user sees every
configuration mistake in a single pass.

Example:

    [tool.lockstep]
    repo = "acme/widgets"
    coordination_groups = [["widgets-core", "widgets-cli"]]

    [[tool.lockstep.components]]
    name = "widgets-core"
    directory = "packages/widgets-core"
    version_file = "widgets_core/__init__.py"
"""

from __future__ import annotations

import glob
import itertools
from pathlib import Path
from typing import Any, Literal

from pydantic import (
    BaseModel,
    Field,
    PrivateAttr,
    ValidationError,
    field_validator,
    model_validator,
)

from .semver import Semver
from .toml import (
    get_project_name,
    get_tool_config,
    get_workspace_member_globs,
    load_pyproject,
)

_anon_ids = itertools.count(1)

DEFAULT_COMMIT_TAGS: list[Any] = [
    {"tag": "feat", "header": "ADDED", "semver": "minor"},
    {"tag": "fix", "header": "FIXED"},
    "docs",
]

DEFAULT_STEPS: dict[str, list[dict[str, Any]]] = {
    "component": [
        {"name": "release_github"},
    ],
    "package": [
        {"name": "build_wheel"},
        {"name": "release_github", "assets": "build_wheel"},
        {"name": "publish", "source": "build_wheel"},
        {"name": "build_docs"},
        {"name": "push_gh_pages", "source": "build_docs"},
    ],
}


def _coerce_semver(value: Any, aliases: tuple[str, ...] = ()) -> Any:
    """Convert a level name (or one of `aliases`, meaning NONE) to a Semver."""
    if value is None or isinstance(value, Semver):
        return value
    if str(value).lower() in aliases:
        return Semver.NONE
    level = Semver.for_name(str(value))
    if level is None:
        raise ValueError(f"Unknown semver level: {value!r}")
    return level


class ScopeSettings(BaseModel):
    """Per-scope override of a commit tag's header and semver level.

    A bare string is shorthand for a semver override.
    """

    header: str | None = None
    hidden: bool = False
    semver: Semver | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_shorthand(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"semver": data}
        return data

    @field_validator("semver", mode="before")
    @classmethod
    def _semver(cls, value: Any) -> Any:
        return _coerce_semver(value)


class CommitTagSettings(BaseModel):
    """How a conventional-commit tag is reported and how much it bumps.

    Accepted forms:
        "docs"                                  → header DOCS, patch
        {feat = "minor"}                        → header FEAT, minor
        {tag = "fix", header = "FIXED"}         → header FIXED, patch
        {tag = "chore", hidden = true}          → counted, never listed

    Attributes:
        tag: The conventional-commit tag, matched case-sensitively.
        header: Changelog header. Defaults to the upper-cased tag.
        hidden: If True, changes with this tag are not listed in the changelog.
        semver: Bump level implied by the tag.
        scopes: Overrides keyed by commit scope.
    """

    tag: str
    header: str | None = None
    hidden: bool = False
    semver: Semver = Semver.PATCH
    scopes: dict[str, ScopeSettings] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _from_shorthand(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"tag": data}
        if isinstance(data, dict) and len(data) == 1 and "tag" not in data:
            key, value = next(iter(data.items()))
            if isinstance(value, dict):
                return {"tag": key, **value}
            return {"tag": key, "semver": value}
        return data

    @field_validator("semver", mode="before")
    @classmethod
    def _semver(cls, value: Any) -> Any:
        return _coerce_semver(value)

    def header_for(self, scope: str | None = None) -> str | None:
        """Return the header for a commit with this tag and scope, or None if hidden."""
        scope_info = self.scopes.get(scope) if scope else None
        if scope_info is not None:
            if scope_info.hidden:
                return None
            if scope_info.header:
                return scope_info.header
        if self.hidden:
            return None
        return self.header or self.tag.upper()

    def semver_for(self, scope: str | None = None) -> Semver:
        scope_info = self.scopes.get(scope) if scope else None
        if scope_info is not None and scope_info.semver is not None:
            return scope_info.semver
        return self.semver

    def all_headers(self) -> list[str]:
        """Every header this tag can produce, in order, without duplicates."""
        headers: list[str] = []
        candidates = [self.header_for()]
        candidates.extend(
            info.header for info in self.scopes.values() if not info.hidden
        )
        for header in candidates:
            if header and header not in headers:
                headers.append(header)
        return headers


class InputSettings(BaseModel):
    """An artifact a step copies in from an earlier step's output.

    A bare string names the source step and copies into the component
    directory.

    Attributes:
        name: The upstream step whose output directory is the source.
        dest: Where to copy: component, repo_root, output, temp, or none.
              `false` is accepted as an alias for none.
        source_path: Path within the upstream output. Defaults to everything.
        dest_path: Path within the destination. Defaults to source_path.
        collisions: What to do when a file already exists: error, replace, keep.
    """

    name: str
    dest: Literal["component", "repo_root", "output", "temp", "none"] = "component"
    source_path: str | None = None
    dest_path: str | None = None
    collisions: Literal["error", "replace", "keep"] = "error"

    @model_validator(mode="before")
    @classmethod
    def _from_shorthand(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"name": data}
        if isinstance(data, dict) and data.get("dest") is False:
            return {**data, "dest": "none"}
        return data

    @property
    def step_name(self) -> str:
        return self.name


class OutputSettings(BaseModel):
    """An extra artifact a step exports into its own output directory.

    A bare string is the source path within the component directory.
    """

    source: Literal["component", "repo_root", "temp"] = "component"
    source_path: str | None = None
    dest_path: str | None = None
    collisions: Literal["error", "replace", "keep"] = "error"

    @model_validator(mode="before")
    @classmethod
    def _from_shorthand(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"source_path": data}
        return data


class StepSettings(BaseModel):
    """Configuration of one pipeline step.

    Any key that is not one of the structural keys below is collected into
    `options` and interpreted by the step type. A bare string is the step
    name.

    Attributes:
        name: Unique name within the pipeline. Defaults to an anonymous name.
        type: Step type in the registry. Defaults to the name, or "noop".
        requested: Set by `run = true`; forces the step to run.
        inputs: Artifacts copied in from earlier steps.
        outputs: Extra artifacts exported after the step runs.
        options: Everything else.
    """

    name: str
    type: str
    requested: bool = False
    inputs: list[InputSettings] = Field(default_factory=list)
    outputs: list[OutputSettings] = Field(default_factory=list)
    options: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _split_options(cls, data: Any) -> Any:
        if isinstance(data, str):
            data = {"name": data}
        if not isinstance(data, dict):
            return data
        data = dict(data)
        options = dict(data.pop("options", None) or {})
        step_type = data.pop("type", None) or data.get("name") or "noop"
        name = data.pop("name", None) or f"_anon_{step_type}_{next(_anon_ids)}"
        requested = bool(data.pop("run", data.pop("requested", False)))
        inputs = data.pop("inputs", None) or []
        outputs = data.pop("outputs", None) or []
        options.update(data)
        return {
            "name": name,
            "type": step_type,
            "requested": requested,
            "inputs": inputs,
            "outputs": outputs,
            "options": options,
        }

    def to_dict(self) -> dict[str, Any]:
        """Flatten back to the configuration form (options at top level)."""
        return {
            "name": self.name,
            "type": self.type,
            "run": self.requested,
            "inputs": [i.model_dump() for i in self.inputs],
            "outputs": [o.model_dump() for o in self.outputs],
            **self.options,
        }


class UpdateDependencySettings(BaseModel):
    """Releases a component when one of its dependencies is released.

    Attributes:
        dependencies: Names of components this component depends on.
        dependency_semver_threshold: Smallest dependency bump that triggers a
            release of this component. "all" triggers on any release.
        pessimistic_constraint_level: How far the published dependency
            constraint may float. "exact" pins with ==.
    """

    dependencies: list[str]
    dependency_semver_threshold: Semver = Semver.MINOR
    pessimistic_constraint_level: Semver = Semver.MINOR

    @field_validator("dependency_semver_threshold", mode="before")
    @classmethod
    def _threshold(cls, value: Any) -> Any:
        return _coerce_semver(value, aliases=("all",))

    @field_validator("pessimistic_constraint_level", mode="before")
    @classmethod
    def _constraint(cls, value: Any) -> Any:
        return _coerce_semver(value, aliases=("exact",))


class ComponentSettings(BaseModel):
    """Configuration of one releasable component.

    Attributes:
        name: Component name, also used as the tag prefix (name/vX.Y.Z).
        type: "package" (a Python distribution) or "component" (anything else).
        directory: Directory relative to the repository root.
        changelog_path: Changelog path relative to the component directory.
        version_file: Optional file holding `__version__ = "..."`, relative
            to the component directory.
        include_globs: Extra paths whose changes count for this component.
        exclude_globs: Paths whose changes never count for this component.
        update_dependencies: Dependency-triggered release configuration.
        gh_pages_enabled: Whether to publish documentation to the gh-pages
            branch. Defaults to the repository setting, or to True when
            gh_pages_directory is given.
        gh_pages_directory: Directory on the gh-pages branch that holds this
            component's documentation.
        steps: Pipeline steps. Defaults to the default steps for the type.
    """

    name: str
    type: Literal["package", "component"] = "package"
    directory: str | None = None
    changelog_path: str = "CHANGELOG.md"
    version_file: str | None = None
    include_globs: list[str] = Field(default_factory=list)
    exclude_globs: list[str] = Field(default_factory=list)
    update_dependencies: UpdateDependencySettings | None = None
    gh_pages_enabled: bool | None = None
    gh_pages_directory: str | None = None
    steps: list[StepSettings] | None = None
    modify_steps: list[dict[str, Any]] = Field(default_factory=list)
    prepend_steps: list[Any] | dict[str, Any] = Field(default_factory=list)
    append_steps: list[Any] | dict[str, Any] = Field(default_factory=list)
    delete_steps: list[str] = Field(default_factory=list)


class RepoSettings(BaseModel):
    """Repository-wide release settings.

    After loading, `errors` lists every configuration problem found. Callers
    must check it before releasing anything.
    """

    repo: str | None = None
    main_branch: str = "main"
    release_branch_prefix: str = "release"
    release_pending_label: str = "release: pending"
    release_complete_label: str = "release: complete"
    release_error_label: str = "release: error"
    coordinate_versions: bool = False
    coordination_groups: list[list[str]] = Field(default_factory=list)
    gh_pages_enabled: bool = False
    commit_tags: list[CommitTagSettings] = Field(
        default_factory=lambda: [CommitTagSettings.model_validate(t) for t in DEFAULT_COMMIT_TAGS]
    )
    breaking_change_header: str = "BREAKING CHANGE"
    no_significant_updates_notice: str = "No significant updates."
    update_dependency_header: str = "DEPENDENCY"
    issue_number_suffix_handling: Literal["plain", "delete", "link"] = "plain"
    default_steps: dict[str, list[StepSettings]] = Field(
        default_factory=lambda: {
            kind: [StepSettings.model_validate(s) for s in steps]
            for kind, steps in DEFAULT_STEPS.items()
        }
    )
    components: list[ComponentSettings] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list, exclude=True)

    _groups: dict[str, list[str]] = PrivateAttr(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RepoSettings:
        """Validate raw configuration, collecting errors instead of raising."""
        try:
            settings = cls.model_validate(data)
        except ValidationError as exc:
            settings = cls()
            settings.errors.extend(format_validation_errors(exc))
            return settings
        settings._finish()
        return settings

    def component_settings(self, name: str) -> ComponentSettings | None:
        for component in self.components:
            if component.name == name:
                return component
        return None

    def component_names(self) -> list[str]:
        return [c.name for c in self.components]

    def coordination_group(self, name: str) -> list[str]:
        """Names of the components that release together with `name`."""
        return self._groups.get(name, [name])

    def commit_tag(self, tag: str) -> CommitTagSettings | None:
        for tag_settings in self.commit_tags:
            if tag_settings.tag == tag:
                return tag_settings
        return None

    def _finish(self) -> None:
        if not self.repo:
            self.errors.append('Missing required key "repo" (owner/name)')
        self._check_component_names()
        self._resolve_directories()
        self._resolve_gh_pages()
        self._resolve_coordination_groups()
        self._check_update_dependencies()
        for component in self.components:
            component.steps = self._build_steps(component)

    def _check_component_names(self) -> None:
        seen: set[str] = set()
        for name in self.component_names():
            if name in seen:
                self.errors.append(f"Component {name} is defined more than once")
            seen.add(name)

    def _resolve_directories(self) -> None:
        multiple = len(self.components) > 1
        for component in self.components:
            if component.directory is None:
                component.directory = component.name if multiple else "."

    def _resolve_gh_pages(self) -> None:
        multiple = len(self.components) > 1
        for component in self.components:
            if component.gh_pages_enabled is None:
                component.gh_pages_enabled = (
                    self.gh_pages_enabled or component.gh_pages_directory is not None
                )
            if component.gh_pages_directory is None:
                component.gh_pages_directory = component.name if multiple else "."

    def _resolve_coordination_groups(self) -> None:
        names = set(self.component_names())
        if self.coordinate_versions:
            groups = [self.component_names()]
        else:
            groups = self.coordination_groups
        for group in groups:
            members: list[str] = []
            for name in group:
                if name not in names:
                    self.errors.append(
                        f"Unrecognized component {name} listed in a coordination group"
                    )
                elif name in self._groups:
                    self.errors.append(f"Component {name} is in multiple coordination groups")
                elif name not in members:
                    members.append(name)
            for name in members:
                self._groups[name] = members

    def _check_update_dependencies(self) -> None:
        names = set(self.component_names())
        for component in self.components:
            update = component.update_dependencies
            if update is None:
                continue
            if len(self.coordination_group(component.name)) > 1:
                self.errors.append(
                    f"Component {component.name} cannot be in a coordination group "
                    "and have update_dependencies"
                )
            for dep in update.dependencies:
                if dep == component.name:
                    self.errors.append(f"Component {component.name} depends on itself")
                elif dep not in names:
                    self.errors.append(
                        f"Component {component.name} depends on nonexistent component {dep}"
                    )

    def _build_steps(self, component: ComponentSettings) -> list[StepSettings]:
        if component.steps is not None:
            base = component.steps
        else:
            base = self.default_steps.get(component.type, [])
        # Copy so edits never leak into the shared defaults.
        steps = [StepSettings.model_validate(s.to_dict()) for s in base]
        steps = self._modify_steps(steps, component.modify_steps)
        steps = self._insert_steps(steps, component.prepend_steps, "before")
        steps = self._insert_steps(steps, component.append_steps, "after")
        return self._delete_steps(steps, component.delete_steps)

    def _modify_steps(
        self, steps: list[StepSettings], modifications: list[dict[str, Any]]
    ) -> list[StepSettings]:
        for modification in modifications:
            changes = dict(modification)
            mod_name = changes.pop("name", None)
            mod_type = changes.pop("type", None)
            count = 0
            for index, current in enumerate(steps):
                if (mod_name and current.name != mod_name) or (
                    mod_type and current.type != mod_type
                ):
                    continue
                count += 1
                info = current.to_dict()
                for key, value in changes.items():
                    # An empty string removes the key.
                    if value == "":
                        info.pop(key, None)
                    else:
                        info[key] = value
                steps[index] = StepSettings.model_validate(info)
            if count == 0:
                self.errors.append(
                    f"Unable to find step to modify for name={mod_name!r} and type={mod_type!r}."
                )
        return steps

    def _insert_steps(
        self, steps: list[StepSettings], info: list[Any] | dict[str, Any], anchor_key: str
    ) -> list[StepSettings]:
        anchor = None
        if isinstance(info, dict):
            anchor = info.get(anchor_key)
            raw = info.get("steps")
            if not isinstance(raw, list):
                self.errors.append(f"steps expected in {anchor_key} insertion")
                raw = []
        else:
            raw = info
        if not raw:
            return steps
        insert = [StepSettings.model_validate(s) for s in raw]
        if anchor is None:
            return insert + steps if anchor_key == "before" else steps + insert
        index = next((i for i, s in enumerate(steps) if s.name == anchor), None)
        if index is None:
            self.errors.append(f"Unable to find step named {anchor} to insert {anchor_key}")
            return steps
        if anchor_key == "after":
            index += 1
        return steps[:index] + insert + steps[index:]

    def _delete_steps(self, steps: list[StepSettings], names: list[str]) -> list[StepSettings]:
        for name in names:
            index = next((i for i, s in enumerate(steps) if s.name == name), None)
            if index is None:
                self.errors.append(f"Unable to find step named {name} to delete.")
            else:
                del steps[index]
        return steps


def format_validation_errors(exc: ValidationError) -> list[str]:
    """Flatten a Pydantic ValidationError into readable one-line messages."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        messages.append(f"{location}: {error['msg']}" if location else error["msg"])
    return messages


def discover_components(root: Path) -> list[dict[str, Any]]:
    """Find components from [tool.uv.workspace].members.

    Each member directory with a pyproject.toml becomes a package component
    named after its [project].name. A repository that is not a workspace
    yields a single component for the root project.
    """
    root_doc = load_pyproject(root / "pyproject.toml")
    components: list[dict[str, Any]] = []
    for pattern in get_workspace_member_globs(root_doc):
        for match in sorted(glob.glob(str(root / pattern))):
            member = Path(match)
            if not (member / "pyproject.toml").exists():
                continue
            doc = load_pyproject(member / "pyproject.toml")
            components.append(
                {
                    "name": get_project_name(doc, member.name),
                    "directory": member.relative_to(root).as_posix(),
                }
            )
    if not components and "project" in root_doc:
        components.append({"name": get_project_name(root_doc, root.name), "directory": "."})
    return components


def load_settings(root: Path) -> RepoSettings:
    """Load settings from the root pyproject.toml.

    Never raises for configuration problems; check `errors` on the result.
    """
    path = root / "pyproject.toml"
    if not path.exists():
        settings = RepoSettings()
        settings.errors.append(f"No pyproject.toml found in {root}")
        return settings
    data = get_tool_config(load_pyproject(path))
    if not data.get("components"):
        data["components"] = discover_components(root)
    return RepoSettings.from_dict(data)
