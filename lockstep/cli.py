"""CLI entry point for lockstep."""

from __future__ import annotations

from pathlib import Path

import click
from packaging.version import Version

from lockstep.artifact_dir import ArtifactDir
from lockstep.errors import ReleaseError
from lockstep.models import Result
from lockstep.performer import Performer
from lockstep.pipeline import Pipeline
from lockstep.repository import Repository
from lockstep.request_logic import RequestLogic
from lockstep.request_spec import RequestSpec


@click.group()
@click.version_option()
def cli() -> None:
    """Coordinated releases for multi-component repositories."""


@cli.command()
@click.argument("specs", nargs=-1)
@click.option("--release-ref", default=None, help="Commit to release. Defaults to HEAD.")
@click.option("--remote", default="origin", show_default=True, help="Remote to push to.")
@click.option("--dry-run", is_flag=True, help="Print the plan without changing anything.")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation.")
def request(specs: tuple[str, ...], release_ref: str | None, remote: str, dry_run: bool, yes: bool) -> None:
    """Open a release pull request.

    SPECS are component names, optionally with a version or bump level
    (pkg-a, pkg-a=1.2.0, pkg-a=minor). "all" releases every component with
    changes, and is the default.
    """
    try:
        repository = Repository.load()
        release_sha = repository.current_sha(release_ref)
        request_spec = RequestSpec().add_from_input(list(specs), repository)
        request_spec.resolve_versions(release_sha, repository)
        logic = RequestLogic(repository, request_spec).verify_component_status()
    except ReleaseError as exc:
        raise click.ClickException(exc.describe()) from exc

    click.echo(f"Release plan at {release_sha}:")
    for resolved in request_spec.resolved_components or []:
        was = resolved.last_version or "unreleased"
        click.echo(f"  {resolved.component_name}: {was} → {resolved.version}")

    if dry_run:
        click.echo()
        click.echo(f"DRY RUN: would open {logic.build_commit_title()!r} with this description:")
        click.echo()
        click.echo(logic.build_pr_body())
        return
    if not yes:
        click.confirm("Open a release pull request?", abort=True)

    dirty = repository.verify_git_clean()
    if dirty:
        raise click.ClickException("\n".join(dirty))
    base = logic.target_branch
    branch = logic.determine_release_branch()
    title = logic.build_commit_title()
    repository.create_branch(branch, release_sha)
    logic.change_files()
    repository.git_commit(title, logic.build_commit_details())
    repository.push(branch, remote)
    url = repository.create_pull_request(
        base, branch, title, logic.build_pr_body(), logic.determine_pr_labels()
    )
    click.echo(f"✓ Opened release pull request {url}")


@cli.command()
@click.argument("component")
@click.option("--version", "assert_version", default=None, help="Fail unless the changelog reports this version.")
@click.option("--release-ref", default=None, help="Commit being released. Defaults to HEAD.")
@click.option("--remote", default="origin", show_default=True, help="Remote steps push to.")
@click.option("--work-dir", type=click.Path(), default=None, help="Directory for step artifacts.")
@click.option("--dry-run", is_flag=True, help="Run the pipeline without publishing anything.")
@click.option("--no-prechecks", is_flag=True, help="Skip working tree and version checks.")
def perform(
    component: str,
    assert_version: str | None,
    release_ref: str | None,
    remote: str,
    work_dir: str | None,
    dry_run: bool,
    no_prechecks: bool,
) -> None:
    """Release COMPONENT at the version in its changelog (usually called from CI)."""
    try:
        repository = Repository.load()
    except ReleaseError as exc:
        raise click.ClickException(exc.describe()) from exc

    performer = Performer(
        repository,
        release_ref=release_ref,
        enable_prechecks=not no_prechecks,
        git_remote=remote,
        work_dir=Path(work_dir) if work_dir else None,
        dry_run=dry_run,
    )
    performer.perform_adhoc_release(component, assert_version)
    click.echo(performer.build_report_text())
    if performer.error:
        raise SystemExit(1)


@cli.command()
def check() -> None:
    """Validate the release configuration and each component's pipeline."""
    try:
        repository = Repository.load()
    except ReleaseError as exc:
        raise click.ClickException(exc.describe()) from exc

    errors: list[str] = []
    for component in repository.all_components():
        errors.extend(component.validate())
        version = component.changelog_file.current_version or Version("0.0.0")
        pipeline = Pipeline(repository, component, version, Result(), ArtifactDir())
        try:
            for step_settings in component.settings.steps or []:
                pipeline.add_step(step_settings)
            pipeline.resolve_run()
        except ReleaseError as exc:
            errors.extend(f"{component.name}: {error}" for error in exc.errors)
    if errors:
        raise click.ClickException(
            "Invalid release configuration\n" + "\n".join(f"  * {e}" for e in errors)
        )
    click.echo(f"✓ Configuration OK ({len(repository.all_components())} components)")
