"""Repository access.

Wraps the git working tree and the GitHub repository it is published to.
All remote operations go through the git and gh command-line tools.
"""

from __future__ import annotations

import base64
import os
import shutil
import subprocess
from pathlib import Path

from .component import Component
from .errors import ConfigurationError
from .settings import RepoSettings, load_settings
from .shell import capture, git, log, succeeds


class Repository:
    """The repository being released and its configured components."""

    def __init__(self, settings: RepoSettings, root: Path | None = None) -> None:
        self.settings = settings
        self.root = (root or Path.cwd()).resolve()
        self._components: dict[str, Component] = {
            c.name: Component(settings, c, self.root) for c in settings.components
        }
        for component in self._components.values():
            component.coordination_group = [
                self._components[name]
                for name in settings.coordination_group(component.name)
                if name in self._components
            ]

    @classmethod
    def load(cls, root: Path | None = None) -> Repository:
        """Load settings from `root` (default: cwd).

        Raises:
            ConfigurationError: Listing every configuration problem found.
        """
        root = root or Path.cwd()
        settings = load_settings(root)
        if settings.errors:
            raise ConfigurationError("Invalid release configuration", settings.errors)
        return cls(settings, root)

    @property
    def repo_path(self) -> str:
        """GitHub "owner/name" of the repository."""
        return self.settings.repo or ""

    def all_components(self) -> list[Component]:
        return list(self._components.values())

    def component_named(self, name: str) -> Component | None:
        return self._components.get(name)

    def current_sha(self, ref: str | None = None) -> str:
        """Resolve a ref (default HEAD) to a full commit sha."""
        return git("rev-parse", f"{ref or 'HEAD'}^{{commit}}")

    def current_branch(self) -> str:
        return git("branch", "--show-current")

    def tracked_files(self) -> set[str]:
        """Paths tracked by git, relative to the current directory."""
        return set(git("ls-files").splitlines())

    def verify_git_clean(self) -> list[str]:
        """Return an error if the working tree has uncommitted changes."""
        status = git("status", "--porcelain")
        if status:
            return ["The git working tree has uncommitted changes:\n" + status]
        return []

    def release_exists(self, tag: str) -> bool:
        """Check whether a GitHub release exists for a tag."""
        return succeeds(
            "gh",
            "api",
            f"repos/{self.repo_path}/releases/tags/{tag}",
            "-H",
            "Accept: application/vnd.github.v3+json",
        )

    def create_branch(self, branch: str, start: str | None = None) -> None:
        git("switch", "-C", branch, *([start] if start else []))
        log(f"Switched to branch {branch}")

    def git_commit(
        self, title: str, details: str | None = None, cwd: Path | None = None
    ) -> None:
        git("add", "--all", cwd=cwd)
        args = ["commit", "-m", title]
        if details:
            args.extend(["-m", details])
        git(*args, cwd=cwd)

    def checkout_separate_dir(self, branch: str, remote: str, directory: Path) -> bool:
        """Check out a shallow copy of a remote branch into its own directory.

        The directory is emptied first. It gets the committer identity of the
        current repository and, on GitHub Actions, the GITHUB_TOKEN credentials.

        Returns:
            False if the branch could not be fetched.
        """
        url = git("remote", "get-url", remote)
        shutil.rmtree(directory, ignore_errors=True)
        directory.mkdir(parents=True)
        git("init", cwd=directory)
        for key in ("user.name", "user.email"):
            value = git("config", "--get", key, check=False)
            if value:
                git("config", key, value, cwd=directory)
        token = os.environ.get("GITHUB_TOKEN")
        if token and url.startswith("https://github.com/"):
            basic = base64.b64encode(f"x-access-token:{token}".encode()).decode()
            git(
                "config",
                "http.https://github.com/.extraheader",
                f"AUTHORIZATION: basic {basic}",
                cwd=directory,
            )
        git("remote", "add", remote, url, cwd=directory)
        try:
            git("fetch", "--no-tags", "--depth=1", remote, branch, cwd=directory)
        except subprocess.CalledProcessError:
            return False
        git("switch", "-c", branch, f"{remote}/{branch}", cwd=directory)
        log(f"Checked out {branch} into {directory}")
        return True

    def push(self, branch: str, remote: str = "origin") -> None:
        git("push", "--force", remote, branch)

    def create_pull_request(
        self, base: str, head: str, title: str, body: str, labels: list[str]
    ) -> str:
        """Open a pull request and return its URL."""
        args = [
            "gh",
            "pr",
            "create",
            "--repo",
            self.repo_path,
            "--base",
            base,
            "--head",
            head,
            "--title",
            title,
            "--body",
            body,
        ]
        for label in labels:
            args.extend(["--label", label])
        return capture(*args)
