"""Scratch directories for passing build artifacts between pipeline steps."""

from __future__ import annotations

import atexit
import secrets
import shutil
import tempfile
from pathlib import Path


class ArtifactDir:
    """A namespace of per-step directories under one base directory.

    Each logical name maps to `<base>/<random-id>-<name>`. The first get()
    for a name wipes and recreates that directory, so callers always start
    from an empty directory. Later calls return the same path untouched.

    When no base directory is given, a temporary one is created on first use
    and removed by cleanup(). A caller-supplied base is never deleted.
    """

    def __init__(self, base_dir: Path | str | None = None, auto_cleanup: bool = False) -> None:
        self._base_dir = Path(base_dir) if base_dir is not None else None
        self._needs_cleanup = False
        self._initialized: set[Path] = set()
        self._random_id: str | None = None
        if auto_cleanup:
            atexit.register(self.cleanup)

    @property
    def base_dir(self) -> Path:
        if self._base_dir is None:
            self._base_dir = Path(tempfile.mkdtemp(prefix="lockstep-"))
            self._needs_cleanup = True
        return self._base_dir

    @property
    def random_id(self) -> str:
        if self._random_id is None:
            self._random_id = secrets.token_hex(5)
        return self._random_id

    def get(self, name: str | None = None) -> Path:
        """Return the directory for `name`, creating it empty on first use."""
        dir_name = f"{self.random_id}-{name}" if name else self.random_id
        path = self.base_dir / dir_name
        if path not in self._initialized:
            self._initialized.add(path)
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            elif path.exists() or path.is_symlink():
                path.unlink()
            path.mkdir(parents=True)
        return path

    def output(self, name: str) -> Path:
        """Output directory of the step called `name`."""
        return self.get(f"out-{name}")

    def temp(self, name: str) -> Path:
        """Private scratch directory of the step called `name`."""
        return self.get(f"temp-{name}")

    def cleanup(self) -> None:
        """Remove the base directory if this object created it. Safe to repeat."""
        if self._needs_cleanup and self._base_dir is not None:
            shutil.rmtree(self._base_dir, ignore_errors=True)
            self._needs_cleanup = False
            self._base_dir = None
            self._initialized.clear()
