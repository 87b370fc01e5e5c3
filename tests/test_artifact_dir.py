"""Tests for lockstep.artifact_dir."""

from __future__ import annotations

from pathlib import Path

from lockstep.artifact_dir import ArtifactDir


class TestArtifactDir:
    def test_get_is_memoized(self, tmp_path: Path) -> None:
        artifact_dir = ArtifactDir(tmp_path)
        first = artifact_dir.get("x")
        (first / "file.txt").write_text("data")

        assert artifact_dir.get("x") == first
        assert (first / "file.txt").exists()

    def test_first_get_starts_empty(self, tmp_path: Path) -> None:
        artifact_dir = ArtifactDir(tmp_path)
        stale = tmp_path / f"{artifact_dir.random_id}-x"
        stale.mkdir()
        (stale / "old.txt").write_text("stale")

        path = artifact_dir.get("x")

        assert path == stale
        assert list(path.iterdir()) == []

    def test_output_and_temp_are_distinct(self, tmp_path: Path) -> None:
        artifact_dir = ArtifactDir(tmp_path)
        assert artifact_dir.output("build") != artifact_dir.temp("build")
        assert artifact_dir.output("build").name.endswith("-out-build")

    def test_random_id(self, tmp_path: Path) -> None:
        artifact_dir = ArtifactDir(tmp_path)
        assert artifact_dir.random_id == artifact_dir.random_id
        assert len(artifact_dir.random_id) == 10
        int(artifact_dir.random_id, 16)
        assert ArtifactDir(tmp_path).random_id != artifact_dir.random_id

    def test_cleanup_removes_temporary_base(self) -> None:
        artifact_dir = ArtifactDir()
        base = artifact_dir.base_dir
        artifact_dir.get("x")
        assert base.name.startswith("lockstep-")

        artifact_dir.cleanup()
        artifact_dir.cleanup()

        assert not base.exists()

    def test_cleanup_keeps_given_base(self, tmp_path: Path) -> None:
        artifact_dir = ArtifactDir(tmp_path)
        path = artifact_dir.get("x")
        artifact_dir.cleanup()
        assert path.exists()
