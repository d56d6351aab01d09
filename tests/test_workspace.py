"""Tests for storage/workspace.py - the run-scoped temporary root."""
import pytest

from opt_backup.storage.workspace import Workspace, run_workspace


class TestWorkspace:
    """Tests for Workspace class."""

    def test_subdir_is_fresh(self, tmp_path):
        """Test a leftover directory of the same name is replaced."""
        workspace = Workspace(tmp_path)
        stale = tmp_path / "demo_20240101_120000"
        stale.mkdir()
        (stale / "old").write_text("x")

        path = workspace.subdir("demo_20240101_120000")

        assert path == stale
        assert list(path.iterdir()) == []

    def test_discard_tolerates_missing(self, tmp_path):
        workspace = Workspace(tmp_path)

        workspace.discard(tmp_path / "never-created")
        path = workspace.subdir("x")
        workspace.discard(path)

        assert workspace.is_empty()


class TestRunWorkspace:
    """Tests for run_workspace context manager."""

    def test_root_removed_on_exit(self, tmp_path):
        with run_workspace(tmp_path) as workspace:
            root = workspace.root
            workspace.subdir("demo").joinpath("file").write_text("x")
            assert root.name.startswith("opt-backup-")

        assert not root.exists()

    def test_root_removed_on_interrupt(self, tmp_path):
        """Test the temporary root is removed when the run is interrupted."""
        with pytest.raises(KeyboardInterrupt):
            with run_workspace(tmp_path) as workspace:
                root = workspace.root
                workspace.subdir("demo")
                raise KeyboardInterrupt

        assert not root.exists()
        assert list(tmp_path.iterdir()) == []
