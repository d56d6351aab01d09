"""Tests for services/docker.py - the docker CLI wrapper."""
from pathlib import Path

import pytest

from opt_backup.domain import ContainerState
from opt_backup.services.docker import DockerRuntime
from opt_backup.storage.exceptions import CommandError, ContainerOperationError


@pytest.fixture
def mock_run(mocker):
    return mocker.patch("opt_backup.services.docker.run_checked_command", return_value="")


class TestListContainers:
    """Tests for DockerRuntime.list_containers."""

    def test_parses_names_and_states(self, mock_run):
        """Test every line becomes a (name, state) pair."""
        mock_run.return_value = (
            "amnezia-awg\trunning\n"
            "amnezia-xray\texited\n"
            "\n"
            "amnezia-openvpn\tpaused\n"
            "other\tcreated\n"
        )

        containers = DockerRuntime().list_containers()

        assert containers == [
            ("amnezia-awg", ContainerState.RUNNING),
            ("amnezia-xray", ContainerState.EXITED),
            ("amnezia-openvpn", ContainerState.PAUSED),
            ("other", ContainerState.EXITED),
        ]
        mock_run.assert_called_once_with(
            ["docker", "ps", "-a", "--format", "{{.Names}}\t{{.State}}"],
            timeout=None,
        )

    def test_listing_failure_propagates(self, mock_run):
        """Test a broken daemon raises CommandError to the caller."""
        mock_run.side_effect = CommandError(["docker", "ps"], "Cannot connect")

        with pytest.raises(CommandError):
            DockerRuntime().list_containers()


class TestGetState:
    """Tests for DockerRuntime.get_state."""

    def test_returns_parsed_state(self, mock_run):
        """Test docker inspect output is mapped to a state."""
        mock_run.return_value = "running\n"

        assert DockerRuntime().get_state("demo") is ContainerState.RUNNING
        mock_run.assert_called_once_with(
            ["docker", "inspect", "-f", "{{.State.Status}}", "demo"],
            timeout=None,
        )

    def test_failure_is_unknown(self, mock_run):
        """Test an inspect failure reports UNKNOWN instead of raising."""
        mock_run.side_effect = CommandError(["docker", "inspect"], "No such object")

        assert DockerRuntime().get_state("demo") is ContainerState.UNKNOWN


class TestLifecycleCommands:
    """Tests for pause/unpause/stop/start and copies."""

    @pytest.mark.parametrize("operation", ["pause", "unpause", "stop", "start"])
    def test_simple_commands(self, mock_run, operation):
        """Test each state change runs ``docker <operation> <name>``."""
        runtime = DockerRuntime(timeout=15)

        getattr(runtime, operation)("demo")

        mock_run.assert_called_once_with(["docker", operation, "demo"], timeout=15)

    def test_failure_becomes_container_operation_error(self, mock_run):
        """Test command failures carry the container and operation."""
        mock_run.side_effect = CommandError(["docker", "stop", "demo"], "timeout")

        with pytest.raises(ContainerOperationError, match="Failed to stop demo") as exc_info:
            DockerRuntime().stop("demo")

        assert exc_info.value.target == "demo"

    def test_copy_from(self, mock_run):
        """Test /opt/ is copied out to the host path."""
        DockerRuntime().copy_from("demo", "/opt/", Path("/tmp/work/demo_opt"))

        mock_run.assert_called_once_with(
            ["docker", "cp", "demo:/opt/", "/tmp/work/demo_opt"], timeout=None
        )

    def test_copy_to_merges_directory_contents(self, mock_run):
        """Test the trailing /. copies entries rather than the directory itself."""
        DockerRuntime().copy_to("demo", Path("/tmp/restore/demo_opt"), "/opt/")

        mock_run.assert_called_once_with(
            ["docker", "cp", "/tmp/restore/demo_opt/.", "demo:/opt/"], timeout=None
        )

    def test_clear_path_execs_rm_inside_container(self, mock_run):
        """Test clearing runs a shell rm with the path as an argument."""
        DockerRuntime().clear_path("demo", "/opt/")

        command = mock_run.call_args.args[0]
        assert command[:5] == ["docker", "exec", "demo", "sh", "-c"]
        assert "rm -rf" in command[5]
        assert command[-1] == "/opt"
