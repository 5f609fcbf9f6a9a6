"""Unit tests for the workerctl command line."""

import json
from unittest.mock import MagicMock, patch

import pytest

from workerctl import cli
from workerctl.config import WorkerConfig, save_config
from workerctl.models.errors import (
    PidMismatchError,
    ProcessControlError,
    ShutdownTimeoutError,
)
from workerctl.services.worker import CleanupReport, CleanupStep, StepOutcome


class TestParser:
    """Test argument parsing."""

    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_up_flags(self):
        args = cli.build_parser().parse_args(
            ["up", "-p", "env", "-i", "alpine", "-o", "a=1", "-d"]
        )
        assert (args.path, args.image, args.options, args.detach) == (
            "env",
            "alpine",
            "a=1",
            True,
        )

    def test_every_command_has_handler(self):
        parser = cli.build_parser()
        for name in ("new", "up", "down", "status", "force-cleanup"):
            assert parser.parse_args([name]).command in cli.HANDLERS


class TestNew:
    """Test the new command."""

    def test_creates_environment(self, env):
        with patch("workerctl.cli.EnvironmentInitializer") as mock_init:
            mock_init.return_value.initialize.return_value = MagicMock()
            with patch("workerctl.cli.print_init_summary"):
                assert cli.main(["new", "-p", str(env.root), "-i", "alpine:3"]) == 0

        mock_init.return_value.initialize.assert_called_once_with(env.root, "alpine:3")

    def test_existing_path_fails(self, existing_env):
        assert cli.main(["new", "-p", str(existing_env.root)]) == 1


class TestUp:
    """Test the up command."""

    @patch("workerctl.cli.ReadinessPoller")
    @patch("workerctl.cli.WorkerLauncher")
    @patch("workerctl.cli.build_worker_command")
    def test_detached_with_overrides(
        self, mock_command, mock_launcher, mock_poller, existing_env
    ):
        mock_command.return_value = ["python", "-m", "workerctl", "up"]
        handle = MagicMock(pid=4242, log_path=existing_env.log_path)
        mock_launcher.return_value.launch_detached.return_value = handle

        code = cli.main(
            ["up", "-p", str(existing_env.root), "-o", "worker_port=5055", "-d"]
        )

        assert code == 0
        overrides = json.loads(existing_env.overrides_path.read_text())
        assert overrides["worker_port"] == 5055
        mock_command.assert_called_once_with(existing_env.root, None, "worker_port=5055")
        mock_launcher.return_value.launch_detached.assert_called_once_with(
            existing_env, ["python", "-m", "workerctl", "up"]
        )
        mock_poller.return_value.wait_ready.assert_called_once_with(handle, 5055)

    @patch("workerctl.cli.fetch_status")
    @patch("workerctl.cli.ReadinessPoller")
    @patch("workerctl.cli.WorkerLauncher")
    def test_restart_without_overrides_drops_stale_overrides(
        self, mock_launcher, mock_poller, mock_fetch, existing_env
    ):
        mock_fetch.return_value = ("", "ready\n", "200 OK")
        root = str(existing_env.root)

        assert cli.main(["up", "-p", root, "-o", "worker_port=6000", "-d"]) == 0
        assert mock_poller.return_value.wait_ready.call_args.args[1] == 6000

        assert cli.main(["up", "-p", root, "-d"]) == 0
        assert mock_poller.return_value.wait_ready.call_args.args[1] == 5000
        assert not existing_env.overrides_path.exists()
        assert existing_env.active_config_path() == existing_env.config_path

        assert cli.main(["status", "-p", root]) == 0
        assert mock_fetch.call_args.args[0].worker_port == 5000

    @patch("workerctl.cli.ReadinessPoller")
    @patch("workerctl.cli.WorkerLauncher")
    def test_detached_pid_mismatch(self, mock_launcher, mock_poller, existing_env):
        mock_poller.return_value.wait_ready.side_effect = PidMismatchError(1, 2, 5000)

        assert cli.main(["up", "-p", str(existing_env.root), "-d"]) == 1

    @patch("workerctl.cli.WorkerLauncher")
    def test_bad_override_does_not_launch(self, mock_launcher, existing_env):
        code = cli.main(["up", "-p", str(existing_env.root), "-o", "bogus=1", "-d"])

        assert code == 1
        assert not existing_env.overrides_path.exists()
        mock_launcher.assert_not_called()

    @patch("workerctl.main.serve_forever")
    def test_foreground_serves(self, mock_serve, existing_env):
        mock_serve.side_effect = SystemExit(0)

        with pytest.raises(SystemExit):
            cli.main(["up", "-p", str(existing_env.root)])

        config = mock_serve.call_args.args[0]
        assert config.worker_dir == str(existing_env.root / "worker")

    @patch("workerctl.main.serve_forever")
    def test_foreground_unexpected_return(self, mock_serve, existing_env):
        assert cli.main(["up", "-p", str(existing_env.root)]) == 1

    @patch("workerctl.main.serve_forever")
    def test_missing_environment_initialized(self, mock_serve, env):
        def fake_init(target, image):
            target.root.mkdir()
            config = WorkerConfig.defaults(target.root)
            save_config(config, target.config_path)
            return config

        with patch("workerctl.cli.init_environment", side_effect=fake_init) as mock_init:
            assert cli.main(["up", "-p", str(env.root), "-i", "alpine:3"]) == 1

        assert mock_init.call_args.args[1] == "alpine:3"
        mock_serve.assert_called_once()


class TestDown:
    """Test the down command."""

    @patch("workerctl.cli.ShutdownController")
    def test_stops_recorded_pid(self, mock_controller, existing_env):
        existing_env.pid_path.parent.mkdir()
        existing_env.pid_path.write_text("4242")

        assert cli.main(["down", "-p", str(existing_env.root)]) == 0
        mock_controller.return_value.graceful_stop.assert_called_once_with(4242)

    @patch("workerctl.cli.ShutdownController")
    def test_uses_overrides_config(self, mock_controller, existing_env, tmp_path):
        other = tmp_path / "elsewhere"
        other.mkdir()
        (other / "worker.pid").write_text("777")
        data = json.loads(existing_env.config_path.read_text())
        data["worker_dir"] = str(other)
        existing_env.overrides_path.write_text(json.dumps(data))

        assert cli.main(["down", "-p", str(existing_env.root)]) == 0
        mock_controller.return_value.graceful_stop.assert_called_once_with(777)

    def test_missing_pid_file(self, existing_env):
        assert cli.main(["down", "-p", str(existing_env.root)]) == 1

    @patch("workerctl.cli.ShutdownController")
    def test_timeout_fails(self, mock_controller, existing_env):
        existing_env.pid_path.parent.mkdir()
        existing_env.pid_path.write_text("4242")
        mock_controller.return_value.graceful_stop.side_effect = ShutdownTimeoutError(
            "didn't stop"
        )

        assert cli.main(["down", "-p", str(existing_env.root)]) == 1


class TestStatus:
    """Test the status command."""

    @patch("workerctl.cli.fetch_status")
    def test_prints_response(self, mock_fetch, existing_env, capsys):
        mock_fetch.return_value = ("http://localhost:5000/status", "ready\n", "200 OK")

        assert cli.main(["status", "-p", str(existing_env.root)]) == 0

        out = capsys.readouterr().out
        assert "Worker Ping:" in out
        assert "http://localhost:5000/status => ready [200 OK]" in out

    @patch("workerctl.cli.fetch_status")
    def test_unreachable(self, mock_fetch, existing_env):
        mock_fetch.side_effect = ProcessControlError("could not send GET")
        assert cli.main(["status", "-p", str(existing_env.root)]) == 1

    def test_missing_environment(self, env):
        assert cli.main(["status", "-p", str(env.root)]) == 1


class TestForceCleanup:
    """Test the force-cleanup command."""

    @patch("workerctl.cli.ForceCleanup")
    def test_always_succeeds(self, mock_cleanup, env, capsys):
        mock_cleanup.return_value.run.return_value = CleanupReport(
            steps=[
                CleanupStep("cgroups", "list", "/sys/fs/cgroup/x", StepOutcome.NOT_FOUND, "gone"),
                CleanupStep("pid", "remove", "/tmp/worker.pid", StepOutcome.FAILED, "busy"),
            ]
        )

        assert cli.main(["force-cleanup", "-p", str(env.root)]) == 0
        assert "2 step(s) did not complete" in capsys.readouterr().out
