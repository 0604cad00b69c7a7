"""Session lifecycle tests driving SSHJump with fake kubectl and session runner."""

import signal
import socket
from pathlib import Path
from unittest.mock import patch

import pytest
from fakes.fake_kubectl import FakeKubectlClient, FakeProcess
from fakes.fake_session_runner import FakeSessionRunner

from sshjump.__main__ import SSHJump
from sshjump.core.exceptions import InjectionError, ProvisioningTimeoutError, TunnelStartError
from sshjump.providers.kubernetes.bastion import BastionManager
from sshjump.services.portlock import PortLockManager
from sshjump.services.tunnel import TunnelManager


class ManualClock:
    def __init__(self) -> None:
        self.now = 0.0

    def time(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def existing_key_pair(plugin_dir: Path) -> None:
    """Pre-seed the ephemeral keypair so tests skip RSA generation."""
    (plugin_dir / "id_rsa_sshjump").write_text("private\n")
    (plugin_dir / "id_rsa_sshjump.pub").write_text("ssh-rsa AAAAtest sshjump\n")


@pytest.fixture
def mock_require_binary():
    with patch("sshjump.__main__.require_binary", side_effect=lambda name: f"/usr/bin/{name}") as mock:
        yield mock


def make_app(kubectl: FakeKubectlClient, runner: FakeSessionRunner, plugin_dir: Path) -> SSHJump:
    clock = ManualClock()
    return SSHJump(
        kubectl_factory=lambda context: kubectl,
        bastion_manager_factory=lambda client: BastionManager(client, clock=clock.time, sleep=clock.sleep),
        tunnel_manager_factory=lambda client, timeout: TunnelManager(client, timeout=timeout),
        session_runner_factory=lambda: runner,
        port_lock_manager_factory=lambda lock_dir, max_scan: PortLockManager(
            lock_dir, max_scan=max_scan, port_available=lambda port: True
        ),
        plugin_dir_getter=lambda: plugin_dir,
    )


@pytest.mark.usefixtures("existing_key_pair", "mock_require_binary")
class TestInteractiveSession:
    """Test a full interactive session."""

    def test_session_provisions_connects_and_tears_down(self, plugin_dir: Path, identity_file: Path) -> None:
        kubectl = FakeKubectlClient(phases=["Pending", "Running"])
        runner = FakeSessionRunner(exit_code=0)
        app = make_app(kubectl, runner, plugin_dir)
        config = app.build_config(dest_node="admin@10.0.0.5", identity=str(identity_file))

        exit_code = app.run_session(config)

        assert exit_code == 0
        assert kubectl.operations() == ["create", "get", "get", "exec", "port-forward", "delete"]
        assert len(kubectl.created_manifests) == 1
        assert len(kubectl.deleted_pods) == 1
        assert kubectl.exec_inputs == ["ssh-rsa AAAAtest sshjump\n"]

        ran_config, local_port, key_pair = runner.runs[0]
        assert ran_config.destination == "admin@10.0.0.5"
        assert local_port == 2222
        assert key_pair.private_key_path == plugin_dir / "id_rsa_sshjump"

        assert runner.stop_calls == 1
        assert kubectl.processes[0].signals == [signal.SIGTERM]
        assert not (plugin_dir / "2222.lock").exists()

    def test_exit_code_of_final_session_is_returned(self, plugin_dir: Path, identity_file: Path) -> None:
        app = make_app(FakeKubectlClient(), FakeSessionRunner(exit_code=255), plugin_dir)
        config = app.build_config(dest_node="10.0.0.5", identity=str(identity_file))

        assert app.run_session(config) == 255

    def test_held_port_is_skipped(self, plugin_dir: Path, identity_file: Path) -> None:
        (plugin_dir / "2222.lock").touch()
        runner = FakeSessionRunner()
        app = make_app(FakeKubectlClient(), runner, plugin_dir)
        config = app.build_config(dest_node="admin@10.0.0.5", identity=str(identity_file))

        app.run_session(config)

        assert runner.runs[0][1] == 2223
        assert (plugin_dir / "2222.lock").exists()
        assert not (plugin_dir / "2223.lock").exists()

    def test_port_held_by_another_program_is_skipped(
        self, plugin_dir: Path, identity_file: Path, write_config
    ) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
            server.bind(("127.0.0.1", 0))
            server.listen(1)
            busy_port = server.getsockname()[1]
            write_config({"start_port": busy_port})
            kubectl = FakeKubectlClient()
            runner = FakeSessionRunner()
            app = make_app(kubectl, runner, plugin_dir)
            app._port_lock_manager_factory = PortLockManager
            config = app.build_config(dest_node="admin@10.0.0.5", identity=str(identity_file))

            app.run_session(config)

        local_port = runner.runs[0][1]
        assert local_port != busy_port
        assert kubectl.calls[-2] == ("port-forward", (kubectl.deleted_pods[0], local_port, 22))

    def test_requires_kubectl_and_ssh(
        self, plugin_dir: Path, identity_file: Path, mock_require_binary
    ) -> None:
        app = make_app(FakeKubectlClient(), FakeSessionRunner(), plugin_dir)
        config = app.build_config(dest_node="admin@10.0.0.5", identity=str(identity_file))

        app.run_session(config)

        assert [call[0][0] for call in mock_require_binary.call_args_list] == ["kubectl", "ssh"]


@pytest.mark.usefixtures("existing_key_pair", "mock_require_binary")
class TestPortForwardSession:
    """Test a full port-forward session."""

    def test_port_forward_session(self, plugin_dir: Path, identity_file: Path, mock_require_binary) -> None:
        kubectl = FakeKubectlClient()
        runner = FakeSessionRunner()
        app = make_app(kubectl, runner, plugin_dir)
        config = app.build_config(
            dest_node="admin@10.0.0.5", identity=str(identity_file), port_forward="37017:27017"
        )

        assert app.run_session(config) == 0

        ran_config = runner.runs[0][0]
        assert ran_config.port_forward_mode is True
        assert ran_config.forward.local_port == 37017
        assert ran_config.forward.remote_port == 27017
        assert kubectl.operations()[-1] == "delete"
        assert [call[0][0] for call in mock_require_binary.call_args_list] == ["kubectl"]


@pytest.mark.usefixtures("existing_key_pair", "mock_require_binary")
class TestFailureCleanup:
    """Test that every failure path still tears the session down."""

    def test_injection_failure_releases_bastion_and_port(self, plugin_dir: Path, identity_file: Path) -> None:
        kubectl = FakeKubectlClient()
        kubectl.fail_on.add("exec")
        runner = FakeSessionRunner()
        app = make_app(kubectl, runner, plugin_dir)
        config = app.build_config(dest_node="admin@10.0.0.5", identity=str(identity_file))

        with pytest.raises(InjectionError):
            app.run_session(config)

        assert "port-forward" not in kubectl.operations()
        assert runner.runs == []
        assert len(kubectl.deleted_pods) == 1
        assert not (plugin_dir / "2222.lock").exists()

    def test_tunnel_failure_releases_bastion_and_port(self, plugin_dir: Path, identity_file: Path) -> None:
        kubectl = FakeKubectlClient()
        kubectl.port_forward_process = FakeProcess(returncode=1, stdout_text="", stderr_text="unable to forward")
        runner = FakeSessionRunner()
        app = make_app(kubectl, runner, plugin_dir)
        config = app.build_config(dest_node="admin@10.0.0.5", identity=str(identity_file))

        with pytest.raises(TunnelStartError, match="unable to forward"):
            app.run_session(config)

        assert runner.runs == []
        assert len(kubectl.deleted_pods) == 1
        assert not (plugin_dir / "2222.lock").exists()

    def test_readiness_timeout_releases_bastion(
        self, plugin_dir: Path, identity_file: Path, write_config
    ) -> None:
        write_config({"ready_timeout": 1, "poll_interval": 0.25})
        kubectl = FakeKubectlClient(phases=["Pending"])
        app = make_app(kubectl, FakeSessionRunner(), plugin_dir)
        config = app.build_config(dest_node="admin@10.0.0.5", identity=str(identity_file))

        with pytest.raises(ProvisioningTimeoutError):
            app.run_session(config)

        assert "exec" not in kubectl.operations()
        assert len(kubectl.deleted_pods) == 1

    def test_permissive_readiness_proceeds(self, plugin_dir: Path, identity_file: Path, write_config) -> None:
        write_config({"ready_timeout": 1, "poll_interval": 0.25, "strict_ready": False})
        kubectl = FakeKubectlClient(phases=["Pending"])
        runner = FakeSessionRunner()
        app = make_app(kubectl, runner, plugin_dir)
        config = app.build_config(dest_node="admin@10.0.0.5", identity=str(identity_file))

        assert app.run_session(config) == 0
        assert len(runner.runs) == 1

    def test_session_error_still_tears_down(self, plugin_dir: Path, identity_file: Path) -> None:
        kubectl = FakeKubectlClient()
        runner = FakeSessionRunner(error=RuntimeError("Failed to create SSH tunnel"))
        app = make_app(kubectl, runner, plugin_dir)
        config = app.build_config(dest_node="admin@10.0.0.5", identity=str(identity_file))

        with pytest.raises(RuntimeError):
            app.run_session(config)

        assert kubectl.operations()[-1] == "delete"
        assert not (plugin_dir / "2222.lock").exists()

    def test_interrupt_during_session_cleans_up_once(
        self, plugin_dir: Path, identity_file: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        kubectl = FakeKubectlClient()
        runner = FakeSessionRunner()
        app = make_app(kubectl, runner, plugin_dir)
        config = app.build_config(dest_node="admin@10.0.0.5", identity=str(identity_file))
        monkeypatch.delenv("SSH_JUMP_NO_SIGNAL_EXIT")
        runner.on_run = lambda: app._cleanup_resources(signum=signal.SIGINT)

        with pytest.raises(SystemExit) as exc_info:
            app.run_session(config)

        assert exc_info.value.code == 130
        assert len(kubectl.deleted_pods) == 1
        assert runner.stop_calls == 1
        assert not (plugin_dir / "2222.lock").exists()
