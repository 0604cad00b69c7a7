"""Unit tests for the local-to-bastion tunnel process."""

import logging
import signal
import socket
from unittest.mock import MagicMock, patch

import pytest
from fakes.fake_kubectl import FakeKubectlClient, FakeProcess, forwarding_output

from sshjump.core.exceptions import KubectlError, TunnelStartError
from sshjump.providers.kubernetes.bastion import BastionInstance
from sshjump.services.tunnel import TunnelManager, TunnelProcess


@pytest.fixture
def instance() -> BastionInstance:
    return BastionInstance(name="sshjump-1", context=None, image="img", status="Running")


def join_readers(tunnel: TunnelProcess) -> None:
    for reader in tunnel.readers:
        reader.join(timeout=2)


class TestStart:
    """Test opening the tunnel."""

    def test_start_returns_once_kubectl_reports_forwarding(self, instance: BastionInstance) -> None:
        kubectl = FakeKubectlClient()

        tunnel = TunnelManager(kubectl, timeout=1.0).start(instance, 2222)

        assert tunnel.pid == 4242
        assert tunnel.local_port == 2222
        assert tunnel.remote_port == 22
        assert tunnel.ready.is_set()
        assert kubectl.calls == [("port-forward", ("sshjump-1", 2222, 22))]

    def test_start_fails_when_forwarder_exits(self, instance: BastionInstance) -> None:
        kubectl = FakeKubectlClient()
        kubectl.port_forward_process = FakeProcess(
            returncode=1,
            stdout_text="",
            stderr_text="Unable to listen on port 2222: address already in use\n",
        )

        with pytest.raises(TunnelStartError, match="address already in use"):
            TunnelManager(kubectl, timeout=1.0).start(instance, 2222)

    def test_foreign_listener_is_not_mistaken_for_tunnel(self, instance: BastionInstance) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
            server.bind(("127.0.0.1", 0))
            server.listen(1)
            busy_port = server.getsockname()[1]

            kubectl = FakeKubectlClient()
            process = FakeProcess(stdout_text="")
            kubectl.port_forward_process = process

            with pytest.raises(TunnelStartError, match="not forwarding"):
                TunnelManager(kubectl, timeout=0.3).start(instance, busy_port)

        assert process.signals == [signal.SIGTERM]

    def test_banner_for_other_port_is_ignored(self, instance: BastionInstance) -> None:
        kubectl = FakeKubectlClient()
        kubectl.port_forward_process = FakeProcess(stdout_text=forwarding_output(2223))

        with pytest.raises(TunnelStartError, match="not forwarding"):
            TunnelManager(kubectl, timeout=0.3).start(instance, 2222)

    def test_start_times_out_and_stops_forwarder(self, instance: BastionInstance) -> None:
        kubectl = FakeKubectlClient()
        process = FakeProcess(stdout_text="")
        kubectl.port_forward_process = process

        with pytest.raises(TunnelStartError, match="after 0.3s"):
            TunnelManager(kubectl, timeout=0.3).start(instance, 2222)

        assert process.signals == [signal.SIGTERM]

    def test_start_interrupted_stops_forwarder(self, instance: BastionInstance) -> None:
        kubectl = FakeKubectlClient()
        process = FakeProcess(stdout_text="")
        kubectl.port_forward_process = process
        manager = TunnelManager(kubectl)

        with patch.object(manager, "_wait_ready", side_effect=SystemExit(143)):
            with pytest.raises(SystemExit):
                manager.start(instance, 2222)

        assert process.signals == [signal.SIGTERM]

    def test_start_spawn_failure_raises_tunnel_error(self, instance: BastionInstance) -> None:
        kubectl = MagicMock()
        kubectl.port_forward.side_effect = OSError("exec format error")

        with pytest.raises(TunnelStartError, match="exec format error"):
            TunnelManager(kubectl).start(instance, 2222)

    def test_start_control_plane_error_propagates(self, instance: BastionInstance) -> None:
        kubectl = FakeKubectlClient()
        kubectl.fail_on.add("port-forward")

        with pytest.raises(KubectlError):
            TunnelManager(kubectl).start(instance, 2222)

    def test_forwarder_output_is_piped(self, instance: BastionInstance) -> None:
        kubectl = MagicMock()
        kubectl.port_forward.return_value = FakeProcess(stdout_text=forwarding_output(2222))

        TunnelManager(kubectl, timeout=1.0).start(instance, 2222)

        kwargs = kubectl.port_forward.call_args[1]
        assert kwargs["stdout"] is not None
        assert kwargs["stderr"] is not None
        assert kwargs["text"] is True


class TestOutputDraining:
    """Test that forwarder output is consumed for the whole session."""

    def test_stderr_is_drained_and_logged_with_tunnel_prefix(
        self, instance: BastionInstance, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.DEBUG, logger="sshjump.services.tunnel")
        error_lines = "".join(
            f"E1018 portforward.go:413] an error occurred forwarding 2222 -> 22: attempt {n}\n"
            for n in range(2000)
        )
        kubectl = FakeKubectlClient()
        kubectl.port_forward_process = FakeProcess(
            stdout_text=forwarding_output(2222), stderr_text=error_lines
        )

        tunnel = TunnelManager(kubectl, timeout=1.0).start(instance, 2222)
        join_readers(tunnel)

        assert kubectl.port_forward_process.stderr.read() == ""
        forwarded = [r for r in caplog.records if "error occurred forwarding" in r.getMessage()]
        assert len(forwarded) == 2000
        assert all(r.stream == "tunnel" for r in forwarded)
        assert len(tunnel.stderr_tail) == 20

    def test_stdout_is_drained_after_readiness(self, instance: BastionInstance) -> None:
        kubectl = FakeKubectlClient()
        handled = "".join("Handling connection for 2222\n" for _ in range(500))
        kubectl.port_forward_process = FakeProcess(stdout_text=forwarding_output(2222) + handled)

        tunnel = TunnelManager(kubectl, timeout=1.0).start(instance, 2222)
        join_readers(tunnel)

        assert kubectl.port_forward_process.stdout.read() == ""


class TestStop:
    """Test stopping the tunnel."""

    def test_stop_sends_sigterm_without_waiting(self) -> None:
        process = FakeProcess()
        tunnel = TunnelProcess(pid=process.pid, local_port=2222, remote_port=22, process=process)

        TunnelManager(FakeKubectlClient()).stop(tunnel)

        assert process.signals == [signal.SIGTERM]

    @patch("sshjump.services.tunnel.os.kill")
    def test_stop_by_pid_suppresses_missing_process(self, mock_kill: MagicMock) -> None:
        mock_kill.side_effect = ProcessLookupError()
        tunnel = TunnelProcess(pid=99999, local_port=2222, remote_port=22)
        manager = TunnelManager(FakeKubectlClient())

        manager.stop(tunnel)
        manager.stop(tunnel)

        assert mock_kill.call_count == 2
        mock_kill.assert_called_with(99999, signal.SIGTERM)
