import os
import signal
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

from vmsupervisor.cli.main import _install_stop_handlers, _restore_handlers, app
from vmsupervisor.core.signal import CancelReason, LifecycleSignal
from vmsupervisor.runtime.probe import ProbeResult

runner = CliRunner()


def _combined_output(result) -> str:
    return f"{result.stdout}{getattr(result, 'stderr', '')}"


def test_help_lists_commands():
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    for name in ("run", "command", "probe"):
        assert name in result.stdout


def test_command_prints_qemu_command_line(tmp_path: Path):
    result = runner.invoke(
        app,
        ["command", "--config", str(tmp_path / "missing.yaml"), "--windows-10-path", "/vm"],
    )

    assert result.exit_code == 0
    assert "/vm/sysroot-macos-arm64/bin/qemu-system-aarch64" in result.stdout
    assert "-snapshot" in result.stdout
    assert "DYLD_LIBRARY_PATH=/vm/sysroot-macos-arm64/lib" in result.stdout


def test_command_reads_config_file(tmp_path: Path):
    config_file = tmp_path / "vmsupervisor.yaml"
    config_file.write_text("vm:\n  base_dir: /srv/win\n  memory_mb: 4096\n")

    result = runner.invoke(app, ["command", "--config", str(config_file)])

    assert result.exit_code == 0
    assert "/srv/win/Images/win10.qcow2" in result.stdout
    assert " -m 4096 " in result.stdout


def test_invalid_config_exits_with_error(tmp_path: Path):
    config_file = tmp_path / "vmsupervisor.yaml"
    config_file.write_text("probe:\n  interval_s: -5\n")

    result = runner.invoke(app, ["command", "--config", str(config_file)])

    assert result.exit_code == 1
    assert "Invalid configuration" in _combined_output(result)


def test_probe_command_reports_healthy(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(
        "vmsupervisor.cli.main.HealthzProbe.__call__",
        lambda self: ProbeResult.success(status_code=200),
    )

    result = runner.invoke(
        app,
        ["probe", "--config", str(tmp_path / "missing.yaml"), "--buildlet-healthz-url", "http://vm:8080/healthz"],
    )

    assert result.exit_code == 0
    assert "http://vm:8080/healthz: healthy" in result.stdout


def test_probe_command_fails_when_unhealthy(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(
        "vmsupervisor.cli.main.HealthzProbe.__call__",
        lambda self: ProbeResult.failure("connection refused"),
    )

    result = runner.invoke(app, ["probe", "--config", str(tmp_path / "missing.yaml")])

    assert result.exit_code == 1
    assert "unhealthy (connection refused)" in result.stdout


def test_run_builds_config_from_flags_and_exits_cleanly(monkeypatch, tmp_path: Path):
    captured = {}

    class FakeSupervisor:
        def __init__(self, config):
            captured["config"] = config
            self.cycles = 0

        def run(self, root):
            captured["root"] = root
            root.cancel(CancelReason.INTERRUPTED)

    monkeypatch.setattr("vmsupervisor.cli.main.BuildletSupervisor", FakeSupervisor)
    monkeypatch.setattr("vmsupervisor.cli.main.configure_logging", lambda level: captured.setdefault("level", level))

    result = runner.invoke(
        app,
        [
            "run",
            "--config", str(tmp_path / "missing.yaml"),
            "--windows-10-path", "/vm",
            "--buildlet-healthz-url", "http://vm:8080/healthz",
            "--failure-window", "120",
            "--grace-period", "15",
            "--backoff", "2",
            "--log-level", "DEBUG",
        ],
    )

    assert result.exit_code == 0
    config = captured["config"]
    assert config.vm.base_dir == "/vm"
    assert config.probe.healthz_url == "http://vm:8080/healthz"
    assert config.probe.failure_window_s == 120
    assert config.supervisor.grace_period_s == 15
    assert config.supervisor.backoff_s == 2
    assert captured["level"] == "DEBUG"
    assert captured["root"].reason == CancelReason.INTERRUPTED


def test_run_rejects_unknown_log_level(monkeypatch, tmp_path: Path):
    monkeypatch.setattr("vmsupervisor.cli.main.BuildletSupervisor", None)

    result = runner.invoke(app, ["run", "--config", str(tmp_path / "missing.yaml"), "--log-level", "LOUD"])

    assert result.exit_code == 1
    assert "Invalid configuration" in _combined_output(result)
    assert result.exception is None or isinstance(result.exception, SystemExit)


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signal delivery")
@pytest.mark.parametrize("signum", [signal.SIGINT, signal.SIGTERM])
def test_stop_handlers_cancel_root_and_restore_previous(signum):
    original = signal.getsignal(signum)
    root = LifecycleSignal(name="root")

    previous = _install_stop_handlers(root)
    try:
        os.kill(os.getpid(), signum)
        assert root.wait(timeout=2) is True
    finally:
        _restore_handlers(previous)

    assert root.reason == CancelReason.INTERRUPTED
    assert signal.getsignal(signum) is original
