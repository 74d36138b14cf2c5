import signal
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from pydantic import ValidationError

from vmsupervisor.cli.formatter import OutputFormatter, configure_logging
from vmsupervisor.config.loader import load_config
from vmsupervisor.core.models import SupervisorConfig
from vmsupervisor.core.signal import CancelReason, LifecycleSignal
from vmsupervisor.runtime.probe import HealthzProbe
from vmsupervisor.runtime.supervisor import BuildletSupervisor

app = typer.Typer(name="vmsupervisor", help="Buildlet VM supervisor", rich_markup_mode=None)

DEFAULT_CONFIG_PATH = Path("vmsupervisor.yaml")


def _set_override(config_data: Dict[str, Any], section: str, key: str, value: Any) -> None:
    if value is None:
        return
    config_data.setdefault(section, {})
    if config_data[section] is None:
        config_data[section] = {}
    config_data[section][key] = value


def _load_supervisor_config(
    config_path: Path,
    windows_10_path: Optional[str] = None,
    healthz_url: Optional[str] = None,
    probe_interval: Optional[float] = None,
    failure_window: Optional[float] = None,
    grace_period: Optional[float] = None,
    backoff: Optional[float] = None,
    log_level: Optional[str] = None,
) -> SupervisorConfig:
    """Load the config file and apply command-line overrides on top of it."""
    try:
        config_data = load_config(config_path)
    except ValueError as e:
        OutputFormatter.log(str(e), severity="error")
        raise typer.Exit(code=1)

    _set_override(config_data, "vm", "base_dir", windows_10_path)
    _set_override(config_data, "probe", "healthz_url", healthz_url)
    _set_override(config_data, "probe", "interval_s", probe_interval)
    _set_override(config_data, "probe", "failure_window_s", failure_window)
    _set_override(config_data, "supervisor", "grace_period_s", grace_period)
    _set_override(config_data, "supervisor", "backoff_s", backoff)
    _set_override(config_data, "supervisor", "log_level", log_level)

    try:
        return SupervisorConfig(config_dict=config_data)
    except ValidationError as e:
        OutputFormatter.log(f"Invalid configuration: {e}", severity="error")
        raise typer.Exit(code=1)


def _install_stop_handlers(root: LifecycleSignal) -> Dict[int, Any]:
    """Cancel root on SIGINT/SIGTERM; returns the previous handlers."""

    def handle(signum, frame) -> None:
        # Fire from a thread: the handler can interrupt the main thread while it holds a signal lock.
        threading.Thread(target=root.cancel, args=(CancelReason.INTERRUPTED,), daemon=True).start()

    previous: Dict[int, Any] = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, handle)
    return previous


def _restore_handlers(previous: Dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


@app.command()
def run(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to vmsupervisor.yaml."),
    windows_10_path: Optional[str] = typer.Option(
        None, "--windows-10-path", help="Path to Windows image and QEMU dependencies."
    ),
    healthz_url: Optional[str] = typer.Option(
        None, "--buildlet-healthz-url", help="URL to buildlet /healthz endpoint."
    ),
    probe_interval: Optional[float] = typer.Option(None, "--probe-interval", help="Seconds between health probes."),
    failure_window: Optional[float] = typer.Option(
        None, "--failure-window", help="Seconds without a passing probe before the VM is stopped."
    ),
    grace_period: Optional[float] = typer.Option(
        None, "--grace-period", help="Seconds to wait after interrupting the VM before killing it."
    ),
    backoff: Optional[float] = typer.Option(None, "--backoff", help="Seconds to wait before restarting after a failure."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level."),
):
    """
    Run the buildlet VM in a loop until interrupted.
    """
    supervisor_config = _load_supervisor_config(
        config,
        windows_10_path=windows_10_path,
        healthz_url=healthz_url,
        probe_interval=probe_interval,
        failure_window=failure_window,
        grace_period=grace_period,
        backoff=backoff,
        log_level=log_level,
    )
    configure_logging(supervisor_config.supervisor.log_level)

    root = LifecycleSignal(name="root")
    previous = _install_stop_handlers(root)
    supervisor = BuildletSupervisor(supervisor_config)
    try:
        supervisor.run(root)
    finally:
        _restore_handlers(previous)

    OutputFormatter.log(f"Supervisor stopped after {supervisor.cycles} cycle(s).", severity="success")


@app.command()
def command(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to vmsupervisor.yaml."),
    windows_10_path: Optional[str] = typer.Option(
        None, "--windows-10-path", help="Path to Windows image and QEMU dependencies."
    ),
):
    """
    Print the VM command line that `run` would start.
    """
    supervisor_config = _load_supervisor_config(config, windows_10_path=windows_10_path)
    OutputFormatter.print_command(supervisor_config.build_command())


@app.command()
def probe(
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to vmsupervisor.yaml."),
    healthz_url: Optional[str] = typer.Option(
        None, "--buildlet-healthz-url", help="URL to buildlet /healthz endpoint."
    ),
):
    """
    Run a single health check against the buildlet.
    """
    supervisor_config = _load_supervisor_config(config, healthz_url=healthz_url)
    url = supervisor_config.probe.healthz_url
    health_probe = HealthzProbe(url, timeout=supervisor_config.probe.timeout_s)
    try:
        result = health_probe()
    finally:
        health_probe.close()

    OutputFormatter.print_probe_result(url, result)
    if not result.passed:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
