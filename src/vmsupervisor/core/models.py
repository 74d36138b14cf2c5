import shlex
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def default_vm_dir() -> str:
    """Default location of the Windows VM image and QEMU dependencies."""
    return str(Path.home() / "macmini-windows")


class SupervisorSettings(BaseSettings):
    """
    Supervisor timing and logging settings (the 'supervisor' section in vmsupervisor.yaml).
    """
    model_config = SettingsConfigDict(env_prefix='VMSUPERVISOR_', extra='ignore')

    log_level: Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"] = "INFO"
    grace_period_s: float = Field(default=60.0, gt=0)
    reap_timeout_s: float = Field(default=30.0, gt=0)
    backoff_s: float = Field(default=10.0, ge=0)

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class ProbeSettings(BaseModel):
    """
    Buildlet health probe settings (the 'probe' section in vmsupervisor.yaml).
    """
    model_config = ConfigDict(extra='ignore')

    healthz_url: str = "http://localhost:8080/healthz"
    interval_s: float = Field(default=30.0, gt=0)
    failure_window_s: float = Field(default=600.0, ge=0)
    timeout_s: float = Field(default=10.0, gt=0)


class VMSettings(BaseModel):
    """
    Windows VM settings (the 'vm' section in vmsupervisor.yaml).
    """
    model_config = ConfigDict(extra='ignore')

    base_dir: str = Field(default_factory=default_vm_dir)
    cpus: int = Field(default=8, ge=1)
    memory_mb: int = Field(default=12288, ge=512)
    vnc_display: int = Field(default=3, ge=0)
    host_port: int = Field(default=8080, ge=1, le=65535)
    guest_port: int = Field(default=8080, ge=1, le=65535)
    snapshot: bool = True


class LaunchCommand(BaseModel):
    """
    Fully-formed description of the VM process to start.
    """
    executable: str
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    cwd: Optional[str] = None

    def argv(self) -> List[str]:
        return [self.executable, *self.args]

    def render(self) -> str:
        """Shell-quoted command line, prefixed by the extra environment."""
        env_prefix = [f"{key}={shlex.quote(value)}" for key, value in sorted(self.env.items())]
        return " ".join(env_prefix + [shlex.quote(part) for part in self.argv()])


CommandBuilder = Callable[[VMSettings], LaunchCommand]


class SupervisorConfig(BaseModel):
    """
    Everything the supervisor loop needs, assembled once at startup.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    # Timings and log level (Maps to 'supervisor' section)
    supervisor: SupervisorSettings = Field(default_factory=SupervisorSettings)

    # Health probe (Maps to 'probe' section)
    probe: ProbeSettings = Field(default_factory=ProbeSettings)

    # VM layout (Maps to 'vm' section)
    vm: VMSettings = Field(default_factory=VMSettings)

    # Builds the VM command; defaults to the QEMU Windows 10 command
    command_builder: Optional[CommandBuilder] = Field(default=None, exclude=True)

    def __init__(self, config_dict: Optional[Dict[str, Any]] = None, **data: Any):
        """
        Initialize the config, optionally seeding sections from a loaded config dictionary.
        """
        if config_dict:
            if 'supervisor' not in data:
                data['supervisor'] = SupervisorSettings(**(config_dict.get('supervisor') or {}))
            if 'probe' not in data:
                data['probe'] = ProbeSettings(**(config_dict.get('probe') or {}))
            if 'vm' not in data:
                data['vm'] = VMSettings(**(config_dict.get('vm') or {}))

        super().__init__(**data)

    def build_command(self) -> LaunchCommand:
        builder = self.command_builder
        if builder is None:
            from vmsupervisor.launch.qemu import windows10_command

            builder = windows10_command
        return builder(self.vm)
