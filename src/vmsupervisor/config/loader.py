import os
import re
import yaml
from pathlib import Path
from typing import Any, Dict

ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]+))?\}")

ALLOWED_SECTIONS = {"supervisor", "probe", "vm"}


def interpolate_env_vars(content: str) -> str:
    """Replace ${VAR} or ${VAR:default} with environment variables."""
    def replace_match(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.environ.get(var_name, default_value)

    return ENV_VAR_PATTERN.sub(replace_match, content)


def load_config(path: Path) -> Dict[str, Any]:
    """
    Load vmsupervisor.yaml with environment variable interpolation.

    Only the known sections are kept: supervisor, probe, vm.
    A missing file yields an empty config; an unreadable or malformed one raises ValueError.
    """
    if not path.exists():
        return {}

    try:
        content = path.read_text(encoding="utf-8")
        full_config = yaml.safe_load(interpolate_env_vars(content)) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ValueError(f"Could not load config file {path}: {exc}") from exc

    if not isinstance(full_config, dict):
        raise ValueError(f"Config file {path} must contain a mapping at the top level.")

    return {k: v for k, v in full_config.items() if k in ALLOWED_SECTIONS}
