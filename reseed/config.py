"""
Configuration management for reseed.

Loads $RESEED_HOME/config.yaml (default ~/.config/reseed/config.yaml).
The allow-list lives here: it is read once at start and never mutated
during a run.
"""

import os
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from reseed.errors import ConfigError


DEFAULT_ALLOWED_CLIENTS = (
    "los-demo", "qa", "dev", "qa-poc",
    "onb-1", "onb-2", "onb-3", "onb-4", "onb-5", "onb-6", "onb-7", "onb-8",
)

# Fixed by design; config may narrow this set but never widen it.
SUPPORTED_ENVIRONMENTS = ("sandbox", "production")

DEFAULT_SECRET_ID_TEMPLATE = "{client}/{segment}/{service}/config"

# Secret path segment per environment. "workflows" is the production segment
# and also the home of the services shared across environments.
DEFAULT_ENVIRONMENT_SEGMENTS = {"sandbox": "sandbox", "production": "workflows"}
SHARED_SEGMENT = "workflows"


def get_reseed_home() -> Path:
    """Return the reseed config directory ($RESEED_HOME or ~/.config/reseed)."""
    home = os.environ.get("RESEED_HOME")
    if home:
        return Path(home).expanduser()
    return Path("~/.config/reseed").expanduser()


@dataclass(frozen=True)
class ReseedConfig:
    """Process-wide static configuration."""

    allowed_clients: tuple[str, ...] = DEFAULT_ALLOWED_CLIENTS
    allowed_environments: tuple[str, ...] = SUPPORTED_ENVIRONMENTS
    aws_region: str = "us-east-2"
    secret_id_template: str = DEFAULT_SECRET_ID_TEMPLATE
    environment_segments: Dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_ENVIRONMENT_SEGMENTS)
    )
    workspace_root: Optional[Path] = None
    log_root: Path = field(
        default_factory=lambda: Path(tempfile.gettempdir()) / "reseed-runs"
    )
    command_timeout_seconds: int = 900
    probe_timeout_seconds: int = 60
    kubectl: str = "kubectl"
    aws: str = "aws"
    confirmation_phrase: str = "DELETE ALL DATA"
    log_level: str = "INFO"
    log_format: str = "pretty"
    env_file: Optional[Path] = None
    config_path: Optional[Path] = None

    def __post_init__(self):
        unknown = set(self.allowed_environments) - set(SUPPORTED_ENVIRONMENTS)
        if unknown:
            raise ConfigError(
                f"allowed_environments may only narrow {list(SUPPORTED_ENVIRONMENTS)}; "
                f"got unsupported {sorted(unknown)}"
            )
        if not self.allowed_clients:
            raise ConfigError("allowed_clients must not be empty")
        if self.command_timeout_seconds <= 0 or self.probe_timeout_seconds <= 0:
            raise ConfigError("timeouts must be positive")
        missing = [e for e in self.allowed_environments if e not in self.environment_segments]
        if missing:
            raise ConfigError(f"environment_segments is missing entries for {missing}")

    def secret_id(self, client: str, environment: str, service: str, environment_scoped: bool) -> str:
        """Derive the opaque secret identifier for a target + service."""
        segment = self.environment_segments[environment] if environment_scoped else SHARED_SEGMENT
        return self.secret_id_template.format(client=client, segment=segment, service=service)

    def with_overrides(self, **overrides: Any) -> "ReseedConfig":
        """Return a copy with CLI overrides applied (None values are ignored)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the config.yaml shape."""
        return {
            "allowed_clients": list(self.allowed_clients),
            "allowed_environments": list(self.allowed_environments),
            "aws_region": self.aws_region,
            "secret_id_template": self.secret_id_template,
            "environment_segments": dict(self.environment_segments),
            "workspace_root": str(self.workspace_root) if self.workspace_root else None,
            "log_root": str(self.log_root),
            "command_timeout_seconds": self.command_timeout_seconds,
            "probe_timeout_seconds": self.probe_timeout_seconds,
            "kubectl": self.kubectl,
            "aws": self.aws,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "env_file": str(self.env_file) if self.env_file else None,
        }


_PATH_KEYS = ("workspace_root", "log_root", "env_file")
_TUPLE_KEYS = ("allowed_clients", "allowed_environments")
_INT_KEYS = ("command_timeout_seconds", "probe_timeout_seconds")


def _coerce(data: Dict[str, Any]) -> Dict[str, Any]:
    known = set(ReseedConfig.__dataclass_fields__) - {"config_path"}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {sorted(unknown)}")

    values: Dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        if key in _PATH_KEYS:
            values[key] = Path(str(value)).expanduser()
        elif key in _TUPLE_KEYS:
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ConfigError(f"{key} must be a list of strings")
            values[key] = tuple(value)
        elif key in _INT_KEYS:
            try:
                values[key] = int(value)
            except (TypeError, ValueError):
                raise ConfigError(f"{key} must be an integer, got {value!r}")
        elif key == "environment_segments":
            if not isinstance(value, dict):
                raise ConfigError("environment_segments must be a mapping")
            values[key] = {str(k): str(v) for k, v in value.items()}
        else:
            values[key] = str(value)
    return values


def load_config(config_path: Optional[Path] = None) -> ReseedConfig:
    """
    Load reseed configuration from YAML.

    Args:
        config_path: Path to config file. Defaults to $RESEED_HOME/config.yaml

    Returns:
        ReseedConfig instance. Built-in defaults when the default file is absent.

    Raises:
        ConfigError: If the file is malformed, or an explicit path does not exist
    """
    explicit = config_path is not None
    if config_path is None:
        config_path = get_reseed_home() / "config.yaml"

    if not config_path.exists():
        if explicit:
            raise ConfigError(f"Configuration file not found: {config_path}")
        return ReseedConfig()

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path}: top level must be a mapping")

    config = ReseedConfig(config_path=config_path, **_coerce(data))

    if config.env_file:
        if not config.env_file.exists():
            raise ConfigError(f"env_file does not exist: {config.env_file}")
        load_dotenv(config.env_file, override=False)

    return config
