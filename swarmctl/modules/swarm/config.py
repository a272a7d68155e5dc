"""Swarm bootstrap configuration management.

This module handles configuration loading from multiple sources with the following precedence:
1. Explicitly passed parameters
2. Environment variables (``SWARMCTL_<SECTION>__<FIELD>``, e.g. ``SWARMCTL_SSH__PORT=2222``)
3. Configuration files
4. Default values
"""
import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional, List, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from swarmctl.errors import ConfigError

logger = logging.getLogger("swarm.config")

ENV_PREFIX = "SWARMCTL_"
ENV_NESTED_DELIMITER = "__"

# Default configuration paths
DEFAULT_CONFIG_PATHS = [
    Path("/etc/swarmctl/config.yaml"),
    Path("~/.config/swarmctl/config.yaml").expanduser(),
    Path("swarmctl-config.yaml").absolute(),
]

class SSHConfig(BaseModel):
    """SSH connection configuration."""
    user: str = Field(default="vagrant", description="Default SSH username")
    key_path: Optional[str] = Field(
        default=None,
        description="Path to SSH private key (agent and default keys are used when unset)"
    )
    password: Optional[str] = Field(default=None, description="SSH password, for password-only boxes")
    port: int = Field(default=22, description="SSH port number")
    connect_timeout: int = Field(default=10, description="SSH connection timeout in seconds")
    command_timeout: int = Field(default=300, description="Remote command timeout in seconds")

    @field_validator('key_path')
    @classmethod
    def expand_key_path(cls, v: Optional[str]) -> Optional[str]:
        """Expand the user home directory in the key path."""
        return os.path.expanduser(v) if v else v

class RuntimeConfig(BaseModel):
    """Container runtime and swarm settings."""
    packages: List[str] = Field(
        default_factory=lambda: ["docker-ce", "docker-ce-cli", "containerd.io"],
        description="Packages installed on every host"
    )
    prerequisites: List[str] = Field(
        default_factory=lambda: ["apt-transport-https", "ca-certificates", "curl", "gnupg", "lsb-release"],
        description="Packages needed to add the runtime package source"
    )
    repository_url: str = Field(
        default="https://download.docker.com/linux/ubuntu",
        description="Base URL of the runtime apt repository"
    )
    runtime_user: str = Field(
        default="vagrant",
        description="Unprivileged user granted access to the runtime socket"
    )
    runtime_group: str = Field(default="docker", description="Group owning the runtime socket")
    marker_dir: str = Field(
        default="/var/lib/swarmctl",
        description="Directory holding per-operation completion markers on each host"
    )
    swarm_port: int = Field(default=2377, description="Swarm cluster management port")

class RetryConfig(BaseModel):
    """Retry policy for transient remote failures."""
    attempts: int = Field(default=3, ge=1, description="Maximum attempts per retryable operation")
    initial_delay: float = Field(default=2.0, ge=0, description="First backoff delay in seconds")
    max_delay: float = Field(default=30.0, ge=0, description="Upper bound of the backoff delay")

class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    file: Optional[str] = Field(
        default=None,
        description="Path to log file (if None, logs to stderr)"
    )
    max_size_mb: int = Field(default=100, description="Maximum log file size in MB before rotation")
    backup_count: int = Field(default=5, description="Number of backup log files to keep")

class OrchestratorConfig(BaseModel):
    """Pipeline settings."""
    max_workers: int = Field(default=10, ge=1, description="Upper bound for the per-host worker pool")
    verify_membership: bool = Field(
        default=True,
        description="Check already-joined hosts against the leader's current swarm"
    )

class NotificationConfig(BaseModel):
    slack_webhook_url: Optional[str] = Field(default=None, description="Slack webhook for run summaries")

class BootstrapConfig(BaseModel):
    """Swarm bootstrap configuration."""
    model_config = ConfigDict(extra="ignore")

    ssh: SSHConfig = Field(default_factory=SSHConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)

    @classmethod
    def load(cls, config_path: Optional[Union[str, Path]] = None) -> 'BootstrapConfig':
        """Load configuration from file and environment variables.

        Raises:
            ConfigError: If an explicit path is missing or the resulting configuration is invalid
        """
        config_data: Dict[str, Any] = {}

        if config_path:
            config_path = Path(config_path).expanduser().absolute()
            if not config_path.exists():
                raise ConfigError(f"Configuration file not found: {config_path}", step='config')
            config_data = cls._load_config_file(config_path)
        else:
            # Try default paths
            for path in DEFAULT_CONFIG_PATHS:
                path = path.expanduser().absolute()
                if path.exists():
                    config_data = cls._load_config_file(path)
                    break

        config_data = merge_dicts(config_data, env_overrides())
        try:
            return cls(**config_data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}", step='config')

    @classmethod
    def _load_config_file(cls, path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML file."""
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}", step='config')
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping", step='config')
        return data

    def save(self, path: Union[str, Path]) -> None:
        """Save configuration to a file."""
        path = Path(path).expanduser().absolute()
        path.parent.mkdir(parents=True, exist_ok=True)

        config_dict = self.model_dump(exclude_none=True)

        with open(path, 'w') as f:
            yaml.safe_dump(config_dict, f, default_flow_style=False, sort_keys=False)

def env_overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Collect ``SWARMCTL_SECTION__FIELD`` variables into a nested dict.

    List-valued fields accept comma-separated values.
    """
    environ = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    sections = BootstrapConfig.model_fields

    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX) or ENV_NESTED_DELIMITER not in key:
            continue
        section, _, name = key[len(ENV_PREFIX):].lower().partition(ENV_NESTED_DELIMITER)
        if section not in sections:
            continue
        model = sections[section].annotation
        if name not in model.model_fields:
            logger.debug(f"Ignoring unknown setting {key}")
            continue
        annotation = str(model.model_fields[name].annotation)
        if annotation.startswith(('typing.List', 'list')):
            value = [item.strip() for item in value.split(',') if item.strip()]
        overrides.setdefault(section, {})[name] = value

    return overrides

def merge_dicts(base: Dict[Any, Any], override: Dict[Any, Any]) -> Dict[Any, Any]:
    """Recursively merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary with values to override

    Returns:
        dict: Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value
    return result

def loaded_from() -> str:
    """Return the config file the defaults would be read from."""
    return next((str(p) for p in DEFAULT_CONFIG_PATHS if p.expanduser().exists()), "default values")

# Global configuration instance
_config: Optional[BootstrapConfig] = None

def get_config(config_path: Optional[Union[str, Path]] = None) -> BootstrapConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None or config_path:
        _config = BootstrapConfig.load(config_path)
    return _config

def set_config(config: Optional[BootstrapConfig]) -> None:
    """Set (or with None, reset) the global configuration instance."""
    global _config
    _config = config
