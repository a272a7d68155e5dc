"""Bootstrap configuration file management.

Create, validate and display the YAML configuration read by ``get_config``.
"""
import os
import logging
from pathlib import Path
from typing import Optional, Union, Dict, Any

import yaml

from swarmctl.errors import ConfigError
from .config import BootstrapConfig, DEFAULT_CONFIG_PATHS, ENV_PREFIX, ENV_NESTED_DELIMITER, loaded_from

logger = logging.getLogger("swarm.configure")

def create_config_file(
    output_path: Optional[Union[str, Path]] = None,
    overwrite: bool = False,
) -> Path:
    """Create a new configuration file with default values.

    Args:
        output_path: Path where to save the configuration file.
                   If None, uses the first writable default location.
        overwrite: If True, overwrite existing file.

    Returns:
        Path to the created configuration file.

    Raises:
        FileExistsError: If the file exists and overwrite is False.
        PermissionError: If unable to write to the target directory.
    """
    if output_path is None:
        # Find the first writable default location
        for path in DEFAULT_CONFIG_PATHS:
            path = path.expanduser().absolute()
            if not path.exists() and os.access(_existing_parent(path), os.W_OK):
                output_path = path
                break
        else:
            output_path = Path("swarmctl-config.yaml").absolute()
    else:
        output_path = Path(output_path).expanduser().absolute()

    if output_path.exists() and not overwrite:
        raise FileExistsError(f"File already exists: {output_path}")

    config = BootstrapConfig()
    config.save(output_path)
    logger.info(f"Created configuration file: {output_path}")

    # Set appropriate permissions
    try:
        output_path.chmod(0o600)  # Read/write for owner only
    except OSError as e:
        logger.warning(f"Could not set permissions on {output_path}: {e}")

    return output_path

def _existing_parent(path: Path) -> Path:
    parent = path.parent
    while not parent.exists() and parent != parent.parent:
        parent = parent.parent
    return parent

def validate_config_file(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Validate a configuration file.

    Args:
        config_path: Path to the configuration file.

    Returns:
        Dict containing validation results and any errors.
    """
    config_path = Path(config_path).expanduser().absolute()
    result = {
        'valid': False,
        'path': str(config_path),
        'exists': config_path.exists(),
        'errors': [],
        'warnings': []
    }

    if not result['exists']:
        result['errors'].append(f"File does not exist: {config_path}")
        return result

    try:
        config = BootstrapConfig.load(config_path)
    except ConfigError as e:
        result['errors'].append(e.message)
        return result

    result['valid'] = True

    if config.ssh.key_path and not os.path.exists(config.ssh.key_path):
        result['warnings'].append(f"SSH key not found: {config.ssh.key_path}")

    if config.ssh.password and config_path.stat().st_mode & 0o077 != 0:
        result['warnings'].append(
            f"Configuration file holds a password and has insecure permissions. "
            f"Recommended: chmod 600 {config_path}"
        )

    return result

def show_config(config: Optional[BootstrapConfig] = None) -> str:
    """Render the current configuration, its source and the override variables."""
    from swarmctl.modules.utils import redact_sensitive_data

    config = config or BootstrapConfig.load()
    lines = [
        "swarmctl configuration:",
        "=" * 60,
        f"Loaded from: {loaded_from()}",
        "-" * 60,
        yaml.safe_dump(redact_sensitive_data(config.model_dump()), default_flow_style=False, sort_keys=False),
        "Environment variables override file values, for example:",
        "-" * 60,
        f"{ENV_PREFIX}SSH{ENV_NESTED_DELIMITER}USER=vagrant",
        f"{ENV_PREFIX}SSH{ENV_NESTED_DELIMITER}PORT=2222",
        f"{ENV_PREFIX}RUNTIME{ENV_NESTED_DELIMITER}PACKAGES=docker-ce,docker-ce-cli,containerd.io",
        f"{ENV_PREFIX}RETRY{ENV_NESTED_DELIMITER}ATTEMPTS=5",
    ]
    return "\n".join(lines)
