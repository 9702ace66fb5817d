#!/usr/bin/env -S python3 -B -u
"""
Configuration loader for the debug console.

Provides centralized configuration loading for the console tools.
"""

import os
import copy
import dataclasses
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional

from .exceptions import ConfigurationError
from .models import (
    DEFAULT_ADDRESS,
    DEFAULT_HISTORY_SIZE,
    DEFAULT_HOSTNAME,
    DEFAULT_MAX_PARENT_COMMANDS,
    DEFAULT_MAX_USER_COMMANDS,
    DEFAULT_PORT,
    ServerParameters,
)


CONFIG_ENV_VAR = 'DBGCON_CONF'
CONFIG_FILE_NAME = 'dbgcon.yaml'


def _default_config() -> Dict[str, Any]:
    return {
        'server': {
            'address': DEFAULT_ADDRESS,
            'port': DEFAULT_PORT,
            'hostname': DEFAULT_HOSTNAME,
            'max_user_commands': DEFAULT_MAX_USER_COMMANDS,
            'max_parent_commands': DEFAULT_MAX_PARENT_COMMANDS,
            'history_size': DEFAULT_HISTORY_SIZE,
        },
        'shell': {
            'host': DEFAULT_ADDRESS,
            'port': DEFAULT_PORT,
            'timeout': 5.0,
        },
    }


def config_search_paths() -> List[Path]:
    """
    Configuration file locations in order of precedence:
    1. Environment variable DBGCON_CONF (if set)
    2. ~/dbgcon.yaml (user's home directory)
    3. ./dbgcon.yaml (current directory)
    """
    paths = []
    env_config = os.environ.get(CONFIG_ENV_VAR)
    if env_config:
        paths.append(Path(env_config))
    paths.extend([
        Path.home() / CONFIG_FILE_NAME,
        Path('.') / CONFIG_FILE_NAME,
    ])
    return paths


def load_console_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Load debug console configuration.

    The first existing file from config_search_paths() (or config_file, when
    given) is merged section by section over the defaults.

    Returns:
        Dictionary containing configuration values

    Raises:
        ConfigurationError: the file is not valid YAML or not a mapping
    """
    config = _default_config()
    paths = [Path(config_file)] if config_file else config_search_paths()

    for path in paths:
        if not path.exists():
            continue

        try:
            with open(path, 'r') as f:
                file_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}", config_file=str(path), cause=e) from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read {path}: {e}", config_file=str(path), cause=e) from e

        if not isinstance(file_config, dict):
            raise ConfigurationError(f"Top level of {path} must be a mapping", config_file=str(path))

        _merge(config, file_config)
        config['config_file'] = str(path)
        break

    return config


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = copy.deepcopy(value)


def get_server_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Get the server section of the configuration.

    Returns:
        Dictionary with the ServerParameters fields
    """
    if config is None:
        config = load_console_config()
    return dict(config.get('server') or {})


def get_shell_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Get the client shell section of the configuration.

    Returns:
        Dictionary with host, port and timeout
    """
    if config is None:
        config = load_console_config()
    return dict(config.get('shell') or {})


def load_server_parameters(config_file: Optional[str] = None, **overrides: Any) -> ServerParameters:
    """
    Build validated ServerParameters from the configuration file.

    Keyword overrides (e.g. hooks or a port from the command line) win over
    file values; None values are ignored.
    """
    config = load_console_config(config_file)
    server = get_server_config(config)
    try:
        params = ServerParameters.from_config(server)
    except ConfigurationError as e:
        if 'config_file' in config:
            e.details['config_file'] = config['config_file']
        raise

    extra = {key: value for key, value in overrides.items() if value is not None}
    if not extra:
        return params

    try:
        return dataclasses.replace(params, **extra)
    except TypeError as e:
        raise ConfigurationError(f"Unknown server parameter override: {e}", cause=e) from e
