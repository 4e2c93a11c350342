"""Configuration utilities for the contentops CLI.

This module provides shared configuration functions used across CLI commands.
Values come from ~/.contentops/config.json, overridden by CONTENTOPS_*
environment variables.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

import click

from contentops.core.config import BackendConfig

ENV_PREFIX = "CONTENTOPS_"

CONFIG_KEYS = (
    "api_url",
    "api_key",
    "storage_url",
    "storage_key",
    "timeout",
    "verify_ssl",
    "max_concurrent_uploads",
)


def get_config_dir() -> Path:
    """Get the configuration directory for contentops.

    Returns:
        Path to ~/.contentops or equivalent.
    """
    return Path.home() / ".contentops"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, str]:
    """Load configuration from config file and environment."""
    config: dict[str, str] = {}
    config_file = get_config_file()
    if config_file.exists():
        config.update(json.loads(config_file.read_text()))
    for key in CONFIG_KEYS:
        value = os.environ.get(ENV_PREFIX + key.upper())
        if value:
            config[key] = value
    return config


def save_config(config: dict[str, str]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def load_backend_config() -> BackendConfig:
    """Build the backend configuration for a command.

    Raises:
        ValueError: If the backend is not configured.
    """
    return BackendConfig.from_dict(load_config())


def backend_or_exit() -> BackendConfig:
    """Load the backend configuration or exit with a hint."""
    try:
        return load_backend_config()
    except ValueError as e:
        click.echo(f"Error: {e}. Run 'contentops configure' first.", err=True)
        sys.exit(1)


def setup_logging(verbose: bool) -> None:
    """Configure logging to stderr for the contentops loggers."""
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    root_logger = logging.getLogger("contentops")
    root_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(log_format))
    root_logger.handlers = [handler]
