"""
Configuration Management Module

This module provides a centralized way to load and access configuration settings
from the config.yaml file. The parsed file is cached so every caller sees the
same settings.

Configuration values are read by the entry points (API app, scripts) and
passed into constructors; the scoring math never reads configuration itself.

Usage:
    from core.config import get_config
    config = get_config()
    threshold = config["matching"]["threshold"]
"""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional


# Cached configuration (module-level variable)
_config_instance: Optional[Dict[str, Any]] = None

# Environment variable that points at an alternative config file
CONFIG_ENV_VAR = "FACE_MATCH_CONFIG"


def get_project_root() -> Path:
    """
    Find the project root directory.

    The project root is identified by the presence of config.yaml file.
    This function walks up the directory tree from this file's location
    until it finds config.yaml.

    Returns:
        Path: The absolute path to the project root directory.

    Raises:
        FileNotFoundError: If config.yaml cannot be found in any parent directory.
    """
    # Start from the directory containing this file
    current_dir = Path(__file__).resolve().parent

    # Walk up the directory tree to find config.yaml
    while current_dir != current_dir.parent:
        config_path = current_dir / "config.yaml"
        if config_path.exists():
            return current_dir
        current_dir = current_dir.parent

    # If we reach here, config.yaml was not found
    raise FileNotFoundError(
        "Could not find config.yaml in any parent directory. "
        "Make sure you're running from within the project directory."
    )


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Optional path to the config file. If not provided, the
                     FACE_MATCH_CONFIG environment variable is consulted, then
                     the default config.yaml in the project root.

    Returns:
        Dict containing all configuration values.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the config file contains invalid YAML.
    """
    if config_path is None:
        config_path = os.environ.get(CONFIG_ENV_VAR)

    if config_path is None:
        project_root = get_project_root()
        config_path = project_root / "config.yaml"
    else:
        config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    return config or {}


def get_config(reload: bool = False) -> Dict[str, Any]:
    """
    Get the cached configuration.

    Args:
        reload: If True, forces reloading the configuration from disk.
                Useful for testing or if the config file has changed.

    Returns:
        Dict containing all configuration values.

    Example:
        config = get_config()
        samples = config["evaluation"]["impostor_samples_per_identity"]
    """
    global _config_instance

    if _config_instance is None or reload:
        _config_instance = load_config()

    return _config_instance


def get_section(section_name: str) -> Dict[str, Any]:
    """
    Get a specific section from the configuration.

    Args:
        section_name: Name of the configuration section
                      (e.g., "matching", "evaluation", "storage")

    Returns:
        Dict containing the section's configuration values.

    Raises:
        KeyError: If the section doesn't exist in the configuration.
    """
    config = get_config()

    if section_name not in config:
        raise KeyError(
            f"Configuration section '{section_name}' not found. "
            f"Available sections: {list(config.keys())}"
        )

    return config[section_name]


# Convenience functions for commonly used configuration sections
def get_matching_config() -> Dict[str, Any]:
    """Get match decision configuration."""
    return get_section("matching")


def get_evaluation_config() -> Dict[str, Any]:
    """Get evaluation harness configuration."""
    return get_section("evaluation")


def get_enrollment_config() -> Dict[str, Any]:
    """Get enrollment policy configuration."""
    return get_section("enrollment")


def get_storage_config() -> Dict[str, Any]:
    """Get storage configuration."""
    return get_section("storage")


def get_api_config() -> Dict[str, Any]:
    """Get API configuration."""
    return get_section("api")


def get_logging_config() -> Dict[str, Any]:
    """Get logging configuration, empty if the section is absent."""
    return get_config().get("logging", {})


def get_server_config() -> Dict[str, Any]:
    """
    Get server configuration for the API.

    Returns:
        Dict with host and port for the API server.
    """
    api_config = get_api_config()
    base_url = api_config.get("base_url", "http://localhost:8000")

    # Parse host and port from base_url
    # Format: http://host:port
    host = "0.0.0.0"
    port = 8000

    try:
        url_part = base_url.split("//")[-1]  # Remove http:// or https://
        if ":" in url_part:
            host_part, port_str = url_part.rsplit(":", 1)
            port = int(port_str.rstrip("/"))
            if host_part != "localhost":
                host = host_part
    except (ValueError, IndexError):
        pass

    return {"host": host, "port": port}


def resolve_db_path(storage_config: Dict[str, Any]) -> str:
    """Absolute database path; relative paths are taken from the project root."""
    db_path = storage_config.get("db_path", "storage/faces.sqlite")
    if db_path == ":memory:" or os.path.isabs(db_path):
        return db_path
    return str(get_project_root() / db_path)
