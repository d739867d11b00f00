#!/usr/bin/env python3

import os
import json
import tomllib
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Dict, Any, Optional

import logging
import sys

import yaml

from .exit_codes import ConfigError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(message)s",
    handlers=[
        logging.StreamHandler(sys.stderr) # Default to stderr
    ]
)
logger = logging.getLogger("feedpush")

CONFIG_FILENAMES = ['config.json', 'config.toml', 'config.yaml', 'config.yml']


def get_config_path(explicit: Optional[str] = None) -> Path:
    """Get the path to the configuration file.

    Checks in order:
    1. Explicit path (--config option)
    2. FEEDPUSH_CONFIG environment variable
    3. ~/.feedpush/ directory
    """
    if explicit:
        return Path(explicit).expanduser()

    # Check for environment variable override
    if 'FEEDPUSH_CONFIG' in os.environ:
        path = Path(os.environ['FEEDPUSH_CONFIG']).expanduser()
        if path.exists():
            return path

    feedpush_dir = Path.home() / '.feedpush'
    for filename in CONFIG_FILENAMES:
        path = feedpush_dir / filename
        if path.exists() and path.stat().st_size > 10:  # Not empty/trivial
            return path

    # If no file exists, return default path
    return feedpush_dir / 'config.json'


def get_default_config() -> Dict[str, Any]:
    """Get default configuration."""
    return {
        "publish": {
            "package_extension": "nupkg",
            "max_concurrent_checks": 4,
            "max_concurrent_feeds": 1,
            "http_timeout_seconds": 30,
            "interactive": False,
        },
        # Pre-registered sources: [{"name": ..., "location": ...}]
        "sources": [],
        # Optional NuGet.config whose <packageSources> are pre-registered too
        "nuget_config": None,
        # Feed entries, see feedpush.services.feed_service.create_feed_from_config
        "feeds": [],
        "logging": {
            "level": "INFO",
            "format": "%(levelname)s: %(message)s"
        },
    }


def _read_config_file(config_path: Path) -> Dict[str, Any]:
    suffix = config_path.suffix.lower()
    if suffix == '.toml':
        with open(config_path, 'rb') as f:
            return tomllib.load(f)
    if suffix in ['.yaml', '.yml']:
        with open(config_path, 'r') as f:
            return yaml.safe_load(f) or {}
    # Default to JSON format
    with open(config_path, 'r') as f:
        return json.load(f)


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration: defaults, then file, then FEEDPUSH_* overrides.

    Args:
        path: Explicit configuration file. It must exist when given.

    Raises:
        ConfigError: If the file is missing (explicit path) or unreadable
    """
    config_path = get_config_path(path)

    # Start with default config
    config = get_default_config()

    if path and not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    if config_path.exists():
        try:
            file_config = _read_config_file(config_path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"Error loading config from {config_path}: {e}") from e
        if not isinstance(file_config, dict):
            raise ConfigError(f"Configuration in {config_path} must be a mapping")
        # Merge file config with defaults
        config = merge_configs(config, file_config)
        logger.debug(f"Loaded configuration from {config_path}")

    # Apply environment variable overrides
    config = apply_env_overrides(config)

    return config


def merge_configs(base_config, override_config):
    """
    Recursively merge two configuration dictionaries.

    Args:
        base_config (dict): Base configuration
        override_config (dict): Configuration to merge/override with

    Returns:
        dict: Merged configuration
    """
    merged = base_config.copy()

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            # Recursively merge nested dictionaries
            merged[key] = merge_configs(merged[key], value)
        else:
            # Override or add new key
            merged[key] = value

    return merged


def apply_env_overrides(config):
    """
    Apply environment variable overrides to configuration.
    Environment variables follow the pattern: FEEDPUSH_SECTION_KEY
    For example: FEEDPUSH_PUBLISH_MAX_CONCURRENT_CHECKS=8
    """
    env_prefix = "FEEDPUSH_"

    for env_key, value in os.environ.items():
        if not env_key.startswith(env_prefix):
            continue

        key_parts = env_key[len(env_prefix):].lower().split('_')

        # Convert value
        if value.lower() in ('true', '1', 'yes', 'on'):
            typed_value = True
        elif value.lower() in ('false', '0', 'no', 'off'):
            typed_value = False
        elif value.isdigit():
            typed_value = int(value)
        else:
            typed_value = value

        current_level = config
        i = 0
        while i < len(key_parts):
            # Longest config key that prefixes the remaining key parts
            best_match_len = 0
            matched_key = None

            for config_key in current_level.keys():
                config_key_parts_from_key = config_key.split('_')
                if key_parts[i : i + len(config_key_parts_from_key)] == config_key_parts_from_key:
                    if len(config_key_parts_from_key) > best_match_len:
                        best_match_len = len(config_key_parts_from_key)
                        matched_key = config_key

            if matched_key:
                if i + best_match_len == len(key_parts):
                    current_level[matched_key] = typed_value
                    break

                if isinstance(current_level[matched_key], dict):
                    current_level = current_level[matched_key]
                    i += best_match_len
                else:
                    # Path conflict: env var is longer than a non-dict value
                    break
            else:
                break

    return config


def configure_logging(config: Dict[str, Any], verbose: bool = False) -> None:
    """Apply the logging section to the feedpush logger."""
    log_config = config.get('logging', {})
    level_name = 'DEBUG' if verbose else str(log_config.get('level', 'INFO')).upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    fmt = log_config.get('format')
    if fmt:
        for handler in logging.getLogger().handlers:
            handler.setFormatter(logging.Formatter(fmt))


def load_nuget_config_sources(path: str) -> List[Dict[str, str]]:
    """
    Read the <packageSources> of a NuGet.config file.

    A <clear/> element drops every source declared before it. Relative
    local paths are resolved against the file's directory.

    Returns:
        List of {"name": ..., "location": ...} in declaration order

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    config_path = Path(path).expanduser()
    try:
        tree = ET.parse(config_path)
    except (OSError, ET.ParseError) as e:
        raise ConfigError(f"Unable to read NuGet config {config_path}: {e}") from e

    sources: List[Dict[str, str]] = []
    section = tree.getroot().find('packageSources')
    if section is None:
        return sources

    for element in section:
        if element.tag == 'clear':
            sources.clear()
        elif element.tag == 'add':
            name = element.get('key')
            location = element.get('value')
            if not name or not location:
                continue
            if not location.lower().startswith(('http://', 'https://')):
                location = str((config_path.parent / location).resolve())
            sources.append({'name': name, 'location': location})

    return sources


def get_preloaded_sources(config: Dict[str, Any]) -> List[Dict[str, str]]:
    """All externally configured sources: NuGet.config first, then config file."""
    sources: List[Dict[str, str]] = []
    nuget_config = config.get('nuget_config')
    if nuget_config:
        sources.extend(load_nuget_config_sources(nuget_config))
    for entry in config.get('sources', []) or []:
        if not isinstance(entry, dict) or not entry.get('name') or not entry.get('location'):
            raise ConfigError(f"Invalid source entry: {entry!r}")
        sources.append({'name': entry['name'], 'location': entry['location']})
    return sources
