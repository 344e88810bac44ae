# File: chimpipe/config.py
# Location: chimpipe/chimpipe/config.py

"""
Configuration management module.

This module handles loading configuration from a JSON file.
All default values reside in config.json, which is included in
the installed package directory.

If no config_file is provided, this module attempts to load the default
config.json from the package installation directory. A user configuration
file only needs to hold the keys it overrides; merge_config layers it on top
of the packaged defaults.
"""

import json
import os
from typing import Any, Dict, Mapping, Optional


def load_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from a JSON file.

    If no config_file is provided, the function attempts to load the
    'config.json' from the installed package directory. If it fails
    to find or parse the file, it raises an error.

    Parameters
    ----------
    config_file : str, optional
        Path to a configuration file in JSON format. If None, defaults to
        the package-installed 'config.json'.

    Returns
    -------
    dict
        Configuration dictionary loaded from the JSON file.

    Raises
    ------
    FileNotFoundError
        If the specified configuration file does not exist.
    ValueError
        If there is an error parsing the JSON configuration file.
    """
    if not config_file:
        # Use the package's installed config.json
        config_file = os.path.join(os.path.dirname(__file__), "config.json")

    if not os.path.exists(config_file):
        raise FileNotFoundError(f"Configuration file '{config_file}' not found.")

    with open(config_file, "r", encoding="utf-8") as f:
        try:
            config = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Error parsing JSON configuration: {e}")

    if not isinstance(config, dict):
        raise ValueError(f"Configuration file '{config_file}' must contain a JSON object.")

    return config


def merge_config(base: Mapping[str, Any], *overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Layer configuration dictionaries, later ones taking precedence.

    None values in an override never replace an existing value, so parsed
    command-line options that were not given keep the configured default.
    Nested dictionaries (tools, scripts) are merged key by key.

    Parameters
    ----------
    base : Mapping[str, Any]
        Starting configuration, usually the packaged defaults.
    *overrides : Mapping[str, Any]
        Configuration layers applied in order.

    Returns
    -------
    dict
        A new merged dictionary.
    """
    merged: Dict[str, Any] = {
        key: dict(value) if isinstance(value, dict) else value for key, value in base.items()
    }
    for layer in overrides:
        for key, value in layer.items():
            if value is None:
                continue
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key].update({k: v for k, v in value.items() if v is not None})
            else:
                merged[key] = value
    return merged
