# -------------------------------------------------------------------------
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License. See License.txt in the project root for
# license information.
# --------------------------------------------------------------------------
"""This module loads the JSON settings files of the provisioning tool.

Settings are read from ``appSettings.json``, then overlaid by the optional
``appSettings.development.json``. Keys are addressed with colon separated paths
(e.g. ``ConnectionStrings:Dps``) and are matched without regard to case.
"""

import json
import logging
import os
from typing import Any, Dict, Optional
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SETTINGS_FILE = "appSettings.json"
DEVELOPMENT_SETTINGS_FILE = "appSettings.development.json"
PATH_SEPARATOR = ":"


class Settings:
    def __init__(self, values: Optional[Dict[str, Any]] = None) -> None:
        self._values = values or {}

    def get(self, path: str, default: Any = None) -> Any:
        """Return the value at the colon separated path, or default if it is not set

        :param str path: The path of the setting, e.g. "Tpm:Tcti"
        :param default: The value returned if the setting is not found
        """
        node: Any = self._values
        for key in path.split(PATH_SEPARATOR):
            if not isinstance(node, dict):
                return default
            match = _find_key(node, key)
            if match is None:
                return default
            node = node[match]
        return node

    def get_connection_string(self, name: str) -> Optional[str]:
        """Return the connection string with the given name, if there is one"""
        value = self.get("ConnectionStrings" + PATH_SEPARATOR + name)
        if value is None:
            return None
        return str(value)


def load_settings(base_path: Optional[str] = None) -> Settings:
    """Load the settings files from a directory

    :param str base_path: The directory holding the settings files. Defaults to the current
        working directory.

    :returns: The merged settings. Missing files are treated as empty.
    :rtype: :class:`Settings`

    :raises: ConfigurationError if a settings file cannot be read or parsed
    """
    if base_path is None:
        base_path = os.getcwd()
    values: Dict[str, Any] = {}
    for filename in (SETTINGS_FILE, DEVELOPMENT_SETTINGS_FILE):
        path = os.path.join(base_path, filename)
        file_values = _read_settings_file(path)
        if file_values is not None:
            logger.debug("Loaded settings from {}".format(path))
            _merge(values, file_values)
    return Settings(values)


def _read_settings_file(path: str) -> Optional[Dict[str, Any]]:
    if not os.path.isfile(path):
        logger.debug("No settings file at {}".format(path))
        return None
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            values = json.load(f)
    except ValueError as e:
        raise ConfigurationError("Invalid JSON in settings file {}".format(path)) from e
    except OSError as e:
        raise ConfigurationError("Unable to read settings file {}".format(path)) from e
    if not isinstance(values, dict):
        raise ConfigurationError("Settings file {} must contain a JSON object".format(path))
    return values


def _find_key(d: Dict[str, Any], key: str) -> Optional[str]:
    if key in d:
        return key
    lowered = key.lower()
    for k in d:
        if k.lower() == lowered:
            return k
    return None


def _merge(target: Dict[str, Any], overlay: Dict[str, Any]) -> None:
    """Merge overlay into target, section by section. Overlay values win."""
    for key, value in overlay.items():
        existing = _find_key(target, key)
        if existing is not None and isinstance(target[existing], dict) and isinstance(value, dict):
            _merge(target[existing], value)
        else:
            if existing is not None:
                del target[existing]
            target[key] = value
