"""
Function config loaders.

A loader returns the raw JSON bytes of the function's own configuration. The
loader is picked by name (CS_CONFIG_LOADER_TYPE) from the registry.
"""

import base64
import binascii
import json
import logging
import os
from typing import Protocol

import yaml

from ..core.exceptions import ConfigNotFoundError

logger = logging.getLogger("fdk.config_loader")

YAML_EXTENSIONS = (".yaml", ".yml")


class ConfigLoader(Protocol):
    def load_config(self) -> bytes: ...


class FsConfigLoader:
    """
    Reads the config file at path. YAML files are re-emitted as JSON.
    """

    def __init__(self, path: str):
        self.path = path.strip()

    def load_config(self) -> bytes:
        if not self.path:
            raise ConfigNotFoundError()
        try:
            with open(os.path.normpath(self.path), "rb") as f:
                raw = f.read()
        except FileNotFoundError as e:
            raise ConfigNotFoundError() from e

        if os.path.splitext(self.path)[1].lower() in YAML_EXTENSIONS:
            try:
                data = yaml.safe_load(raw)
            except yaml.YAMLError as e:
                raise ValueError(f"failed to read yaml config: {e}") from e
            logger.debug(f"Converted YAML config {self.path} to JSON")
            return json.dumps(data if data is not None else {}, default=str).encode("utf-8")

        return raw


class EnvConfigLoader:
    """Decodes a base64 encoded JSON config held in an environment value."""

    def __init__(self, value: str):
        self.value = value.strip()

    def load_config(self) -> bytes:
        if not self.value:
            raise ConfigNotFoundError()
        try:
            return base64.b64decode(self.value, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"unable to decode $FN_CONFIG var: {e}") from e
