"""
Runner and config loader registry.

Named strategies selected at startup through CS_RUNNER_TYPE and
CS_CONFIG_LOADER_TYPE. A Registry is an explicit object handed to run(); there
is no process-wide mutable table.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

from ..config import FdkConfig, config
from ..core.exceptions import RegistryError
from ..core.handlers import Handler
from .config_loader import ConfigLoader, EnvConfigLoader, FsConfigLoader
from .runner_http import HTTPRunner

Runner = Callable[[asyncio.Event, logging.Logger, Handler], Awaitable[None]]


class Registry:
    def __init__(self):
        self._runners: Dict[str, Runner] = {}
        self._config_loaders: Dict[str, ConfigLoader] = {}

    def register_runner(self, name: str, runner: Runner) -> None:
        """
        Raises:
            RegistryError: a runner is already registered under name.
        """
        if name in self._runners:
            raise RegistryError(f"runner type already exists: {name!r}")
        self._runners[name] = runner

    def register_config_loader(self, name: str, loader: ConfigLoader) -> None:
        """
        Raises:
            RegistryError: a config loader is already registered under name.
        """
        if name in self._config_loaders:
            raise RegistryError(f"config loader type already exists: {name!r}")
        self._config_loaders[name] = loader

    def runner(self, name: str) -> Runner:
        try:
            return self._runners[name]
        except KeyError:
            raise RegistryError(f"invalid runner type provided: {name!r}") from None

    def config_loader(self, name: str) -> ConfigLoader:
        try:
            return self._config_loaders[name]
        except KeyError:
            raise RegistryError(f"unmatched config loader type provided: {name!r}") from None


def default_registry(settings: Optional[FdkConfig] = None) -> Registry:
    """Registry with the http runner and the fs/env config loaders."""
    settings = settings or config
    registry = Registry()
    registry.register_runner("http", HTTPRunner(settings))
    registry.register_config_loader("fs", FsConfigLoader(settings.CS_FN_CONFIG_PATH))
    registry.register_config_loader("env", EnvConfigLoader(settings.FN_CONFIG))
    return registry
