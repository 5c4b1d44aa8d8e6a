"""
Function process entrypoint.

run() loads the function's config, builds its handler and serves it with the
runner selected by CS_RUNNER_TYPE. A process that cannot load its config or
build its handler still serves: every request gets the startup error.
"""

import asyncio
import logging
from typing import Any, Callable, NamedTuple, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from .config import FdkConfig, config
from .core.exceptions import ConfigError
from .core.handlers import Handler, as_handler, err_handler
from .core.logging_config import setup_logging
from .models.response import APIError
from .services.config_loader import ConfigLoader
from .services.registry import Registry, default_registry

C = TypeVar("C", bound="Cfg")

UNEXPECTED_ERROR = "encountered unexpected error"


class Cfg(BaseModel):
    """
    Base for a function's own configuration.

    Override ok() to validate the loaded values; a returned error is served to
    every caller as a 400.
    """

    model_config = ConfigDict(extra="ignore")

    def ok(self) -> Optional[Exception]:
        return None


class SkipCfg(Cfg):
    """Config type of a function that needs no configuration; nothing is loaded."""

    pass


class FnIdentity(NamedTuple):
    id: str
    version: int


def fn_identity(settings: Optional[FdkConfig] = None) -> FnIdentity:
    """Active function id and version (CS_FN_ID, CS_FN_VERSION)."""
    settings = settings or config
    return FnIdentity(id=settings.CS_FN_ID, version=settings.CS_FN_VERSION)


def read_cfg(cfg_type: Type[C], loader: Optional[ConfigLoader]) -> C:
    """
    Load and validate the function config.

    Raises:
        ConfigError: the source cannot be read (500), the bytes do not decode
            into cfg_type (400), or ok() reports an error (400).
    """
    if issubclass(cfg_type, SkipCfg):
        return cfg_type()

    try:
        raw = loader.load_config()
    except Exception as e:
        raise ConfigError(APIError(code=500, message="failed to read config source"), e) from e

    try:
        cfg = cfg_type.model_validate_json(raw)
    except ValidationError as e:
        raise ConfigError(
            APIError(code=400, message="failed to unmarshal config into config type"), e
        ) from e

    err = cfg.ok()
    if err:
        raise ConfigError(APIError(code=400, message=f"config is invalid: {err}"))
    return cfg


def build_handler(
    new_handler_fn: Callable[[logging.Logger, Any], Any],
    cfg_type: Type[Cfg],
    loader: Optional[ConfigLoader],
    logger: logging.Logger,
) -> Handler:
    """
    The handler to serve: the function's own, or an error-only handler when
    the config or the handler cannot be built.
    """
    try:
        cfg = read_cfg(cfg_type, loader)
    except ConfigError as e:
        logger.error(
            "failed to load config",
            extra={"error_detail": str(e.cause) if e.cause else str(e)},
        )
        return err_handler(e.api_error)

    try:
        return as_handler(new_handler_fn(logger, cfg))
    except Exception:
        logger.error("panic caught while building handler", exc_info=True)
        return err_handler(APIError(code=503, message=UNEXPECTED_ERROR))


async def serve(
    new_handler_fn: Callable[[logging.Logger, Any], Any],
    cfg_type: Type[Cfg] = SkipCfg,
    registry: Optional[Registry] = None,
    settings: Optional[FdkConfig] = None,
    stop: Optional[asyncio.Event] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Raises:
        RegistryError: the configured runner or config loader is not registered.
    """
    settings = settings or config
    logger = logger or setup_logging(settings)
    registry = registry or default_registry(settings)
    stop = stop or asyncio.Event()

    runner = registry.runner(settings.CS_RUNNER_TYPE or "http")
    loader = None
    if not issubclass(cfg_type, SkipCfg):
        loader = registry.config_loader(settings.CS_CONFIG_LOADER_TYPE or "fs")

    handler = build_handler(new_handler_fn, cfg_type, loader, logger)
    await runner(stop, logger, handler)


def run(
    new_handler_fn: Callable[[logging.Logger, Any], Any],
    cfg_type: Type[Cfg] = SkipCfg,
    registry: Optional[Registry] = None,
    settings: Optional[FdkConfig] = None,
) -> None:
    """
    Entrypoint of a function process. Blocks until the runner exits.

    new_handler_fn(logger, cfg) returns the root handler, typically a Mux.
    """
    asyncio.run(serve(new_handler_fn, cfg_type, registry=registry, settings=settings))
