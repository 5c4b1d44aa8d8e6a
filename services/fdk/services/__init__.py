"""
Services package.

Provides the runners and config loaders a function process is assembled from.
"""

from .config_loader import EnvConfigLoader, FsConfigLoader
from .registry import Registry, default_registry
from .runner_http import HTTPRunner, create_app, run_http

__all__ = [
    "EnvConfigLoader",
    "FsConfigLoader",
    "HTTPRunner",
    "Registry",
    "create_app",
    "default_registry",
    "run_http",
]
