"""
Platform API client.

Builds an httpx client authenticated with the access token of the request
being served, pointed at the API of the configured cloud region.
"""

from importlib import metadata
from typing import Optional

import httpx
from services.common.core.http_client import HttpClientFactory

from .config import FdkConfig, config
from .core.exceptions import MissingAccessTokenError
from .models.request import RequestOf

DEFAULT_CLOUD = "us-1"

# Region keys are lower-cased with dashes removed: "US-GOV-1" -> "usgov1".
CLOUD_BASE_URLS = {
    "us1": "https://api.crowdstrike.com",
    "us2": "https://api.us-2.crowdstrike.com",
    "eu1": "https://api.eu-1.crowdstrike.com",
    "usgov1": "https://api.laggar.gcw.crowdstrike.com",
}


def fdk_version() -> str:
    try:
        return metadata.version("esb-fdk")
    except metadata.PackageNotFoundError:
        return "development"


def normalize_cloud(cloud: str) -> str:
    cloud = cloud.strip().lower().replace("-", "")
    return cloud or DEFAULT_CLOUD.replace("-", "")


def cloud_base_url(cloud: str) -> str:
    """
    Raises:
        ValueError: the region is unknown.
    """
    key = normalize_cloud(cloud)
    try:
        return CLOUD_BASE_URLS[key]
    except KeyError:
        raise ValueError(f"unknown cloud region: {cloud!r}") from None


def create_api_client(
    request: RequestOf, settings: Optional[FdkConfig] = None, **kwargs
) -> httpx.AsyncClient:
    """
    Client for the platform API acting with the request's access token.

    Raises:
        MissingAccessTokenError: the request carries no access token.
        ValueError: CS_CLOUD names an unknown region.
    """
    token = request.access_token.strip()
    if not token:
        raise MissingAccessTokenError()

    settings = settings or config
    headers = dict(kwargs.pop("headers", None) or {})
    headers.setdefault("User-Agent", f"esb-fdk/{fdk_version()}")

    factory = HttpClientFactory(settings)
    return factory.create_async_client(
        access_token=token,
        base_url=cloud_base_url(settings.CS_CLOUD),
        headers=headers,
        **kwargs,
    )
