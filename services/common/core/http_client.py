import logging
from typing import Dict, Optional

import httpx

from .config import BaseAppConfig

logger = logging.getLogger(__name__)


class HttpClientFactory:
    """
    HTTP Client Factory for centralized SSL verification and auth header handling.
    """

    def __init__(self, config: BaseAppConfig):
        self.config = config

    def _prepare(self, kwargs: Dict, access_token: Optional[str]) -> Dict:
        verify = kwargs.pop("verify", None)

        # If verify is not explicitly provided, use config default
        if verify is None:
            verify = self.config.VERIFY_SSL
        if not verify:
            logger.debug("TLS verification disabled (VERIFY_SSL=False)")
        kwargs["verify"] = verify

        if access_token:
            headers = dict(kwargs.pop("headers", None) or {})
            headers["Authorization"] = f"Bearer {access_token}"
            kwargs["headers"] = headers
        return kwargs

    def create_async_client(
        self, access_token: Optional[str] = None, **kwargs
    ) -> httpx.AsyncClient:
        """
        Create an httpx.AsyncClient with configured SSL verification.

        Args:
            access_token: optional bearer token attached to every request
            **kwargs: Additional arguments for httpx.AsyncClient
        """
        kwargs = self._prepare(kwargs, access_token)

        # Default limits (can be overridden by caller)
        if "limits" not in kwargs:
            kwargs["limits"] = httpx.Limits(max_keepalive_connections=20, max_connections=100)

        return httpx.AsyncClient(**kwargs)

    def create_sync_client(self, access_token: Optional[str] = None, **kwargs) -> httpx.Client:
        """
        Create an httpx.Client with configured SSL verification.
        """
        return httpx.Client(**self._prepare(kwargs, access_token))
