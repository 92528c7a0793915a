"""HTTP client utilities for the cloud cost API"""

import logging
from typing import Any

import requests

from ..providers.base import UpstreamConnectionError, UpstreamDecodeError, UpstreamHTTPError

logger = logging.getLogger(__name__)


class HTTPClient:
    """Simple HTTP client wrapper"""

    def __init__(self, base_url: str, timeout: float = 30, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Make GET request and return the decoded JSON body"""
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise UpstreamConnectionError(
                f"GET {path} failed: {e}", endpoint=path, params=params
            ) from e

        logger.debug(f"GET {response.url} -> {response.status_code}")

        if not 200 <= response.status_code <= 299:
            raise UpstreamHTTPError(
                f"GET {path} returned http status {response.status_code}",
                endpoint=path,
                params=params,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamDecodeError(
                f"GET {path} returned an undecodable body: {e}",
                endpoint=path,
                params=params,
                status_code=response.status_code,
            ) from e

    def close(self):
        self.session.close()
