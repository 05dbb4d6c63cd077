import json
import logging
from typing import Any, Dict, Optional

import httpx

from app.core.enums import PlatformName
from app.core.exceptions import (
    AuthExpiredError,
    ConflictError,
    NotFoundError,
    PlatformAPIError,
    PlatformTimeoutError,
    RateLimitedError,
)

logger = logging.getLogger(__name__)


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class BasePlatformClient:
    """
    Shared request plumbing for the platform REST clients.

    Subclasses set BASE_URL / platform and implement `_get_headers`. Every
    failure is translated into the platform error taxonomy so adapters and the
    stock manager never see raw httpx exceptions:

        401 -> AuthExpiredError      404 -> NotFoundError
        409 -> ConflictError         429 -> RateLimitedError (Retry-After)
        other non-2xx -> PlatformAPIError
        timeout -> PlatformTimeoutError, network error -> PlatformAPIError

    A custom `transport` can be passed in (tests use httpx.MockTransport).
    """

    platform: PlatformName
    BASE_URL: str = ""

    def __init__(self, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    def _get_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            return endpoint
        return f"{self.BASE_URL.rstrip('/')}/{endpoint.lstrip('/')}"

    async def _send(
        self,
        method: str,
        endpoint: str,
        json_data: Optional[Dict] = None,
        form_data: Optional[Dict] = None,
        params: Optional[Dict] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Send one request and return the raw response once it is known to be a 2xx."""
        url = self._build_url(endpoint)
        request_headers = self._get_headers()
        if headers:
            request_headers.update(headers)

        logger.debug(f"Making {method} request to {url}")
        if params:
            logger.debug(f"Params: {params}")
        if json_data:
            logger.debug(f"Data: {json.dumps(json_data)[:500]}...")

        platform = self.platform.value
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=request_headers,
                    json=json_data,
                    data=form_data,
                    params=params,
                )
        except httpx.TimeoutException as e:
            logger.error(f"{platform} timeout error: {str(e)}")
            raise PlatformTimeoutError(f"Request timed out: {str(e)}", platform=platform)
        except httpx.RequestError as e:
            logger.error(f"{platform} network error: {str(e)}")
            raise PlatformAPIError(f"Network error: {str(e)}", platform=platform)

        status = response.status_code
        if 200 <= status < 300:
            return response

        logger.error(f"{platform} API error {status} for {method} {url}: {response.text[:500]}")
        if status == 401:
            raise AuthExpiredError(f"Credentials rejected: {response.text}", platform=platform)
        if status == 404:
            raise NotFoundError(f"Not found: {url}", platform=platform)
        if status == 409:
            raise ConflictError(f"Concurrent modification: {response.text}", platform=platform)
        if status == 429:
            raise RateLimitedError(
                f"Rate limited: {response.text}",
                platform=platform,
                retry_after=_retry_after(response),
            )
        raise PlatformAPIError(f"Request failed: {response.text}", platform=platform, status_code=status)

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        json_data: Optional[Dict] = None,
        form_data: Optional[Dict] = None,
        params: Optional[Dict] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Make a request to the platform API

        Returns:
            Dict: Response data ({} for 204 No Content)

        Raises:
            PlatformServiceError subclass matching the failure
        """
        response = await self._send(method, endpoint, json_data, form_data, params, headers)
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            raise PlatformAPIError(
                f"Invalid JSON in response: {response.text[:200]}",
                platform=self.platform.value,
                status_code=response.status_code,
            )
