import asyncio
from typing import Any, Dict, Mapping, Optional

import aiohttp
from loguru import logger

from awx_job_client.errors import APIError, TransportError
from awx_job_client.models import APIResponse


class Transport:
    """HTTP+JSON requester for the AWX REST API.

    Performs a single request per call and decodes the JSON body. HTTP-level
    success is not checked here; callers pass the result to `check_response`.
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        request_timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self.logger = logger
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "Transport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def request(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> APIResponse:
        """Sends one request and returns the response meta with the decoded body"""
        url = f"{self.base_url}{endpoint}"
        query = _stringify_params(params)

        try:
            async with self._get_session().request(
                method, url, json=body, params=query
            ) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    # error pages are not always JSON
                    if 200 <= response.status < 300:
                        raise
                    data = await response.text(errors="replace")
                return APIResponse(
                    status=response.status,
                    reason=response.reason,
                    method=method,
                    url=str(response.url),
                    data=data,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(f"{method} {url} failed: {e!r}")
            raise TransportError(f"{method} {url} failed: {e}") from e
        except ValueError as e:
            self.logger.error(f"Could not decode response of {method} {url}: {e}")
            raise TransportError(f"Invalid JSON from {method} {url}: {e}") from e

    async def get_json(
        self, endpoint: str, params: Optional[Mapping[str, Any]] = None
    ) -> APIResponse:
        return await self.request("GET", endpoint, params=params)

    async def post_json(
        self,
        endpoint: str,
        body: Any = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> APIResponse:
        return await self.request("POST", endpoint, body=body, params=params)

    async def patch_json(
        self,
        endpoint: str,
        body: Any = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> APIResponse:
        return await self.request("PATCH", endpoint, body=body, params=params)

    async def delete(
        self, endpoint: str, params: Optional[Mapping[str, Any]] = None
    ) -> APIResponse:
        return await self.request("DELETE", endpoint, params=params)

    def check_response(self, response: APIResponse) -> None:
        """Raises APIError when the response is not a 2xx"""
        if response.ok:
            return
        message = _error_message(response)
        self.logger.error(
            f"HTTP error {response.status} at {response.method} {response.url}: {message}"
        )
        raise APIError(response.status, message, response.url)


def _stringify_params(params: Optional[Mapping[str, Any]]) -> Optional[Dict[str, str]]:
    if not params:
        return None
    return {key: str(value) for key, value in params.items()}


def _error_message(response: APIResponse) -> str:
    data = response.data
    if isinstance(data, dict):
        for key in ("detail", "error", "msg"):
            if key in data:
                return str(data[key])
        return str(data)
    if data:
        return str(data)
    return response.reason or "request failed"
