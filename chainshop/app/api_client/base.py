import asyncio
import time
from typing import Awaitable, Callable, Optional

import aiohttp

from chainshop.app.core.exceptions import ServiceError
from chainshop.app.core.logging import get_logger
from chainshop.app.core.metrics import backend_requests_total, backend_request_duration_seconds

logger = get_logger(__name__)

TokenProvider = Callable[[], Awaitable[Optional[str]]]


class BackendError(ServiceError):
    """Backend answered with success=false or a non-2xx status; message is the backend's own."""


class BackendUnavailableError(BackendError):
    def __init__(self, message: str):
        super().__init__(message, 503)


class BackendClient:
    """
    Owns one aiohttp ClientSession for all backend calls.
    Reuses the session instead of opening a new one per request.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: Optional[TokenProvider] = None,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._token_provider = token_provider
        self._session = session

    async def get_session(self) -> aiohttp.ClientSession:
        """Get or create the shared session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                connector=aiohttp.TCPConnector(limit=100, force_close=True),
            )
        return self._session

    async def close(self) -> None:
        """Close the session when the application stops."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _headers(self, token: Optional[str], authorized: bool) -> dict:
        headers = {"Content-Type": "application/json"}
        if token is None and authorized and self._token_provider is not None:
            token = await self._token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def request(
        self,
        method: str,
        endpoint: str,
        data: Optional[dict] = None,
        params: Optional[dict] = None,
        token: Optional[str] = None,
        authorized: bool = True,
    ) -> dict:
        """
        Perform a backend request and return the decoded JSON body.

        Raises BackendError with the backend's message and HTTP status for
        error responses, BackendUnavailableError for transport failures.
        """
        url = f"{self.base_url}{endpoint}"
        session = await self.get_session()
        headers = await self._headers(token, authorized)
        started = time.perf_counter()
        outcome = "error"

        try:
            async with session.request(method.upper(), url, json=data, params=params, headers=headers) as response:
                body = await _handle_response(response, url)
                outcome = "ok"
                return body
        except BackendError:
            raise
        except asyncio.TimeoutError:
            logger.error("Backend timeout", url=url, timeout=self.timeout)
            raise BackendUnavailableError(f"Backend did not respond in {self.timeout:g}s")
        except aiohttp.ClientConnectorError:
            logger.error("Backend connection error", url=url)
            raise BackendUnavailableError(f"Cannot connect to {self.base_url}")
        except aiohttp.ClientError as e:
            logger.error("Backend client error", url=url, error_type=type(e).__name__, error=str(e))
            raise BackendUnavailableError(f"Network error: {e}")
        finally:
            backend_requests_total.labels(method=method.upper(), endpoint=endpoint, outcome=outcome).inc()
            backend_request_duration_seconds.labels(method=method.upper(), endpoint=endpoint).observe(
                time.perf_counter() - started
            )

    async def get(self, endpoint: str, **kwargs) -> dict:
        return await self.request("GET", endpoint, **kwargs)

    async def post(self, endpoint: str, data: Optional[dict] = None, **kwargs) -> dict:
        return await self.request("POST", endpoint, data=data, **kwargs)

    async def put(self, endpoint: str, data: Optional[dict] = None, **kwargs) -> dict:
        return await self.request("PUT", endpoint, data=data, **kwargs)


async def _handle_response(response: aiohttp.ClientResponse, url: str) -> dict:
    """Unified response handling: error check, content-type, JSON parse."""
    if response.content_type != "application/json":
        text = await response.text()
        if response.status >= 400:
            logger.error("Backend error", status=response.status, url=url, body=text[:500])
            raise BackendError(f"HTTP error! status: {response.status}", response.status)
        logger.warning("Non-JSON response", url=url, content_type=response.content_type)
        raise BackendError(f"Unexpected response content-type: {response.content_type}", response.status)

    try:
        body = await response.json()
    except ValueError:
        logger.error("Backend returned invalid JSON", status=response.status, url=url)
        raise BackendError("Malformed backend response", response.status)
    if response.status >= 400:
        message = body.get("message") if isinstance(body, dict) else None
        logger.error("Backend error", status=response.status, url=url, message=message)
        raise BackendError(message or f"HTTP error! status: {response.status}", response.status)

    if not isinstance(body, dict):
        raise BackendError("Malformed backend response", response.status)
    if body.get("success") is False:
        raise BackendError(body.get("message") or "Request failed", response.status)
    return body
