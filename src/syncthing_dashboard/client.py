"""HTTP client for a single Syncthing instance."""

import asyncio
from typing import Any

import httpx

from syncthing_dashboard.errors import DaemonError, ErrorKind
from syncthing_dashboard.registry import Instance


class Deadline:
    """A point in time on the running event loop shared by every call in a batch.

    A call cut short by the deadline marks it expired, so the batch sees the
    expiry even when the loop's timer fires a hair before ``at``.
    """

    def __init__(self, seconds: float) -> None:
        self._loop = asyncio.get_running_loop()
        self.timeout_s = seconds
        self.at = self._loop.time() + seconds
        self._fired = False

    def remaining(self) -> float:
        return self.at - self._loop.time()

    def expire(self) -> None:
        self._fired = True

    @property
    def expired(self) -> bool:
        return self._fired or self.remaining() <= 0


class SyncthingClient:
    """HTTP client for a single Syncthing instance.

    Within a batch every client shares one ``httpx.AsyncClient``, one
    ``Deadline`` and one concurrency limiter.  Used standalone (no shared
    client) each call opens its own connection, as a control action does.
    """

    def __init__(
        self,
        instance: Instance,
        http: httpx.AsyncClient | None = None,
        *,
        deadline: Deadline | None = None,
        limiter: asyncio.Semaphore | None = None,
    ) -> None:
        self.instance = instance
        self.name = instance.name
        self.url = instance.url
        self.api_key = instance.api_key
        self._http = http
        self._deadline = deadline
        self._limiter = limiter

    def _headers(self) -> dict[str, str]:
        return {
            "X-API-Key": self.api_key,
            "Accept": "application/json",
        }

    async def call(
        self,
        path: str,
        *,
        method: str = "GET",
        params: dict | None = None,
        body: Any = None,
        wait: float | None = None,
    ) -> Any:
        """Authenticated request against this instance.

        ``wait`` bounds the request itself below the shared deadline; time
        spent queued on the limiter counts against the deadline only.
        Raises ``DaemonError`` for non-2xx responses, expired deadlines or
        waits, and connection failures.
        """
        try:
            return await self._send(method, path, params, body, wait)
        except TimeoutError as exc:
            raise DaemonError(ErrorKind.TIMEOUT, "Request timed out") from exc
        except httpx.HTTPStatusError as exc:
            resp = exc.response
            raise DaemonError(
                ErrorKind.HTTP_STATUS,
                f"HTTP {resp.status_code} {resp.reason_phrase}".rstrip(),
                status_code=resp.status_code,
                detail=resp.text,
            ) from exc
        except httpx.TimeoutException as exc:
            raise DaemonError(ErrorKind.TIMEOUT, "Request timed out") from exc
        except httpx.HTTPError as exc:
            raise DaemonError(
                ErrorKind.NETWORK, f"{type(exc).__name__}: {exc}"
            ) from exc
        except ValueError as exc:
            raise DaemonError(
                ErrorKind.NETWORK, f"Invalid JSON response from {path}"
            ) from exc

    async def _send(
        self, method: str, path: str, params: dict | None, body: Any, wait: float | None
    ) -> Any:
        if self._limiter is None:
            return await self._bounded(wait, self._request, method, path, params, body)
        await self._bounded(None, self._limiter.acquire)
        try:
            return await self._bounded(wait, self._request, method, path, params, body)
        finally:
            self._limiter.release()

    async def _bounded(self, wait: float | None, func, *args) -> Any:
        """Run ``func(*args)`` under ``min(wait, remaining deadline)``."""
        budget = wait
        by_deadline = False
        if self._deadline is not None:
            remaining = self._deadline.remaining()
            if remaining <= 0:
                self._deadline.expire()
                raise DaemonError(ErrorKind.TIMEOUT, "Request timed out")
            if budget is None or remaining <= budget:
                budget, by_deadline = remaining, True
        if budget is None:
            return await func(*args)
        try:
            return await asyncio.wait_for(func(*args), budget)
        except TimeoutError:
            if by_deadline:
                self._deadline.expire()
            raise

    async def _request(self, method: str, path: str, params: dict | None, body: Any) -> Any:
        if self._http is not None:
            return await self._exchange(self._http, method, path, params, body)
        async with httpx.AsyncClient(timeout=30.0) as client:
            return await self._exchange(client, method, path, params, body)

    async def _exchange(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        params: dict | None,
        body: Any,
    ) -> Any:
        resp = await client.request(
            method,
            f"{self.url}{path}",
            headers=self._headers(),
            params=params,
            json=body,
        )
        resp.raise_for_status()
        if method == "GET":
            return resp.json()
        ct = resp.headers.get("content-type", "")
        if ct.startswith("application/json") and resp.content:
            return resp.json()
        return {"status": "ok"}

    async def get(self, path: str, params: dict | None = None, *, wait: float | None = None) -> Any:
        """Authenticated GET against this instance."""
        return await self.call(path, params=params, wait=wait)

    async def post(self, path: str, params: dict | None = None, body: Any = None) -> Any:
        """Authenticated POST against this instance."""
        return await self.call(path, method="POST", params=params, body=body)

    async def patch(self, path: str, body: Any = None) -> Any:
        """Authenticated PATCH against this instance."""
        return await self.call(path, method="PATCH", body=body)

    def handle_error(self, e: Exception, *, prefixed: bool = True) -> str:
        """Consistent error formatting referencing this instance.

        ``prefixed=False`` drops the ``[name]`` tag, for messages already
        shown against their node.
        """
        prefix = f"[{self.name}] " if prefixed and self.name != "default" else ""
        if isinstance(e, DaemonError):
            if e.kind is ErrorKind.HTTP_STATUS:
                if e.status_code == 401:
                    return f"{prefix}Error 401: Unauthorized. Check API key for instance '{self.name}'."
                if e.status_code == 403:
                    return f"{prefix}Error 403: Forbidden. API key may lack permissions."
                if e.status_code == 404:
                    return f"{prefix}Error 404: Not found. Check the folder/device ID. Detail: {e.detail}"
                return f"{prefix}Error {e.status_code}: {e.detail or e}"
            if e.is_timeout:
                return f"{prefix}Error: Request timed out. Syncthing may be busy or unreachable."
            return f"{prefix}Error: Cannot connect to Syncthing at {self.url}. Is it running? ({e})"
        return f"{prefix}Error: {type(e).__name__}: {e}"
