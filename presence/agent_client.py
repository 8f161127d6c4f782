"""
Async HTTP client for the SillyRPC plugin endpoints.

Wraps a single ``httpx.AsyncClient`` and exposes one coroutine per endpoint:

- ``GET  /api/plugins/sillyrpc/settings``       -> fetch_settings()
- ``POST /api/plugins/sillyrpc/settings``       -> save_settings()
- ``POST /api/plugins/sillyrpc/update``         -> post_update()
- ``POST /api/plugins/sillyrpc/upload-avatar``  -> upload_avatar()

Every failure (transport error, non-2xx status, unusable body) is raised as
AgentRequestError so callers only need one except clause. Deciding whether a
failure is fatal is left to the caller.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from sillyrpc_constants import SETTINGS_PATH, UPDATE_PATH, UPLOAD_AVATAR_PATH

logger = logging.getLogger(__name__)


class AgentRequestError(Exception):
    """A request to the agent failed or returned an unusable response."""

    def __init__(self, message: str, status: Optional[int] = None, detail: str = ""):
        super().__init__(message)
        self.status = status
        self.detail = detail


def build_base_url(endpoint: str) -> str:
    """``"localhost:6472"`` -> ``"http://localhost:6472"``; schemes are kept."""
    trimmed = (endpoint or "").strip().rstrip("/")
    if not trimmed:
        return ""
    if "://" in trimmed:
        return trimmed
    return f"http://{trimmed}"


def _error_detail(response: httpx.Response) -> str:
    """Pull the ``error`` field out of a JSON error body, else a text snippet."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:240].strip()
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return ""


class AgentClient:
    """
    Thin async client bound to one agent base URL.

    Args:
        base_url: Agent endpoint, with or without scheme (``"localhost:6472"``).
        client:   Optional pre-built ``httpx.AsyncClient`` (tests inject one
                  with a mock transport). Owned clients are closed by aclose().
    """

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None):
        self.base_url = build_base_url(base_url)
        self._owns_client = client is None
        # Timeout is left at the httpx default
        self.client = client or httpx.AsyncClient()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            response = await self.client.request(method, self._url(path), json=body)
        except httpx.HTTPError as e:
            raise AgentRequestError(f"{method} {path} failed: {type(e).__name__}: {e}") from e

        if not response.is_success:
            detail = _error_detail(response)
            message = f"{method} {path} returned HTTP {response.status_code}"
            if detail:
                message = f"{message}: {detail}"
            raise AgentRequestError(message, status=response.status_code, detail=detail)
        return response

    async def fetch_settings(self) -> Dict[str, Any]:
        response = await self._request("GET", SETTINGS_PATH)
        try:
            data = response.json()
        except ValueError as e:
            raise AgentRequestError(f"GET {SETTINGS_PATH} returned non-JSON body") from e
        if not isinstance(data, dict):
            raise AgentRequestError(f"GET {SETTINGS_PATH} returned {type(data).__name__}, expected object")
        return data

    async def save_settings(self, settings: Dict[str, Any]) -> None:
        await self._request("POST", SETTINGS_PATH, settings)

    async def post_update(self, payload: Dict[str, Any]) -> int:
        """Send one presence payload. The response body is ignored."""
        response = await self._request("POST", UPDATE_PATH, payload)
        return response.status_code

    async def upload_avatar(self, avatar_ref: str) -> str:
        """Ask the agent to resolve/upload an avatar; returns the public URL."""
        response = await self._request("POST", UPLOAD_AVATAR_PATH, {"avatarFile": avatar_ref})
        try:
            data = response.json()
        except ValueError as e:
            raise AgentRequestError(f"POST {UPLOAD_AVATAR_PATH} returned non-JSON body") from e

        url = data.get("url") if isinstance(data, dict) else None
        if not url or not isinstance(url, str):
            detail = str(data.get("error", "")) if isinstance(data, dict) else ""
            raise AgentRequestError(
                f"POST {UPLOAD_AVATAR_PATH} returned no url" + (f": {detail}" if detail else ""),
                status=response.status_code,
                detail=detail,
            )
        return url

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
