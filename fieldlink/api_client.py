"""
Portal API client for server communication.

Provides the HTTP client used by the notification engine and the payment
alert commands: notification pull, delete-on-read, bulk mark-read, the
current user lookup and the site list. Handles authentication and maps
HTTP failures onto a small exception hierarchy.
"""

import logging
from typing import Any, Optional

import httpx

from fieldlink import __version__

logger = logging.getLogger("fieldlink.api")


# ============================================================================
# Constants
# ============================================================================

DEFAULT_TIMEOUT = 30.0  # seconds
USER_AGENT = f"FieldLink-Client/{__version__}"


# ============================================================================
# Exceptions
# ============================================================================


class ApiError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ConnectionError(ApiError):
    """Raised when connection to server fails."""

    pass


class AuthenticationError(ApiError):
    """Raised when authentication fails (missing or expired token)."""

    pass


class NotFoundError(ApiError):
    """Raised when the requested resource does not exist."""

    pass


class RateLimitError(ApiError):
    """Raised when the server answers 429 Too Many Requests."""

    pass


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return ""
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or "")
    return ""


def _raise_for_status(response: httpx.Response, action: str) -> None:
    """
    Raise the matching ApiError subclass for a non-2xx response.

    Args:
        response: HTTP response to check
        action: Human-readable action name used in error messages
    """
    status = response.status_code
    if 200 <= status < 300:
        return

    detail = _detail(response)
    if status == 401:
        raise AuthenticationError(detail or "Invalid or expired token", status_code=401)
    elif status == 404:
        raise NotFoundError(detail or f"{action}: not found", status_code=404)
    elif status == 429:
        raise RateLimitError(detail or "Too many requests", status_code=429)
    else:
        raise ApiError(
            f"{action} failed with status {status}" + (f": {detail}" if detail else ""),
            status_code=status,
        )


def _json(response: httpx.Response, action: str) -> Any:
    """Decode a JSON response body, raising ApiError when it is not JSON."""
    try:
        return response.json()
    except ValueError as e:
        raise ApiError(f"{action}: invalid response body: {e}", status_code=response.status_code)


def _data_list(response: httpx.Response, action: str) -> list[dict[str, Any]]:
    body = _json(response, action)
    if not isinstance(body, dict):
        raise ApiError(f"{action}: unexpected response body", status_code=response.status_code)
    return body.get("data") or []


# ============================================================================
# PortalApiClient Class
# ============================================================================


class PortalApiClient:
    """
    HTTP client for the FieldLink portal REST API.

    All paths are relative to ``api_base_url`` (for example
    ``https://portal.example.com/api/v1``).

    Attributes:
        api_base_url: Base URL of the REST API, including its version prefix
        access_token: Optional bearer token for authenticated requests
    """

    def __init__(
        self,
        api_base_url: str,
        access_token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize the API client.

        Args:
            api_base_url: Base URL of the REST API
            access_token: Optional bearer token for authenticated requests
            timeout: Request timeout in seconds

        Raises:
            ValueError: If api_base_url is empty
        """
        if not api_base_url:
            raise ValueError("api_base_url is required")

        self._api_base_url = api_base_url.rstrip("/")
        self._timeout = timeout

        headers = {
            "User-Agent": USER_AGENT,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        self._client = httpx.AsyncClient(
            base_url=self._api_base_url,
            headers=headers,
            timeout=timeout,
        )

    @property
    def api_base_url(self) -> str:
        """Get the API base URL."""
        return self._api_base_url

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.ConnectError as e:
            raise ConnectionError(f"Failed to connect to server: {e}")
        except httpx.TimeoutException as e:
            raise ConnectionError(f"Connection timed out: {e}")
        except httpx.TransportError as e:
            raise ConnectionError(f"Connection to server lost: {e}")

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    async def get_current_user(self) -> dict[str, Any]:
        """
        Get the signed-in user.

        Returns:
            User record (id, role, name, ...)

        Raises:
            AuthenticationError: If the token is missing or expired
            ConnectionError: If connection to server fails
        """
        response = await self._send("GET", "/auth/me")
        _raise_for_status(response, "Get current user")
        body = _json(response, "Get current user")
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            return body["data"]
        return body

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    async def get_notifications(
        self,
        limit: int = 10,
        unread_only: bool = False,
    ) -> list[dict[str, Any]]:
        """
        Pull the most recent notifications.

        Args:
            limit: Maximum number of notifications to return
            unread_only: Restrict to unread notifications

        Returns:
            List of raw notification records, newest first

        Raises:
            RateLimitError: If the server is throttling the client
            ApiError: On any other failure status
            ConnectionError: If connection to server fails
        """
        params = {
            "limit": limit,
            "unreadOnly": "true" if unread_only else "false",
        }
        response = await self._send("GET", "/notifications", params=params)
        _raise_for_status(response, "Get notifications")
        return _data_list(response, "Get notifications")

    async def mark_as_read(self, notification_id: str) -> None:
        """
        Flag a single notification as read without deleting it.

        Args:
            notification_id: Notification identifier
        """
        response = await self._send("PUT", f"/notifications/{notification_id}/read")
        _raise_for_status(response, "Mark notification read")

    async def mark_all_as_read(self) -> None:
        """Flag every notification of the current user as read."""
        response = await self._send("PUT", "/notifications/read-all")
        _raise_for_status(response, "Mark all notifications read")

    async def delete_notification(self, notification_id: str) -> None:
        """
        Delete a notification. This is how the portal consumes (reads) one.

        Args:
            notification_id: Notification identifier

        Raises:
            NotFoundError: If the notification no longer exists
            ApiError: On any other failure status
            ConnectionError: If connection to server fails
        """
        response = await self._send("DELETE", f"/notifications/{notification_id}")
        _raise_for_status(response, "Delete notification")

    # -------------------------------------------------------------------------
    # Sites
    # -------------------------------------------------------------------------

    async def get_sites(self, params: Optional[dict[str, Any]] = None) -> list[dict[str, Any]]:
        """
        List sites with their billing fields.

        Args:
            params: Optional query filters passed through to the server

        Returns:
            List of raw site records
        """
        response = await self._send("GET", "/sites", params=params or {})
        _raise_for_status(response, "Get sites")
        return _data_list(response, "Get sites")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "PortalApiClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
