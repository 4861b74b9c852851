"""
Push channel manager.

Owns the single Socket.IO connection used to receive real-time
notifications for one principal. On connect it joins the principal's room
by emitting ``join`` with the principal id, then forwards every
``new_notification`` event to its subscribers.

Reconnection after a dropped connection is left to the Socket.IO client's
own retry policy. This module only guarantees that a torn-down connection
never delivers another event.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Union

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError
from pydantic import ValidationError

from fieldlink.models import Notification
from fieldlink.session import Principal


logger = logging.getLogger("fieldlink.push")

# ============================================================================
# Constants
# ============================================================================

API_PATH_SUFFIX = "/api/v1"
TRANSPORTS = ["websocket"]

EVENT_CONNECT = "connect"
EVENT_CONNECT_ERROR = "connect_error"
EVENT_DISCONNECT = "disconnect"
EVENT_JOIN = "join"
EVENT_NEW_NOTIFICATION = "new_notification"

NotificationCallback = Callable[[Notification], Union[None, Awaitable[None]]]


class TransportError(Exception):
    """Push connection failure. Recorded and logged, never raised to callers."""

    pass


def derive_socket_url(api_base_url: str) -> str:
    """
    Derive the Socket.IO server URL from the REST API base URL.

    The socket server is mounted at the API host root, so the ``/api/v1``
    suffix is stripped.

    Example:
        >>> derive_socket_url("https://portal.example.com/api/v1")
        'https://portal.example.com'
    """
    url = api_base_url.rstrip("/")
    if url.endswith(API_PATH_SUFFIX):
        url = url[: -len(API_PATH_SUFFIX)]
    return url


# ============================================================================
# PushChannelManager Class
# ============================================================================


class PushChannelManager:
    """
    At most one live push connection, bound to one principal.

    Attributes:
        socket_url: Socket.IO server URL derived from the API base URL
        principal: Principal the current connection is bound to
    """

    def __init__(
        self,
        api_base_url: str,
        access_token: Optional[str] = None,
        client_factory: Callable[..., Any] = socketio.AsyncClient,
    ):
        """
        Initialize the manager. No connection is opened until connect().

        Args:
            api_base_url: REST API base URL
            access_token: Optional bearer token sent with the handshake
            client_factory: Factory for the Socket.IO client
        """
        self._socket_url = derive_socket_url(api_base_url)
        self._access_token = access_token
        self._client_factory = client_factory
        self._client: Optional[Any] = None
        self._principal: Optional[Principal] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._subscribers: List[NotificationCallback] = []
        self._last_error: Optional[TransportError] = None

    @property
    def socket_url(self) -> str:
        return self._socket_url

    @property
    def last_error(self) -> Optional[TransportError]:
        """Most recent transport failure, kept for diagnostics only."""
        return self._last_error

    @property
    def principal(self) -> Optional[Principal]:
        return self._principal

    @property
    def is_connected(self) -> bool:
        """Check whether the underlying client reports an open connection."""
        return bool(self._client is not None and getattr(self._client, "connected", False))

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, callback: NotificationCallback) -> Callable[[], None]:
        """
        Subscribe to ``new_notification`` events.

        Returns:
            A callable that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    async def connect(self, principal: Principal) -> None:
        """
        Open a connection bound to ``principal``.

        Any existing connection is closed first. The connection attempt runs
        in the background so that a slow or unreachable server never blocks
        the caller; failures are logged.

        Args:
            principal: Principal whose room to join
        """
        if self._client is not None:
            if self._principal == principal:
                return
            await self.disconnect()

        client = self._client_factory(reconnection=True)
        self._client = client
        self._principal = principal
        self._register_handlers(client, principal)

        logger.info(f"Opening push channel to {self._socket_url} for user {principal.id}")
        self._connect_task = asyncio.create_task(self._open(client))

    async def _open(self, client: Any) -> None:
        headers = {}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"

        try:
            await client.connect(
                self._socket_url,
                headers=headers,
                transports=TRANSPORTS,
                retry=True,
            )
        except SocketConnectionError as e:
            if client is self._client:
                self._last_error = TransportError(f"Push channel connection failed: {e}")
                logger.warning(str(self._last_error))
        except Exception as e:
            if client is self._client:
                self._last_error = TransportError(f"Push channel connection failed unexpectedly: {e}")
                logger.warning(str(self._last_error))

    async def disconnect(self) -> None:
        """
        Close the current connection, if any, and drop all subscribers.

        Safe to call repeatedly. After this returns no callback registered
        before the call will be invoked again.
        """
        client = self._client
        task = self._connect_task
        principal = self._principal

        self._client = None
        self._principal = None
        self._connect_task = None
        self._subscribers.clear()

        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if client is not None:
            try:
                await client.disconnect()
            except Exception as e:
                self._last_error = TransportError(f"Push channel close failed: {e}")
                logger.warning(str(self._last_error))
            logger.info(f"Push channel closed for user {principal.id if principal else None}")

    # -------------------------------------------------------------------------
    # Event handlers
    # -------------------------------------------------------------------------

    def _register_handlers(self, client: Any, principal: Principal) -> None:
        """Bind Socket.IO handlers that only act while ``client`` is current."""

        async def on_connect() -> None:
            if client is not self._client:
                return
            logger.info(f"Push channel connected (sid={getattr(client, 'sid', None)})")
            await client.emit(EVENT_JOIN, principal.id)

        async def on_connect_error(data: Any = None) -> None:
            if client is self._client:
                self._last_error = TransportError(f"Push channel connection error: {data}")
                logger.warning(str(self._last_error))

        async def on_disconnect(*args: Any) -> None:
            if client is self._client:
                logger.info("Push channel disconnected, transport will retry")

        async def on_new_notification(payload: Any) -> None:
            if client is not self._client:
                logger.debug("Dropping notification from a closed push channel")
                return
            await self._dispatch(payload)

        client.on(EVENT_CONNECT, on_connect)
        client.on(EVENT_CONNECT_ERROR, on_connect_error)
        client.on(EVENT_DISCONNECT, on_disconnect)
        client.on(EVENT_NEW_NOTIFICATION, on_new_notification)

    async def _dispatch(self, payload: Any) -> None:
        try:
            notification = Notification.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed notification payload: {e}")
            return

        logger.debug(f"Real-time notification received: {notification.id}")
        for callback in list(self._subscribers):
            result = callback(notification)
            if inspect.isawaitable(result):
                await result
