"""
Notification reconciliation engine.

Keeps the canonical in-memory list of the current principal's notifications.
The list starts from a pulled snapshot and then grows with notifications
pushed over the real-time channel:

- Pushed notifications go to the head of the list, in arrival order, and
  the list is capped (oldest entry evicted first).
- Pushes that arrive while a pull is in flight are queued and applied on
  top of the pulled list once it resolves, so no push is lost.
- Opening a notification deletes it on the server (the portal's "read"),
  removes it locally once the delete succeeded, and resolves the page to
  navigate to even when the delete failed.
- Losing the principal empties the list and ignores any late pushes.

The unread count is the number of held notifications: the server deletes a
notification when it is read, so everything still held is unread.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Deque, List, Optional, Tuple, Union

from pydantic import ValidationError

from fieldlink.api_client import ApiError, PortalApiClient, RateLimitError
from fieldlink.models import Notification
from fieldlink.routing import resolve_route
from fieldlink.session import Principal


logger = logging.getLogger("fieldlink.notifications")

# Maximum number of notifications held and pulled
NOTIFICATION_LIMIT = 10

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class NotificationSnapshot:
    """
    Read-only view of the engine state handed to the presentation layer.

    Attributes:
        notifications: Held notifications, head first
        unread_count: Number of unread notifications
    """
    notifications: Tuple[Notification, ...]
    unread_count: int

    @property
    def ids(self) -> List[str]:
        return [n.id for n in self.notifications]


SnapshotListener = Callable[[NotificationSnapshot], None]


# ============================================================================
# Time labels
# ============================================================================


def _as_datetime(value: Union[datetime, str]) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'} ago"


def time_ago(created_at: Union[datetime, str], now: Optional[datetime] = None) -> str:
    """
    Label how long ago ``created_at`` was.

    Bands: under a minute is "just now", then whole minutes, whole hours and
    whole days. There is no week, month or year band.

    Args:
        created_at: Timestamp (aware, naive UTC, or ISO-8601 string)
        now: Reference time, defaults to the current UTC time

    Returns:
        Label such as "just now", "5 minutes ago" or "12 days ago"
    """
    now = _as_datetime(now) if now is not None else datetime.now(timezone.utc)
    seconds = int((now - _as_datetime(created_at)).total_seconds())

    if seconds < SECONDS_PER_MINUTE:
        return "just now"
    if seconds < SECONDS_PER_HOUR:
        return _plural(seconds // SECONDS_PER_MINUTE, "minute")
    if seconds < SECONDS_PER_DAY:
        return _plural(seconds // SECONDS_PER_HOUR, "hour")
    return _plural(seconds // SECONDS_PER_DAY, "day")


# ============================================================================
# NotificationEngine Class
# ============================================================================


class NotificationEngine:
    """
    Owner of the notification list and unread count for one principal.

    Only the engine mutates its state. Callers read snapshots and issue
    commands (open, mark all read).

    Attributes:
        api_client: REST client used for pull, delete and mark-all
        limit: Maximum number of held notifications
    """

    def __init__(
        self,
        api_client: PortalApiClient,
        limit: int = NOTIFICATION_LIMIT,
    ):
        """
        Initialize an inactive engine. Call start() once a principal exists.

        Args:
            api_client: REST client for the portal API
            limit: Maximum number of held notifications, never above
                NOTIFICATION_LIMIT
        """
        self._api_client = api_client
        self._limit = max(1, min(limit, NOTIFICATION_LIMIT))
        self._principal: Optional[Principal] = None
        self._items: List[Notification] = []
        self._pending_pushes: Deque[Notification] = deque()
        self._pulls_in_flight = 0
        self._load_lock = asyncio.Lock()
        self._generation = 0
        self._listeners: List[SnapshotListener] = []

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def principal(self) -> Optional[Principal]:
        return self._principal

    @property
    def is_active(self) -> bool:
        """Check whether the engine is bound to a principal."""
        return self._principal is not None

    @property
    def notifications(self) -> Tuple[Notification, ...]:
        return tuple(self._items)

    @property
    def unread_count(self) -> int:
        return len(self._items)

    def snapshot(self) -> NotificationSnapshot:
        """Get an immutable view of the current state."""
        return NotificationSnapshot(
            notifications=tuple(self._items),
            unread_count=self.unread_count,
        )

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """
        Register a listener called with a new snapshot after every change.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def bind(self, principal: Principal) -> None:
        """
        Bind the engine to ``principal`` without pulling.

        A previous principal's state is always discarded first. Pushes are
        accepted from this point on.
        """
        self.reset()
        self._principal = principal

    async def start(self, principal: Principal) -> bool:
        """
        Bind the engine to ``principal`` and pull the initial snapshot.

        Returns:
            True if the initial pull succeeded
        """
        self.bind(principal)
        return await self.load()

    def reset(self) -> None:
        """
        Drop all state and unbind the principal.

        Results of pulls still in flight, and pushes delivered late by a
        closing channel, are ignored afterwards.
        """
        self._generation += 1
        self._principal = None
        self._pending_pushes.clear()
        had_items = bool(self._items)
        self._items = []
        if had_items:
            self._notify()

    # -------------------------------------------------------------------------
    # Pull
    # -------------------------------------------------------------------------

    async def load(self) -> bool:
        """
        Pull the most recent notifications and make them the base list.

        Pushes received while the pull is in flight are applied on top of
        the result. On failure the previous list is kept.

        Returns:
            True if the pull succeeded
        """
        if not self.is_active:
            return False

        generation = self._generation
        async with self._load_lock:
            if generation != self._generation:
                return False

            self._pulls_in_flight += 1
            try:
                records = await self._api_client.get_notifications(
                    limit=self._limit,
                    unread_only=False,
                )
            except RateLimitError:
                # Expected backpressure, not worth reporting
                return False
            except ApiError as e:
                logger.warning(f"Error fetching notifications: {e}")
                return False
            else:
                if generation != self._generation:
                    return False
                self._items = self._parse(records)[: self._limit]
                logger.debug(f"Pulled {len(self._items)} notifications")
                return True
            finally:
                self._pulls_in_flight -= 1
                if generation == self._generation:
                    self._drain_pending()
                    self._notify()

    @staticmethod
    def _parse(records: List[Any]) -> List[Notification]:
        parsed = []
        for record in records:
            try:
                parsed.append(Notification.model_validate(record))
            except ValidationError as e:
                logger.warning(f"Skipping malformed notification: {e}")
        return parsed

    # -------------------------------------------------------------------------
    # Push
    # -------------------------------------------------------------------------

    def on_push(self, notification: Notification) -> None:
        """
        Apply a notification delivered by the push channel.

        Ignored when the engine has no principal. Queued while a pull is in
        flight, otherwise prepended immediately.
        """
        if not self.is_active:
            logger.debug(f"Ignoring push {notification.id}: no active principal")
            return

        if self._pulls_in_flight:
            self._pending_pushes.append(notification)
            return

        self._prepend(notification)
        self._notify()

    def _drain_pending(self) -> None:
        while self._pending_pushes:
            self._prepend(self._pending_pushes.popleft())

    def _prepend(self, notification: Notification) -> None:
        items = [n for n in self._items if n.id != notification.id]
        self._items = ([notification] + items)[: self._limit]

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def get(self, notification_id: str) -> Optional[Notification]:
        """Find a held notification by id."""
        for notification in self._items:
            if notification.id == notification_id:
                return notification
        return None

    async def open(self, notification_id: str) -> Optional[str]:
        """
        Open (consume) a notification.

        Deletes it on the server, removes it locally if the delete
        succeeded, and resolves the route to navigate to. The route is
        returned even when the delete failed.

        Args:
            notification_id: Id of the opened notification

        Returns:
            Route path, or None when there is nowhere to navigate
        """
        notification = self.get(notification_id)
        role = self._principal.role if self._principal else None
        generation = self._generation

        try:
            await self._api_client.delete_notification(notification_id)
        except ApiError as e:
            logger.error(f"Error deleting notification {notification_id}: {e}")
        else:
            if generation == self._generation:
                before = len(self._items)
                self._items = [n for n in self._items if n.id != notification_id]
                if len(self._items) != before:
                    self._notify()

        if notification is None:
            return None
        return resolve_route(notification, role)

    async def mark_all_read(self) -> bool:
        """
        Mark every notification read on the server, then re-pull.

        Returns:
            True if both the bulk request and the re-pull succeeded
        """
        try:
            await self._api_client.mark_all_as_read()
        except ApiError as e:
            logger.error(f"Error marking all notifications as read: {e}")
            return False

        return await self.load()
