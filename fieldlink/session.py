"""
Session identity provider.

Holds the currently authenticated principal and notifies listeners when it
changes (login, logout, or re-login as a different user).
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Union

logger = logging.getLogger("fieldlink.session")

ROLE_ADMIN = "admin"
ROLE_WORKER = "worker"
ROLE_CLIENT = "client"
ROLE_ACCOUNTANT = "accountant"


@dataclass(frozen=True)
class Principal:
    """
    The authenticated actor.

    Attributes:
        id: User identifier, used to scope the push channel room
        role: One of admin, worker, client, accountant
    """
    id: str
    role: str

    @classmethod
    def from_user_payload(cls, user: dict[str, Any]) -> "Principal":
        """
        Build a principal from a user record returned by the API.

        Older stored users may have no role. A user that has a username and
        no email address is a client; anyone else falls back to worker.

        Raises:
            ValueError: If the record has no id
        """
        user_id = user.get("id") or user.get("_id")
        if not user_id:
            raise ValueError("user record has no id")

        role = user.get("role")
        if not role:
            email = user.get("email") or ""
            if user.get("username") and "@" not in email:
                role = ROLE_CLIENT
            else:
                role = ROLE_WORKER

        return cls(id=str(user_id), role=role)


PrincipalListener = Callable[
    [Optional[Principal], Optional[Principal]],
    Union[None, Awaitable[None]],
]


class SessionProvider:
    """
    Current-principal store with change notification.

    Listeners are called with ``(previous, current)`` after every change.
    Coroutine listeners are awaited in registration order.
    """

    def __init__(self) -> None:
        self._principal: Optional[Principal] = None
        self._listeners: List[PrincipalListener] = []

    @property
    def principal(self) -> Optional[Principal]:
        """Get the current principal, or None when signed out."""
        return self._principal

    @property
    def is_authenticated(self) -> bool:
        return self._principal is not None

    def subscribe(self, listener: PrincipalListener) -> Callable[[], None]:
        """
        Register a change listener.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def login(self, principal: Principal) -> None:
        """Set the current principal."""
        await self._set(principal)

    async def logout(self) -> None:
        """Clear the current principal."""
        await self._set(None)

    async def _set(self, principal: Optional[Principal]) -> None:
        previous = self._principal
        if previous == principal:
            return

        self._principal = principal
        logger.info(
            f"Principal changed: {previous.id if previous else None}"
            f" -> {principal.id if principal else None}"
        )

        for listener in list(self._listeners):
            result = listener(previous, principal)
            if inspect.isawaitable(result):
                await result
