"""
Notification connection scope.

A NotificationScope owns everything that belongs to one signed-in
principal: the push channel connection and the engine's subscription to
it. It is opened on login and closed on logout; closing always happens
before the next scope opens, so a new principal never sees events or
notifications of the previous one.

NotificationProvider wires scopes to the session: it listens for
principal changes and swaps scopes accordingly.
"""

import asyncio
import logging
from typing import Callable, Optional

from fieldlink.api_client import PortalApiClient
from fieldlink.notifications import NotificationEngine
from fieldlink.push_channel import PushChannelManager
from fieldlink.session import Principal, SessionProvider


logger = logging.getLogger("fieldlink.scope")

ChannelFactory = Callable[[], PushChannelManager]


class NotificationScope:
    """
    Push channel and engine binding for one principal.

    Use as an async context manager, or call open()/close() explicitly.
    """

    def __init__(
        self,
        principal: Principal,
        engine: NotificationEngine,
        channel: PushChannelManager,
    ):
        self._principal = principal
        self._engine = engine
        self._channel = channel
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._closed = False

    @property
    def principal(self) -> Principal:
        return self._principal

    @property
    def engine(self) -> NotificationEngine:
        return self._engine

    @property
    def channel(self) -> PushChannelManager:
        return self._channel

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        """
        Bind the engine, connect the push channel and pull the snapshot.

        The engine accepts pushes before the pull starts; anything pushed
        while the pull is in flight is applied after it resolves.
        """
        self._engine.bind(self._principal)
        self._unsubscribe = self._channel.subscribe(self._engine.on_push)
        await self._channel.connect(self._principal)
        await self._engine.load()

    async def close(self) -> None:
        """Release the subscription, clear the engine and close the channel."""
        if self._closed:
            return
        self._closed = True

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._engine.reset()
        await self._channel.disconnect()

    async def __aenter__(self) -> "NotificationScope":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class NotificationProvider:
    """
    Session-driven owner of the current NotificationScope.

    The engine instance is stable for the provider's lifetime, so the
    presentation layer can hold on to it across logins.
    """

    def __init__(
        self,
        session: SessionProvider,
        api_client: PortalApiClient,
        channel_factory: ChannelFactory,
        engine: Optional[NotificationEngine] = None,
    ):
        """
        Args:
            session: Session whose principal drives the scope
            api_client: REST client shared by the engine
            channel_factory: Builds a fresh push channel for each scope
            engine: Engine to drive, created from api_client if omitted
        """
        self._session = session
        self._channel_factory = channel_factory
        self._engine = engine or NotificationEngine(api_client)
        self._scope: Optional[NotificationScope] = None
        self._lock = asyncio.Lock()
        self._unsubscribe_session: Optional[Callable[[], None]] = None

    @property
    def engine(self) -> NotificationEngine:
        return self._engine

    @property
    def scope(self) -> Optional[NotificationScope]:
        return self._scope

    async def start(self) -> None:
        """Follow the session, opening a scope now if someone is signed in."""
        if self._unsubscribe_session is None:
            self._unsubscribe_session = self._session.subscribe(self._on_principal_changed)
        await self._switch(self._session.principal)

    async def _on_principal_changed(
        self,
        previous: Optional[Principal],
        current: Optional[Principal],
    ) -> None:
        await self._switch(current)

    async def _switch(self, principal: Optional[Principal]) -> None:
        async with self._lock:
            if self._scope is not None:
                if principal is not None and self._scope.principal == principal:
                    return
                logger.info(f"Closing notification scope for user {self._scope.principal.id}")
                await self._scope.close()
                self._scope = None

            if principal is None:
                self._engine.reset()
                return

            logger.info(f"Opening notification scope for user {principal.id}")
            self._scope = NotificationScope(principal, self._engine, self._channel_factory())
            await self._scope.open()

    async def close(self) -> None:
        """Stop following the session and close the current scope."""
        if self._unsubscribe_session is not None:
            self._unsubscribe_session()
            self._unsubscribe_session = None
        await self._switch(None)

    async def __aenter__(self) -> "NotificationProvider":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
