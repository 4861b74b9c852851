"""
Integration tests for the notification flow.

Wires a real SessionProvider, NotificationProvider, NotificationEngine and
PushChannelManager together. Only the REST client and the Socket.IO client
are faked.
"""

import asyncio

import pytest

from fieldlink.push_channel import PushChannelManager
from fieldlink.scope import NotificationProvider
from fieldlink.session import SessionProvider

pytestmark = pytest.mark.integration


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def session():
    return SessionProvider()


@pytest.fixture
def provider(session, mock_api_client, mock_api_base_url, mock_access_token, socket_factory):
    return NotificationProvider(
        session,
        mock_api_client,
        channel_factory=lambda: PushChannelManager(
            mock_api_base_url,
            access_token=mock_access_token,
            client_factory=socket_factory,
        ),
    )


class TestLoginPushLogout:
    """End-to-end login, push, open and logout."""

    @pytest.mark.asyncio
    async def test_full_session(
        self,
        session,
        provider,
        mock_api_client,
        socket_clients,
        admin_principal,
        make_record,
    ):
        mock_api_client.get_notifications.return_value = [
            make_record("a", data={"siteId": "s1"}),
        ]
        await provider.start()

        # Login: snapshot pulled, socket joins the user's room
        await session.login(admin_principal)
        await _settle()
        client = socket_clients[0]
        await client.fire("connect")
        client.emit.assert_awaited_once_with("join", "u1")
        assert provider.engine.snapshot().ids == ["a"]

        # Push: lands at the head
        await client.fire("new_notification", make_record("b", type="low-stock", data={}))
        assert provider.engine.snapshot().ids == ["b", "a"]
        assert provider.engine.unread_count == 2

        # Open: deleted remotely, removed locally, routed by role
        route = await provider.engine.open("a")
        assert route == "/admin/sites/s1/sections"
        assert provider.engine.snapshot().ids == ["b"]

        # Logout: state cleared, socket closed, late events ignored
        await session.logout()
        assert provider.engine.notifications == ()
        assert provider.engine.unread_count == 0
        client.disconnect.assert_awaited_once()

        await client.fire("new_notification", make_record("late"))
        assert provider.engine.notifications == ()

        await provider.close()

    @pytest.mark.asyncio
    async def test_relogin_as_other_user(
        self,
        session,
        provider,
        mock_api_client,
        socket_clients,
        admin_principal,
        worker_principal,
        make_record,
    ):
        mock_api_client.get_notifications.return_value = [make_record("admin-1")]
        await provider.start()
        await session.login(admin_principal)
        await _settle()

        mock_api_client.get_notifications.return_value = [
            make_record("worker-1", data={"relatedTask": "t9"}),
        ]
        await session.login(worker_principal)
        await _settle()

        old_client, new_client = socket_clients
        old_client.disconnect.assert_awaited_once()
        assert provider.engine.snapshot().ids == ["worker-1"]

        # The previous user's socket cannot leak into the new session
        await old_client.fire("new_notification", make_record("admin-2"))
        await new_client.fire("new_notification", make_record("worker-2"))
        assert provider.engine.snapshot().ids == ["worker-2", "worker-1"]

        await new_client.fire("connect")
        new_client.emit.assert_awaited_once_with("join", "u2")

        assert await provider.engine.open("worker-1") == "/worker/tasks/t9"

        await provider.close()
        new_client.disconnect.assert_awaited_once()


class TestPushRacingPull:
    """Pushes delivered while the initial pull is still in flight."""

    @pytest.mark.asyncio
    async def test_push_during_initial_pull(
        self,
        session,
        provider,
        mock_api_client,
        socket_clients,
        admin_principal,
        make_record,
    ):
        gate = asyncio.Event()

        async def slow_pull(**kwargs):
            await gate.wait()
            return [make_record("a")]

        mock_api_client.get_notifications.side_effect = slow_pull
        await provider.start()

        login = asyncio.create_task(session.login(admin_principal))
        await _settle()
        await socket_clients[0].fire("new_notification", make_record("b"))
        assert provider.engine.notifications == ()

        gate.set()
        await login

        assert provider.engine.snapshot().ids == ["b", "a"]
        assert provider.engine.unread_count == 2

        await provider.close()

    @pytest.mark.asyncio
    async def test_many_pushes_are_capped(
        self,
        session,
        provider,
        socket_clients,
        admin_principal,
        make_record,
    ):
        await provider.start()
        await session.login(admin_principal)
        await _settle()

        for i in range(11):
            await socket_clients[0].fire("new_notification", make_record(f"n{i}"))

        assert provider.engine.snapshot().ids == [f"n{i}" for i in range(10, 0, -1)]

        await provider.close()
