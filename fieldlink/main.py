"""
Notification watcher main loop.

Signs the configured user in, opens a notification scope and keeps it open
until shutdown is requested, reporting every state change.
"""

import asyncio
import logging
import signal
import sys
from typing import Callable, Optional

from fieldlink import __version__
from fieldlink.api_client import (
    AuthenticationError,
    ConnectionError as PortalConnectionError,
    PortalApiClient,
)
from fieldlink.config import PortalConfig
from fieldlink.notifications import NotificationEngine, NotificationSnapshot
from fieldlink.push_channel import PushChannelManager
from fieldlink.scope import NotificationProvider
from fieldlink.session import Principal, SessionProvider


# Max consecutive failed background pulls before the watcher gives up
MAX_POLL_FAILURES = 5


# ============================================================================
# Logging Setup
# ============================================================================


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Setup logging for the client.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured logger
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger("fieldlink")


# ============================================================================
# Watch Runner
# ============================================================================


class WatchRunner:
    """
    Long-running notification watcher.

    Resolves the principal from the access token, follows it with a
    NotificationProvider and stops on SIGINT/SIGTERM. While running, the
    snapshot is pulled again every poll interval so notifications missed
    while the push channel was down are picked up.

    Attributes:
        config: Portal configuration
        logger: Logger instance
    """

    def __init__(
        self,
        config: PortalConfig,
        on_snapshot: Optional[Callable[[NotificationSnapshot], None]] = None,
        poll_interval: Optional[float] = None,
    ):
        """
        Args:
            config: Portal configuration
            on_snapshot: Called with every new notification snapshot
            poll_interval: Seconds between background pulls, defaults to
                config.poll_interval_seconds
        """
        self.config = config
        self._poll_interval = (
            poll_interval if poll_interval is not None else config.poll_interval_seconds
        )
        self.logger = setup_logging(config.log_level)
        self._on_snapshot = on_snapshot
        self._shutdown_event = asyncio.Event()
        self._session = SessionProvider()
        self._provider: Optional[NotificationProvider] = None

    @property
    def session(self) -> SessionProvider:
        return self._session

    async def run(self) -> int:
        """
        Run until shutdown is requested.

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except (NotImplementedError, RuntimeError):
                # Not supported outside the main thread or on Windows
                pass

        if not self.config.is_authenticated:
            self.logger.error("No access token configured. Run 'fieldlink config set access_token TOKEN' first.")
            return 1

        self.logger.info(f"Starting FieldLink notification watcher v{__version__}")
        self.logger.info(f"API: {self.config.api_base_url}")

        api_client = PortalApiClient(
            api_base_url=self.config.api_base_url,
            access_token=self.config.access_token,
        )

        try:
            user = await api_client.get_current_user()
            principal = Principal.from_user_payload(user)
        except AuthenticationError as e:
            self.logger.error(f"Authentication failed: {e}")
            await api_client.close()
            return 3
        except PortalConnectionError as e:
            self.logger.error(f"Cannot reach the portal: {e}")
            await api_client.close()
            return 4
        except ValueError as e:
            self.logger.error(f"Unexpected user record: {e}")
            await api_client.close()
            return 5

        self._provider = NotificationProvider(
            session=self._session,
            api_client=api_client,
            channel_factory=lambda: PushChannelManager(
                self.config.api_base_url,
                access_token=self.config.access_token,
            ),
            engine=NotificationEngine(api_client, limit=self.config.notification_limit),
        )
        if self._on_snapshot is not None:
            self._provider.engine.subscribe(self._on_snapshot)

        exit_code = 0
        try:
            await self._provider.start()
            await self._session.login(principal)
            self.logger.info(f"Watching notifications for user {principal.id} ({principal.role})")
            exit_code = await self._poll_until_shutdown(self._provider.engine)
        except asyncio.CancelledError:
            self.logger.info("Watcher shutdown requested")
        finally:
            await self._session.logout()
            await self._provider.close()
            await api_client.close()

        self.logger.info("Watcher stopped")
        return exit_code

    async def _poll_until_shutdown(self, engine: NotificationEngine) -> int:
        """
        Re-pull the snapshot every poll interval until shutdown is requested.

        Returns:
            0 on shutdown, 4 after MAX_POLL_FAILURES consecutive failed pulls
        """
        self.logger.info(f"Polling notifications every {self._poll_interval}s")
        failures = 0

        while not self._shutdown_event.is_set():
            await self._wait_for_next_poll()
            if self._shutdown_event.is_set():
                break

            if await engine.load():
                failures = 0
                continue

            failures += 1
            self.logger.warning(
                f"Notification poll failed (attempt {failures}/{MAX_POLL_FAILURES})"
            )
            if failures >= MAX_POLL_FAILURES:
                self.logger.error("Too many consecutive poll failures")
                return 4

        return 0

    async def _wait_for_next_poll(self) -> None:
        """Wait for the next poll interval or shutdown signal."""
        try:
            await asyncio.wait_for(
                self._shutdown_event.wait(),
                timeout=self._poll_interval,
            )
        except asyncio.TimeoutError:
            pass

    def request_shutdown(self) -> None:
        """Request graceful shutdown of the watcher."""
        self._shutdown_event.set()


# ============================================================================
# Main Entry Point
# ============================================================================


def run_watcher(
    on_snapshot: Optional[Callable[[NotificationSnapshot], None]] = None,
) -> int:
    """
    Run the notification watcher.

    Returns:
        Exit code
    """
    config = PortalConfig()
    runner = WatchRunner(config, on_snapshot=on_snapshot)
    return asyncio.run(runner.run())


if __name__ == "__main__":
    sys.exit(run_watcher())
