from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from core.logging import ticket_logger
from domain.models import Ticket
from utils.constants import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    POLL_STATE_IDLE,
    POLL_STATE_POLLING,
    TICKET_STATUS_RESOLVED,
)

LOGGER = logging.getLogger(__name__)

RefreshCallback = Callable[[], Awaitable[None]]


def should_poll(ticket: Ticket | None) -> bool:
    """Keep refreshing while AI enrichment may be pending or the ticket is still open."""
    if ticket is None:
        return False
    return not ticket.has_ai_suggestions or ticket.status != TICKET_STATUS_RESOLVED


class PollingController:
    def __init__(
        self,
        refresh: RefreshCallback,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        name: str = "ticket-poll",
        ticket_id: str | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._refresh = refresh
        self.interval_seconds = interval_seconds
        self.name = name
        self._log = ticket_logger(LOGGER, ticket_id)
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def state(self) -> str:
        return POLL_STATE_POLLING if self.is_polling else POLL_STATE_IDLE

    @property
    def is_polling(self) -> bool:
        return self._task is not None and not self._task.done()

    def sync(self, ticket: Ticket | None) -> str:
        """Start or stop the timer to match the latest snapshot."""
        if should_poll(ticket):
            self.start()
        else:
            self.stop()
        return self.state

    def start(self) -> None:
        if self._closed or self.is_polling:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)
        self._log.debug("Polling started. name=%s interval=%.1fs", self.name, self.interval_seconds)

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        # Stopping from inside a tick (the refresh converged the ticket) must
        # not cancel the refresh that is still finishing.
        if task is asyncio.current_task():
            return
        task.cancel()
        self._log.debug("Polling stopped. name=%s", self.name)

    def cancel(self) -> None:
        self._closed = True
        self.stop()

    async def _run(self) -> None:
        current = asyncio.current_task()
        while self._task is current:
            await asyncio.sleep(self.interval_seconds)
            if self._task is not current:
                break
            try:
                await self._refresh()
            except asyncio.CancelledError:
                raise
            except Exception:
                self._log.exception("Silent refresh raised. name=%s", self.name)
