from __future__ import annotations

import logging
from dataclasses import dataclass

from core.errors import ActionInProgressError, Err, Ok, Result, TicketError
from core.session import SessionContext
from domain.models import Ticket
from services.ticket_client import TicketClient
from utils.constants import TICKET_STATUS_RESOLVED

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TicketListState:
    tickets: tuple[Ticket, ...] = ()
    loading: bool = False
    error: str | None = None
    submitting: bool = False
    opening_ticket_id: str | None = None


class TicketListView:
    def __init__(self, session: SessionContext, client: TicketClient) -> None:
        self.session = session
        self.client = client
        self.state = TicketListState()

    def _find(self, ticket_id: str) -> Ticket | None:
        for ticket in self.state.tickets:
            if ticket.id == ticket_id:
                return ticket
        return None

    async def load(self) -> None:
        self.state = TicketListState(tickets=self.state.tickets, loading=True)
        try:
            tickets = await self.client.list_tickets()
        except TicketError as exc:
            LOGGER.error("Error fetching tickets: %s", exc.user_message)
            self.state = TicketListState(error=exc.user_message)
            return
        self.state = TicketListState(tickets=tuple(tickets))

    async def create_ticket(self, title: str, description: str) -> Result[Ticket]:
        if self.state.submitting:
            return Err(ActionInProgressError())
        self.state = TicketListState(tickets=self.state.tickets, submitting=True)
        try:
            created = await self.client.create_ticket(title, description)
        except TicketError as exc:
            LOGGER.warning("Error creating ticket: %s", exc.user_message)
            self.state = TicketListState(tickets=self.state.tickets)
            return Err(exc)
        self.state = TicketListState(tickets=self.state.tickets)
        await self.load()
        return Ok(created)

    async def open_ticket(self, ticket_id: str | None) -> str | None:
        """Tell the backend a ticket is being viewed, then hand back the id to open.

        Resolved tickets skip the notification. Notification failures never
        block opening the ticket.
        """
        if not ticket_id:
            return None
        if not self.session.is_authenticated:
            LOGGER.warning(
                "Opening ticket without credential; skipping open notification.", extra={"ticket_id": ticket_id}
            )
            return ticket_id
        listed = self._find(ticket_id)
        if listed is None or listed.status != TICKET_STATUS_RESOLVED:
            self.state = TicketListState(tickets=self.state.tickets, opening_ticket_id=ticket_id)
            try:
                await self.client.notify_opened(ticket_id)
            finally:
                self.state = TicketListState(tickets=self.state.tickets)
        return ticket_id
