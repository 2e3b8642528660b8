from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from itertools import count
from typing import cast

from core.errors import (
    ActionInProgressError,
    Err,
    Ok,
    PermissionDeniedError,
    Result,
    TicketError,
    TicketStateError,
    UnauthenticatedError,
    ValidationError,
)
from core.logging import ticket_logger
from core.session import SessionContext
from domain.authorization import (
    can_decide_suggestion,
    can_manage_status,
    can_moderate_suggestions,
    can_post_comment,
    can_reopen,
)
from domain.models import Comment, Ticket
from domain.projection import Projection, project
from services.polling import PollingController
from services.ticket_client import TicketClient
from utils.constants import (
    ACTION_COMMENT,
    ACTION_DECIDE,
    ACTION_REOPEN,
    DECISIONS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    MSG_MISSING_TICKET_ID,
    PHASE_ERROR,
    PHASE_LOADING,
    PHASE_READY,
    SUGGESTION_ACTIONABLE,
    SUGGESTION_AWAITING_REVIEW,
    SUGGESTION_DECIDED,
    SUGGESTION_SUPERSEDED,
    TICKET_STATUS_IN_PROGRESS,
    TICKET_STATUS_RESOLVED,
)

LOGGER = logging.getLogger(__name__)

_notification_ids = count(1)


@dataclass(slots=True, frozen=True)
class Notification:
    message: str
    level: str = "error"
    id: int = field(default_factory=lambda: next(_notification_ids))


@dataclass(slots=True, frozen=True)
class ViewState:
    phase: str = PHASE_LOADING
    ticket: Ticket | None = None
    error: str | None = None
    busy: frozenset[str] = frozenset()
    deciding_comment_id: str | None = None
    notification: Notification | None = None
    validation_error: str | None = None
    polling: bool = False

    @property
    def projection(self) -> Projection:
        return project(self.ticket)

    def is_busy(self, action: str, comment_id: str | None = None) -> bool:
        if action not in self.busy:
            return False
        if action == ACTION_DECIDE and comment_id is not None:
            return self.deciding_comment_id == comment_id
        return True


@dataclass(slots=True, frozen=True)
class SuggestionControl:
    comment_id: str | None
    state: str
    decision: str | None = None
    busy: bool = False


@dataclass(slots=True, frozen=True)
class DetailControls:
    can_reopen: bool = False
    can_post_comment: bool = False
    can_moderate: bool = False
    reopen_busy: bool = False
    comment_busy: bool = False
    suggestions: tuple[SuggestionControl, ...] = ()

    def suggestion(self, comment_id: str) -> SuggestionControl | None:
        for control in self.suggestions:
            if control.comment_id == comment_id:
                return control
        return None


def build_controls(state: ViewState, session: SessionContext) -> DetailControls:
    """Derive which controls are enabled from the current snapshot.

    Recomputed on every call; nothing is carried over between snapshots.
    """
    if state.phase != PHASE_READY or state.ticket is None:
        return DetailControls()
    identity = session.identity
    ticket = state.ticket
    projection = state.projection
    moderator = can_moderate_suggestions(identity, ticket)

    suggestions: list[SuggestionControl] = []
    for entry in projection.ordered:
        comment = entry.comment
        if not comment.is_ai_generated:
            continue
        if comment.decision is not None:
            suggestion_state = SUGGESTION_DECIDED
        elif not moderator:
            suggestion_state = SUGGESTION_AWAITING_REVIEW
        elif can_decide_suggestion(identity, ticket, projection, comment):
            suggestion_state = SUGGESTION_ACTIONABLE
        else:
            suggestion_state = SUGGESTION_SUPERSEDED
        suggestions.append(
            SuggestionControl(
                comment_id=comment.comment_id,
                state=suggestion_state,
                decision=comment.decision,
                busy=state.is_busy(ACTION_DECIDE, comment.comment_id),
            )
        )

    return DetailControls(
        can_reopen=can_reopen(identity, ticket),
        can_post_comment=can_post_comment(identity, ticket),
        can_moderate=moderator,
        reopen_busy=state.is_busy(ACTION_REOPEN),
        comment_busy=state.is_busy(ACTION_COMMENT),
        suggestions=tuple(suggestions),
    )


StateListener = Callable[[ViewState], None]


class TicketDetailView:
    """Ticket detail state machine: load, poll, authorize and reconcile.

    Every fetch takes a sequence number when issued. Fetch responses are
    applied only when newer than the last applied snapshot; mutation
    responses always apply and stamp a fresh sequence, so a poll that was
    already in flight when a mutation landed is discarded instead of
    overwriting it. After ``close()`` every late response is dropped.
    """

    def __init__(
        self,
        ticket_id: str | None,
        session: SessionContext,
        client: TicketClient,
        *,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        notification_ttl_seconds: float | None = 6.0,
    ) -> None:
        self.ticket_id = (ticket_id or "").strip() or None
        self._log = ticket_logger(LOGGER, self.ticket_id)
        self.session = session
        self.client = client
        self.notification_ttl_seconds = notification_ttl_seconds
        self.poller = PollingController(
            self._silent_refresh,
            interval_seconds=poll_interval_seconds,
            name=f"ticket-poll:{self.ticket_id}",
            ticket_id=self.ticket_id,
        )
        self._state = ViewState()
        self._listeners: list[StateListener] = []
        self._issued_seq = 0
        self._applied_seq = 0
        self._load_seq = 0
        self._closed = False
        self._notification_handle: asyncio.TimerHandle | None = None

    async def __aenter__(self) -> TicketDetailView:
        await self.mount()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def state(self) -> ViewState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def controls(self) -> DetailControls:
        return build_controls(self._state, self.session)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def mount(self) -> None:
        await self.load()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.poller.cancel()
        if self._notification_handle is not None:
            self._notification_handle.cancel()
            self._notification_handle = None
        self._listeners.clear()
        self._log.debug("Ticket view closed.")

    # -- state plumbing -------------------------------------------------

    def _update(self, **changes: object) -> None:
        if self._closed:
            return
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                self._log.exception("State listener failed.")

    def _next_seq(self) -> int:
        self._issued_seq += 1
        return self._issued_seq

    def _is_stale(self, seq: int) -> bool:
        # Poll responses issued before the latest full load are superseded by it.
        return self._closed or seq <= self._applied_seq or seq < self._load_seq

    def _sync_polling(self) -> None:
        self.poller.sync(self._state.ticket)
        if self._state.polling != self.poller.is_polling:
            self._update(polling=self.poller.is_polling)

    def _apply_snapshot(self, ticket: Ticket, seq: int, **changes: object) -> None:
        self._applied_seq = seq
        self._update(phase=PHASE_READY, ticket=ticket, error=None, **changes)
        self._sync_polling()

    def _notify(self, message: str, level: str = "error") -> Notification:
        notification = Notification(message=message, level=level)
        if self._notification_handle is not None:
            self._notification_handle.cancel()
            self._notification_handle = None
        if self.notification_ttl_seconds and not self._closed:
            loop = asyncio.get_running_loop()
            self._notification_handle = loop.call_later(
                self.notification_ttl_seconds, self._expire_notification, notification.id
            )
        return notification

    def _expire_notification(self, notification_id: int) -> None:
        current = self._state.notification
        if current is not None and current.id == notification_id:
            self._notification_handle = None
            self._update(notification=None)

    def dismiss_notification(self) -> None:
        if self._notification_handle is not None:
            self._notification_handle.cancel()
            self._notification_handle = None
        if self._state.notification is not None:
            self._update(notification=None)

    # -- loading --------------------------------------------------------

    def _fail_load(self, message: str, seq: int) -> None:
        self._applied_seq = seq
        # A failed full load discards the previous snapshot.
        self._update(phase=PHASE_ERROR, ticket=None, error=message)
        self._sync_polling()

    async def load(self) -> None:
        if self._closed:
            return
        seq = self._next_seq()
        self._load_seq = seq
        if not self.ticket_id:
            self._fail_load(MSG_MISSING_TICKET_ID, seq)
            return
        if not self.session.token:
            self._fail_load(UnauthenticatedError.user_message, seq)
            return

        self._update(phase=PHASE_LOADING, error=None)
        try:
            ticket = await self.client.get_ticket(self.ticket_id)
        except TicketError as exc:
            if self._is_stale(seq):
                return
            self._log.warning("Failed to load ticket: %s", exc.user_message, extra={"seq": seq})
            self._fail_load(exc.user_message, seq)
            return
        if self._is_stale(seq):
            self._log.debug("Discarding stale load response.", extra={"seq": seq})
            return
        self._apply_snapshot(ticket, seq)

    async def retry(self) -> None:
        await self.load()

    async def refresh(self) -> None:
        await self.load()

    async def _silent_refresh(self) -> None:
        if self._closed or not self.ticket_id or not self.session.token:
            return
        seq = self._next_seq()
        try:
            ticket = await self.client.get_ticket(self.ticket_id)
        except TicketError as exc:
            # Transient failures keep the current snapshot on screen.
            self._log.warning("Silent refresh failed: %s", exc.user_message, extra={"seq": seq})
            return
        if self._is_stale(seq):
            self._log.debug("Discarding stale poll response.", extra={"seq": seq})
            return
        self._apply_snapshot(ticket, seq)

    # -- mutations ------------------------------------------------------

    def _check_ready(self, action: str) -> Err | None:
        if self._closed or self._state.phase != PHASE_READY or self._state.ticket is None:
            return Err(TicketStateError("The ticket is not loaded yet."))
        if action in self._state.busy:
            return Err(ActionInProgressError())
        return None

    def _reject(self, error: TicketError) -> Err:
        self._log.info("Action rejected locally: %s", error.user_message)
        self._update(notification=self._notify(error.user_message))
        return Err(error)

    def _end_action(self, action: str, **changes: object) -> None:
        busy = self._state.busy - {action}
        if action == ACTION_DECIDE:
            changes.setdefault("deciding_comment_id", None)
        self._update(busy=busy, **changes)

    async def _run_mutation(
        self,
        action: str,
        call: Callable[[], Awaitable[Ticket | None]],
        **busy_changes: object,
    ) -> Result[Ticket] | None:
        self._update(busy=self._state.busy | {action}, **busy_changes)
        try:
            ticket = await call()
        except TicketError as exc:
            self._log.warning("Ticket action failed: %s", exc.user_message, extra={"action": action})
            if isinstance(exc, ValidationError):
                self._end_action(action, validation_error=exc.user_message)
            else:
                self._end_action(action, notification=self._notify(exc.user_message))
            return Err(exc)
        except BaseException:
            self._end_action(action)
            raise

        if ticket is None:
            self._end_action(action)
            return None
        if self._closed:
            return Ok(ticket)
        self._end_action(action)
        self._apply_snapshot(ticket, self._next_seq(), validation_error=None)
        return Ok(ticket)

    async def reopen(self) -> Result[Ticket]:
        blocked = self._check_ready(ACTION_REOPEN)
        if blocked is not None:
            return blocked
        ticket = self._state.ticket
        identity = self.session.identity
        if not can_manage_status(identity, ticket):
            return self._reject(PermissionDeniedError("You are not authorized to reopen this ticket."))
        if not can_reopen(identity, ticket):
            return self._reject(TicketStateError("Only resolved tickets can be reopened."))
        ticket_id = ticket.id
        result = await self._run_mutation(
            ACTION_REOPEN, lambda: self.client.set_status(ticket_id, TICKET_STATUS_IN_PROGRESS)
        )
        return cast("Result[Ticket]", result)

    async def submit_comment(self, body: str) -> Result[Ticket]:
        cleaned = (body or "").strip()
        if not cleaned:
            error = ValidationError("Comment cannot be empty.")
            self._update(validation_error=error.user_message)
            return Err(error)
        blocked = self._check_ready(ACTION_COMMENT)
        if blocked is not None:
            return blocked
        ticket = self._state.ticket
        if not can_post_comment(self.session.identity, ticket):
            return self._reject(PermissionDeniedError("You are not authorized to reply on this ticket."))
        ticket_id = ticket.id
        result = await self._run_mutation(
            ACTION_COMMENT, lambda: self.client.add_comment(ticket_id, cleaned), validation_error=None
        )
        return cast("Result[Ticket]", result)

    def _find_comment(self, projection: Projection, comment_id: str) -> Comment | None:
        for entry in projection.ordered:
            if entry.comment.comment_id == comment_id:
                return entry.comment
        return None

    async def decide(self, comment_id: str | None, decision: str) -> Result[Ticket] | None:
        """Accept or reject the live AI suggestion.

        Returns None when the call is skipped for missing identifiers; that
        case is logged and never shown to the user.
        """
        if not comment_id or not self.session.token or not self.ticket_id:
            self._log.warning(
                "Skipping suggestion decision. comment=%s has_token=%s",
                comment_id or None,
                bool(self.session.token),
                extra={"action": ACTION_DECIDE},
            )
            return None
        if decision not in DECISIONS:
            return Err(ValidationError(f"Unknown decision: {decision}"))
        blocked = self._check_ready(ACTION_DECIDE)
        if blocked is not None:
            return blocked

        ticket = self._state.ticket
        projection = project(ticket)
        comment = self._find_comment(projection, comment_id)
        if comment is None or not comment.is_ai_generated:
            return self._reject(TicketStateError("This suggestion is no longer available."))
        if comment.decision is not None:
            return self._reject(TicketStateError("This suggestion has already been reviewed."))
        if not can_moderate_suggestions(self.session.identity, ticket):
            return self._reject(PermissionDeniedError("You are not authorized to review suggestions."))
        if not can_decide_suggestion(self.session.identity, ticket, projection, comment):
            return self._reject(TicketStateError("Only the latest suggestion can be reviewed."))

        ticket_id = ticket.id
        return await self._run_mutation(
            ACTION_DECIDE,
            lambda: self.client.decide_suggestion(ticket_id, comment_id, decision),
            deciding_comment_id=comment_id,
        )

    @property
    def is_converged(self) -> bool:
        ticket = self._state.ticket
        return ticket is not None and ticket.has_ai_suggestions and ticket.status == TICKET_STATUS_RESOLVED
