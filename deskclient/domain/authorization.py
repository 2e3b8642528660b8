"""Role and ownership checks for the ticket detail controls.

These only decide which controls are offered. The backend enforces the same
rules on every request and remains the actual security boundary.
"""

from __future__ import annotations

from core.session import SessionIdentity
from domain.models import Comment, Ticket
from domain.projection import Projection
from utils.constants import TICKET_STATUS_RESOLVED


def is_owner(identity: SessionIdentity | None, ticket: Ticket | None) -> bool:
    if identity is None or ticket is None or not ticket.owner_id:
        return False
    return ticket.owner_id == identity.id


def can_manage_status(identity: SessionIdentity | None, ticket: Ticket | None) -> bool:
    if identity is None or ticket is None:
        return False
    return identity.is_admin or is_owner(identity, ticket)


def can_reopen(identity: SessionIdentity | None, ticket: Ticket | None) -> bool:
    if ticket is None or ticket.status != TICKET_STATUS_RESOLVED:
        return False
    return can_manage_status(identity, ticket)


def can_post_comment(identity: SessionIdentity | None, ticket: Ticket | None) -> bool:
    if identity is None or ticket is None:
        return False
    return identity.is_admin or identity.is_moderator or is_owner(identity, ticket)


def can_moderate_suggestions(identity: SessionIdentity | None, ticket: Ticket | None = None) -> bool:
    if identity is None:
        return False
    return identity.is_admin or identity.is_moderator


def can_decide_suggestion(
    identity: SessionIdentity | None,
    ticket: Ticket | None,
    projection: Projection,
    comment: Comment,
) -> bool:
    if not can_moderate_suggestions(identity, ticket):
        return False
    if comment.decision is not None:
        return False
    return projection.is_actionable(comment)
