from __future__ import annotations

from dataclasses import dataclass

from domain.models import Ticket
from domain.projection import Projection
from utils.constants import DECISION_ACCEPTED, TICKET_STATUSES
from utils.time import format_datetime


@dataclass(slots=True, frozen=True)
class TicketSummary:
    title: str
    description: str
    status_label: str
    priority_label: str
    assigned_to_label: str
    created_at_label: str
    helpful_notes: str
    related_skills: tuple[str, ...]


@dataclass(slots=True, frozen=True)
class CommentLine:
    comment_id: str | None
    author_label: str
    body: str
    created_at_label: str
    is_ai_generated: bool
    decision_label: str | None
    follow_up_tasks: tuple[str, ...]


def status_label(status: str | None) -> str:
    return status if status in TICKET_STATUSES else "Unknown"


def decision_label(decision: str | None, decided_at: str | None = None) -> str | None:
    if decision is None:
        return None
    label = "Suggestion accepted" if decision == DECISION_ACCEPTED else "Suggestion rejected"
    if decided_at and format_datetime(decided_at) != "Not available":
        label = f"{label} · {format_datetime(decided_at)}"
    return label


def comment_count_label(count: int) -> str:
    return f"{count} {'comment' if count == 1 else 'comments'}"


def summarize_ticket(ticket: Ticket) -> TicketSummary:
    assignee = ticket.assigned_to.email if ticket.assigned_to and ticket.assigned_to.email else None
    return TicketSummary(
        title=ticket.title,
        description=ticket.description,
        status_label=status_label(ticket.status),
        priority_label=ticket.priority or "Not set",
        assigned_to_label=assignee or "Unassigned",
        created_at_label=format_datetime(ticket.created_at),
        helpful_notes=ticket.helpful_notes or "No helpful notes",
        related_skills=ticket.related_skills,
    )


def thread_lines(projection: Projection) -> list[CommentLine]:
    lines: list[CommentLine] = []
    for entry in projection.ordered:
        comment = entry.comment
        lines.append(
            CommentLine(
                comment_id=comment.comment_id,
                author_label=entry.author_label,
                body=comment.body or "No content provided.",
                created_at_label=format_datetime(comment.created_at),
                is_ai_generated=comment.is_ai_generated,
                decision_label=decision_label(comment.decision, comment.metadata.decision_at),
                follow_up_tasks=tuple(task.title for task in comment.metadata.follow_up_tasks if task.title),
            )
        )
    return lines
