from __future__ import annotations

from dataclasses import dataclass

from domain.models import Comment, Ticket
from utils.time import sort_key


@dataclass(slots=True, frozen=True)
class ThreadEntry:
    comment: Comment
    author_label: str
    position: int


@dataclass(slots=True, frozen=True)
class Projection:
    ordered: tuple[ThreadEntry, ...]
    actionable_suggestion_id: str | None

    @property
    def comments(self) -> tuple[Comment, ...]:
        return tuple(entry.comment for entry in self.ordered)

    def is_actionable(self, comment: Comment) -> bool:
        return (
            self.actionable_suggestion_id is not None
            and comment.is_ai_generated
            and comment.comment_id == self.actionable_suggestion_id
        )


def author_label(comment: Comment, position: int) -> str:
    return comment.role or comment.author_email or f"Participant {position + 1}"


def order_comments(comments: tuple[Comment, ...] | list[Comment]) -> list[Comment]:
    # sorted() is stable, so equal timestamps keep their server order.
    return sorted(comments, key=lambda comment: sort_key(comment.created_at))


def latest_suggestion_id(ordered: list[Comment]) -> str | None:
    for comment in reversed(ordered):
        # An AI comment without any id cannot be addressed by the decision endpoint.
        if comment.is_ai_generated and comment.comment_id:
            return comment.comment_id
    return None


def project(ticket: Ticket | None) -> Projection:
    """Build the chronological thread and pick the one reviewable AI suggestion.

    Only the most recent AI comment is ever actionable; older suggestions are
    historical even when nobody recorded a decision on them.
    """
    if ticket is None or not ticket.comments:
        return Projection(ordered=(), actionable_suggestion_id=None)
    ordered = order_comments(ticket.comments)
    entries = tuple(
        ThreadEntry(comment=comment, author_label=author_label(comment, index), position=index)
        for index, comment in enumerate(ordered)
    )
    return Projection(ordered=entries, actionable_suggestion_id=latest_suggestion_id(ordered))
