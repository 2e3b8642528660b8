from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from utils.constants import DECISIONS

LOGGER = logging.getLogger(__name__)


def _as_id(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, dict):
        # Extended-JSON ObjectId shape: {"$oid": "..."}
        value = value.get("$oid", value.get("_id"))
        if value is None:
            return None
    text = str(value).strip()
    return text or None


def normalize_owner_id(created_by: Any) -> str | None:
    """`createdBy` arrives either as a raw id or as an embedded user document."""
    if isinstance(created_by, dict) and ("$oid" not in created_by):
        return _as_id(created_by.get("_id", created_by.get("id")))
    return _as_id(created_by)


@dataclass(slots=True, frozen=True)
class FollowUpTask:
    title: str


@dataclass(slots=True, frozen=True)
class CommentMetadata:
    decision: str | None = None
    decision_at: str | None = None
    follow_up_tasks: tuple[FollowUpTask, ...] = ()

    @classmethod
    def from_payload(cls, payload: Any) -> CommentMetadata:
        if not isinstance(payload, dict):
            return cls()
        decision = payload.get("decision")
        if decision is not None and decision not in DECISIONS:
            LOGGER.warning("Ignoring unknown suggestion decision value: %r", decision)
            decision = None
        raw_tasks = payload.get("followUpTasks")
        tasks = tuple(
            FollowUpTask(title=str(task.get("title") or ""))
            for task in (raw_tasks if isinstance(raw_tasks, list) else ())
            if isinstance(task, dict)
        )
        return cls(
            decision=decision,
            decision_at=payload.get("decisionAt"),
            follow_up_tasks=tasks,
        )


@dataclass(slots=True, frozen=True)
class Comment:
    comment_id: str | None
    body: str
    created_at: str | None
    is_ai_generated: bool
    role: str | None = None
    author_email: str | None = None
    metadata: CommentMetadata = field(default_factory=CommentMetadata)

    @property
    def decision(self) -> str | None:
        return self.metadata.decision

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Comment:
        comment_id = _as_id(payload.get("commentId")) or _as_id(payload.get("_id"))
        author = payload.get("author")
        author_email = author.get("email") if isinstance(author, dict) else None
        return cls(
            comment_id=comment_id,
            body=str(payload.get("body") or ""),
            created_at=payload.get("createdAt"),
            is_ai_generated=bool(payload.get("isAiGenerated")),
            role=payload.get("role") or None,
            author_email=author_email or None,
            metadata=CommentMetadata.from_payload(payload.get("metadata")),
        )


@dataclass(slots=True, frozen=True)
class Assignee:
    id: str | None
    email: str | None


@dataclass(slots=True, frozen=True)
class Ticket:
    id: str
    title: str
    description: str
    status: str | None
    priority: str | None
    owner_id: str | None
    created_at: str | None
    assigned_to: Assignee | None = None
    helpful_notes: str | None = None
    related_skills: tuple[str, ...] = ()
    ai_suggestions: Any = None
    comments: tuple[Comment, ...] = ()
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def has_ai_suggestions(self) -> bool:
        # Empty string/list/dict count as "not yet generated".
        return bool(self.ai_suggestions)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Ticket:
        ticket_id = _as_id(payload.get("_id")) or _as_id(payload.get("id"))
        if ticket_id is None:
            raise ValueError("Ticket payload is missing an id")

        raw_comments = payload.get("comments")
        if raw_comments is not None and not isinstance(raw_comments, list):
            LOGGER.warning("Ignoring non-list comments on ticket %s: %r", ticket_id, raw_comments)
            raw_comments = None
        comments: list[Comment] = []
        for row in raw_comments or []:
            if not isinstance(row, dict):
                LOGGER.warning("Skipping malformed comment on ticket %s: %r", ticket_id, row)
                continue
            comments.append(Comment.from_payload(row))

        assigned = payload.get("assignedTo")
        assignee: Assignee | None = None
        if isinstance(assigned, dict):
            assignee = Assignee(id=_as_id(assigned.get("_id")), email=assigned.get("email"))
        elif assigned:
            assignee = Assignee(id=_as_id(assigned), email=None)

        skills = payload.get("relatedSkills")
        return cls(
            id=ticket_id,
            title=str(payload.get("title") or ""),
            description=str(payload.get("description") or ""),
            status=payload.get("status") or None,
            priority=payload.get("priority") or None,
            owner_id=normalize_owner_id(payload.get("createdBy")),
            created_at=payload.get("createdAt"),
            assigned_to=assignee,
            helpful_notes=payload.get("helpfulNotes") or None,
            related_skills=tuple(str(skill) for skill in skills) if isinstance(skills, list) else (),
            ai_suggestions=payload.get("aiSuggestions"),
            comments=tuple(comments),
            raw=payload,
        )
