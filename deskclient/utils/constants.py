from __future__ import annotations

TICKET_STATUS_TODO = "TODO"
TICKET_STATUS_IN_PROGRESS = "IN_PROGRESS"
TICKET_STATUS_RESOLVED = "RESOLVED"

TICKET_STATUSES = (TICKET_STATUS_TODO, TICKET_STATUS_IN_PROGRESS, TICKET_STATUS_RESOLVED)

ROLE_USER = "user"
ROLE_MODERATOR = "moderator"
ROLE_ADMIN = "admin"

ROLES = (ROLE_USER, ROLE_MODERATOR, ROLE_ADMIN)

DECISION_ACCEPTED = "accepted"
DECISION_REJECTED = "rejected"

DECISIONS = (DECISION_ACCEPTED, DECISION_REJECTED)

ACTION_REOPEN = "reopen"
ACTION_COMMENT = "comment"
ACTION_DECIDE = "decide"

PHASE_LOADING = "loading"
PHASE_READY = "ready"
PHASE_ERROR = "error"

POLL_STATE_IDLE = "idle"
POLL_STATE_POLLING = "polling"

SUGGESTION_DECIDED = "decided"
SUGGESTION_ACTIONABLE = "actionable"
SUGGESTION_SUPERSEDED = "superseded"
SUGGESTION_AWAITING_REVIEW = "awaiting_review"

STORAGE_KEY_TOKEN = "token"
STORAGE_KEY_USER = "user"

DEFAULT_POLL_INTERVAL_SECONDS = 4.0
DEFAULT_TIMEOUT_SECONDS = 30

MSG_MISSING_TICKET_ID = "Missing ticket identifier."
MSG_MISSING_TOKEN = "Authentication token is missing. Please log in again."
MSG_LOAD_FAILED = "Failed to load ticket details."
MSG_LIST_FAILED = "Failed to load tickets."
MSG_REOPEN_FAILED = "Failed to reopen ticket."
MSG_COMMENT_FAILED = "Failed to post comment."
MSG_DECISION_FAILED = "Failed to update suggestion decision."
MSG_CREATE_FAILED = "Failed to create ticket."
MSG_NOTIFY_FAILED = "Failed to notify ticket opened."
