from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from services.cache import StorageBackend
from utils.constants import ROLE_ADMIN, ROLE_MODERATOR, ROLES, STORAGE_KEY_TOKEN, STORAGE_KEY_USER

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class SessionIdentity:
    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_moderator(self) -> bool:
        return self.role == ROLE_MODERATOR


@dataclass(slots=True, frozen=True)
class SessionContext:
    """Credential and identity captured once when a view is opened.

    Never re-read while the view lives: a role change elsewhere does not
    re-authorize an open view.
    """

    token: str | None
    identity: SessionIdentity | None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)


def parse_identity(raw_user: Any) -> SessionIdentity | None:
    if raw_user is None:
        return None
    if isinstance(raw_user, (str, bytes)):
        try:
            raw_user = json.loads(raw_user)
        except json.JSONDecodeError:
            LOGGER.error("Failed to parse stored user")
            return None
    if not isinstance(raw_user, dict):
        LOGGER.error("Stored user has unexpected type %s", type(raw_user).__name__)
        return None
    user_id = raw_user.get("_id") or raw_user.get("id")
    if not user_id:
        LOGGER.warning("Stored user has no id; treating session as anonymous")
        return None
    role = str(raw_user.get("role") or "").lower()
    if role not in ROLES:
        LOGGER.warning("Stored user has unknown role %r; no elevated permissions granted", role)
    return SessionIdentity(id=str(user_id), role=role)


async def load_session(storage: StorageBackend) -> SessionContext:
    token = await storage.get(STORAGE_KEY_TOKEN)
    raw_user = await storage.get(STORAGE_KEY_USER)
    token_text = str(token).strip() if token else None
    return SessionContext(token=token_text or None, identity=parse_identity(raw_user))
