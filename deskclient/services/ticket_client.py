from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from core.config import ApiConfig
from core.errors import (
    NetworkError,
    NotFoundError,
    RequestTimeoutError,
    ServerError,
    UnauthenticatedError,
    UnauthorizedError,
    ValidationError,
)
from domain.models import Ticket
from utils.constants import (
    DECISIONS,
    MSG_COMMENT_FAILED,
    MSG_CREATE_FAILED,
    MSG_DECISION_FAILED,
    MSG_LIST_FAILED,
    MSG_LOAD_FAILED,
    MSG_NOTIFY_FAILED,
    MSG_REOPEN_FAILED,
    TICKET_STATUS_IN_PROGRESS,
)

LOGGER = logging.getLogger(__name__)


async def _error_message(response: aiohttp.ClientResponse, fallback: str) -> str:
    try:
        payload = await response.json(content_type=None)
    except (aiohttp.ContentTypeError, ValueError):
        return fallback
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return fallback


def _raise_for_status(status: int, message: str) -> None:
    if status == 404:
        raise NotFoundError(message)
    if status in {401, 403}:
        raise UnauthorizedError(message)
    raise ServerError(message, status=status)


class TicketClient:
    """Typed wrapper over the ticket REST endpoints.

    One instance owns one ``aiohttp.ClientSession``. Calls are never retried;
    posting a comment twice would create two comments.
    """

    def __init__(
        self,
        config: ApiConfig,
        token: str | None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.base_url = config.base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=config.timeout_seconds)
        self._token = token
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> TicketClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _headers(self, *, with_body: bool) -> dict[str, str]:
        if not self._token:
            raise UnauthenticatedError()
        headers = {"Authorization": f"Bearer {self._token}"}
        if with_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        fallback_message: str,
        json_body: dict[str, Any] | None = None,
        expect_body: bool = True,
    ) -> Any:
        headers = self._headers(with_body=json_body is not None)
        url = f"{self.base_url}{path}"
        session = self._get_session()
        try:
            async with session.request(
                method, url, json=json_body, headers=headers, timeout=self.timeout
            ) as response:
                if response.status >= 400:
                    message = await _error_message(response, fallback_message)
                    LOGGER.debug("Request failed. method=%s path=%s status=%s", method, path, response.status)
                    _raise_for_status(response.status, message)
                if not expect_body:
                    return None
                try:
                    return await response.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError) as exc:
                    raise ServerError("Unexpected response from server.", status=response.status) from exc
        except asyncio.TimeoutError as exc:
            raise RequestTimeoutError() from exc
        except aiohttp.ClientError as exc:
            raise NetworkError() from exc

    async def _request_ticket(self, method: str, path: str, *, fallback_message: str, **kwargs: Any) -> Ticket:
        payload = await self._request(method, path, fallback_message=fallback_message, **kwargs)
        if not isinstance(payload, dict):
            raise ServerError("Unexpected response from server.")
        try:
            return Ticket.from_payload(payload)
        except (TypeError, ValueError) as exc:
            LOGGER.warning("Malformed ticket payload. path=%s error=%s", path, exc)
            raise ServerError("Unexpected response from server.") from exc

    async def get_ticket(self, ticket_id: str) -> Ticket:
        return await self._request_ticket("GET", f"/ticket/{ticket_id}", fallback_message=MSG_LOAD_FAILED)

    async def set_status(self, ticket_id: str, status: str) -> Ticket:
        fallback = MSG_REOPEN_FAILED if status == TICKET_STATUS_IN_PROGRESS else "Failed to update ticket status."
        return await self._request_ticket(
            "PATCH",
            f"/ticket/{ticket_id}/status",
            fallback_message=fallback,
            json_body={"status": status},
        )

    async def add_comment(self, ticket_id: str, body: str) -> Ticket:
        cleaned = (body or "").strip()
        if not cleaned:
            raise ValidationError("Comment cannot be empty.")
        return await self._request_ticket(
            "POST",
            f"/ticket/{ticket_id}/comments",
            fallback_message=MSG_COMMENT_FAILED,
            json_body={"body": cleaned},
        )

    async def decide_suggestion(self, ticket_id: str, comment_id: str, decision: str) -> Ticket | None:
        if not comment_id or not self._token or not ticket_id:
            LOGGER.warning(
                "Skipping suggestion decision. comment=%s has_token=%s",
                comment_id or None,
                bool(self._token),
                extra={"ticket_id": ticket_id or None},
            )
            return None
        if decision not in DECISIONS:
            raise ValidationError(f"Unknown decision: {decision}")
        return await self._request_ticket(
            "PATCH",
            f"/ticket/{ticket_id}/comments/{comment_id}/decision",
            fallback_message=MSG_DECISION_FAILED,
            json_body={"decision": decision},
        )

    async def notify_opened(self, ticket_id: str) -> None:
        if not ticket_id or not self._token:
            LOGGER.warning(
                "Skipping open notification. has_token=%s",
                bool(self._token),
                extra={"ticket_id": ticket_id or None},
            )
            return
        try:
            await self._request(
                "POST",
                f"/ticket/{ticket_id}/open",
                fallback_message=MSG_NOTIFY_FAILED,
                json_body={},
                expect_body=False,
            )
        except Exception:
            LOGGER.warning("Error notifying ticket opened.", exc_info=True, extra={"ticket_id": ticket_id})

    async def list_tickets(self) -> list[Ticket]:
        payload = await self._request("GET", "/ticket", fallback_message=MSG_LIST_FAILED)
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise ServerError("Unexpected response from server.")
        tickets: list[Ticket] = []
        for row in payload:
            if not isinstance(row, dict):
                continue
            try:
                tickets.append(Ticket.from_payload(row))
            except (TypeError, ValueError) as exc:
                LOGGER.warning("Skipping malformed ticket in list response: %s", exc)
        return tickets

    async def create_ticket(self, title: str, description: str) -> Ticket:
        cleaned_title = (title or "").strip()
        cleaned_description = (description or "").strip()
        if not cleaned_title or not cleaned_description:
            raise ValidationError("Please fill in both title and description.")
        payload = await self._request(
            "POST",
            "/ticket",
            fallback_message=MSG_CREATE_FAILED,
            json_body={"title": cleaned_title, "description": cleaned_description},
        )
        # Some deployments wrap the created record: {"message": ..., "ticket": {...}}
        if isinstance(payload, dict) and isinstance(payload.get("ticket"), dict):
            payload = payload["ticket"]
        if not isinstance(payload, dict):
            raise ServerError("Unexpected response from server.")
        try:
            return Ticket.from_payload(payload)
        except (TypeError, ValueError) as exc:
            raise ServerError("Unexpected response from server.") from exc
