from __future__ import annotations

import asyncio
import copy
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from core.config import ApiConfig
from factories import TOKEN, ticket_payload
from services.ticket_client import TicketClient


class FakeTicketBackend:
    """In-process stand-in for the ticket REST service."""

    def __init__(self) -> None:
        self.tickets: dict[str, dict[str, Any]] = {}
        self.requests: list[tuple[str, str, Any]] = []
        self.failures: dict[tuple[str, str], list[tuple[int, Any]]] = {}
        self.delays: dict[tuple[str, str], float] = {}
        self.base_url = ""

    def add_ticket(self, payload: dict[str, Any] | None = None, **kwargs: Any) -> dict[str, Any]:
        ticket = payload or ticket_payload(**kwargs)
        self.tickets[ticket["_id"]] = ticket
        return ticket

    def fail(self, method: str, path: str, status: int, body: Any = None) -> None:
        self.failures.setdefault((method, path), []).append((status, body))

    def delay(self, method: str, path: str, seconds: float) -> None:
        self.delays[(method, path)] = seconds

    def calls(self, method: str, path: str) -> list[Any]:
        return [body for m, p, body in self.requests if m == method and p == path]

    @web.middleware
    async def _middleware(self, request: web.Request, handler: Any) -> web.StreamResponse:
        body = None
        if request.can_read_body:
            try:
                body = await request.json()
            except ValueError:
                body = await request.text()
        key = (request.method, request.path)
        self.requests.append((request.method, request.path, body))
        if request.headers.get("Authorization") != f"Bearer {TOKEN}":
            return web.json_response({"error": "Unauthorized"}, status=401)
        delay = self.delays.get(key)
        if delay:
            await asyncio.sleep(delay)
        queued = self.failures.get(key)
        if queued:
            status, failure_body = queued.pop(0)
            if isinstance(failure_body, str):
                return web.Response(status=status, text=failure_body)
            return web.json_response(failure_body, status=status)
        request["json_body"] = body
        return await handler(request)

    def _ticket_or_404(self, request: web.Request) -> dict[str, Any]:
        ticket = self.tickets.get(request.match_info["ticket_id"])
        if ticket is None:
            raise web.HTTPNotFound(
                text='{"error": "Ticket not found"}', content_type="application/json"
            )
        return ticket

    async def list_tickets(self, request: web.Request) -> web.Response:
        return web.json_response(list(self.tickets.values()))

    async def create_ticket(self, request: web.Request) -> web.Response:
        body = request["json_body"] or {}
        ticket = ticket_payload(
            str(uuid4()), title=body.get("title"), description=body.get("description")
        )
        self.tickets[ticket["_id"]] = ticket
        return web.json_response({"message": "Ticket created", "ticket": ticket}, status=201)

    async def get_ticket(self, request: web.Request) -> web.Response:
        return web.json_response(copy.deepcopy(self._ticket_or_404(request)))

    async def set_status(self, request: web.Request) -> web.Response:
        ticket = self._ticket_or_404(request)
        ticket["status"] = request["json_body"]["status"]
        return web.json_response(ticket)

    async def add_comment(self, request: web.Request) -> web.Response:
        ticket = self._ticket_or_404(request)
        ticket["comments"].append(
            {
                "commentId": str(uuid4()),
                "body": request["json_body"]["body"],
                "createdAt": datetime.now(UTC).isoformat(),
                "isAiGenerated": False,
                "role": "user",
            }
        )
        return web.json_response(ticket)

    async def decide(self, request: web.Request) -> web.Response:
        ticket = self._ticket_or_404(request)
        comment_id = request.match_info["comment_id"]
        for comment in ticket["comments"]:
            if comment.get("commentId") == comment_id or comment.get("_id") == comment_id:
                metadata = comment.setdefault("metadata", {})
                if metadata.get("decision"):
                    return web.json_response({"error": "Decision already recorded"}, status=409)
                metadata["decision"] = request["json_body"]["decision"]
                metadata["decisionAt"] = datetime.now(UTC).isoformat()
                return web.json_response(ticket)
        return web.json_response({"error": "Comment not found"}, status=404)

    async def notify_open(self, request: web.Request) -> web.Response:
        self._ticket_or_404(request)
        return web.json_response({"message": "queued"})

    def build_app(self) -> web.Application:
        app = web.Application(middlewares=[self._middleware])
        app.router.add_get("/ticket", self.list_tickets)
        app.router.add_post("/ticket", self.create_ticket)
        app.router.add_get("/ticket/{ticket_id}", self.get_ticket)
        app.router.add_patch("/ticket/{ticket_id}/status", self.set_status)
        app.router.add_post("/ticket/{ticket_id}/comments", self.add_comment)
        app.router.add_patch("/ticket/{ticket_id}/comments/{comment_id}/decision", self.decide)
        app.router.add_post("/ticket/{ticket_id}/open", self.notify_open)
        return app


@pytest_asyncio.fixture
async def backend() -> AsyncIterator[FakeTicketBackend]:
    fake = FakeTicketBackend()
    server = TestServer(fake.build_app())
    await server.start_server()
    fake.base_url = f"http://{server.host}:{server.port}"
    try:
        yield fake
    finally:
        await server.close()


@pytest_asyncio.fixture
async def client(backend: FakeTicketBackend) -> AsyncIterator[TicketClient]:
    ticket_client = TicketClient(ApiConfig(base_url=backend.base_url, timeout_seconds=5), token=TOKEN)
    try:
        yield ticket_client
    finally:
        await ticket_client.close()
