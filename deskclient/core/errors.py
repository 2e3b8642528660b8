from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Generic, TypeVar

from utils.constants import MSG_MISSING_TOKEN

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class TicketError(RuntimeError):
    user_message: str = "An unexpected error occurred."

    def __init__(self, user_message: str | None = None) -> None:
        if user_message:
            self.user_message = user_message
        super().__init__(self.user_message)


class UnauthenticatedError(TicketError):
    user_message = MSG_MISSING_TOKEN


class NotFoundError(TicketError):
    user_message = "The requested ticket could not be found."


class UnauthorizedError(TicketError):
    user_message = "You are not authorized to access this ticket."


class ServerError(TicketError):
    user_message = "The server could not complete the request."

    def __init__(self, user_message: str | None = None, status: int | None = None) -> None:
        super().__init__(user_message)
        self.status = status


class NetworkError(TicketError):
    user_message = "Could not reach the ticket service."


class RequestTimeoutError(TicketError):
    user_message = "The ticket service did not respond in time."


class ValidationError(TicketError):
    user_message = "The provided input is not valid."


class PermissionDeniedError(TicketError):
    user_message = "You do not have permission to run this action."


class TicketStateError(TicketError):
    user_message = "The ticket is not in a valid state for this action."


class ActionInProgressError(TicketError):
    user_message = "This action is already in progress."


@dataclass(slots=True, frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(slots=True, frozen=True)
class Err:
    error: TicketError

    @property
    def ok(self) -> bool:
        return False

    @property
    def message(self) -> str:
        return self.error.user_message


Result = Ok[T] | Err


def humanize_error(error: BaseException) -> str:
    if isinstance(error, TicketError):
        return error.user_message
    if isinstance(error, asyncio.TimeoutError):
        return RequestTimeoutError.user_message
    LOGGER.debug("Unmapped error type %s", type(error).__name__)
    return TicketError.user_message
