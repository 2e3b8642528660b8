from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from redis.exceptions import RedisError

from core.config import AppConfig, load_config
from core.errors import TicketError, humanize_error
from core.logging import configure_logging
from core.session import load_session
from services.cache import build_storage
from services.ticket_client import TicketClient
from utils.constants import PHASE_ERROR, STORAGE_KEY_TOKEN, STORAGE_KEY_USER
from views.presenters import comment_count_label, summarize_ticket, thread_lines
from views.ticket_detail import TicketDetailView, ViewState

LOGGER = logging.getLogger(__name__)


def _log_state(state: ViewState) -> None:
    if state.ticket is None:
        LOGGER.info("phase=%s error=%s", state.phase, state.error)
        return
    summary = summarize_ticket(state.ticket)
    lines = thread_lines(state.projection)
    LOGGER.info(
        "phase=%s status=%s priority=%s assignee=%s polling=%s %s",
        state.phase,
        summary.status_label,
        summary.priority_label,
        summary.assigned_to_label,
        state.polling,
        comment_count_label(len(lines)),
    )
    if state.notification is not None:
        LOGGER.warning("notification: %s", state.notification.message)


async def _watch_ticket(config: AppConfig, ticket_id: str) -> None:
    storage = build_storage(
        config.storage,
        seed={STORAGE_KEY_TOKEN: config.session.token, STORAGE_KEY_USER: config.session.user},
    )
    try:
        session = await load_session(storage)
        async with TicketClient(config.api, session.token) as client:
            view = TicketDetailView(
                ticket_id,
                session,
                client,
                poll_interval_seconds=config.polling.interval_seconds,
                notification_ttl_seconds=config.ui.notification_ttl_seconds,
            )
            view.subscribe(_log_state)
            try:
                await view.mount()
                while view.state.phase != PHASE_ERROR and not view.is_converged:
                    await asyncio.sleep(config.polling.interval_seconds)
                if view.state.phase == PHASE_ERROR:
                    LOGGER.error("Unable to load ticket %s: %s", ticket_id, view.state.error)
                else:
                    LOGGER.info("Ticket %s converged; stopping.", ticket_id)
            finally:
                view.close()
    finally:
        await storage.close()


def main() -> None:
    root = Path(__file__).resolve().parent
    parser = argparse.ArgumentParser(description="Watch a support ticket until it converges.")
    parser.add_argument("ticket_id")
    parser.add_argument("--config", type=Path, default=root / "config" / "config.yaml")
    args = parser.parse_args()

    config = load_config(args.config)
    configure_logging(config.logging)
    try:
        asyncio.run(_watch_ticket(config, args.ticket_id))
    except KeyboardInterrupt:
        LOGGER.info("Interrupted.")
    except (TicketError, RedisError) as exc:
        LOGGER.error("Ticket watcher stopped: %s", humanize_error(exc))
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
