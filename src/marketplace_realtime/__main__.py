"""Headless session runner: ``python -m marketplace_realtime <token>``.

Logs notifications and connection changes until interrupted or until the
session ends (token rejected or retries exhausted).
"""
from __future__ import annotations

import asyncio
import logging
import os
import sys

from marketplace_realtime.app import create_app
from marketplace_realtime.config import settings
from marketplace_realtime.domain.entities.notification import Notification
from marketplace_realtime.domain.value_objects.enums import ConnectionState
from marketplace_realtime.infrastructure.auth.factory import build_verifier

logger = logging.getLogger(__name__)


async def run(token: str) -> None:
    principal = await build_verifier(settings).verify(token)
    finished = asyncio.Event()
    app = create_app(principal, token, on_auth_expired=finished.set)

    def _log_notification(notification: Notification) -> None:
        logger.info("[%s] %s: %s", notification.kind, notification.title, notification.body)

    def _watch_state(state: ConnectionState) -> None:
        logger.info("Connection %s", state)
        if state is ConnectionState.DISCONNECTED and app.connection.offline:
            finished.set()

    app.notifications.subscribe(_log_notification)
    app.connection.subscribe_state(_watch_state)

    await app.start()
    try:
        await finished.wait()
    finally:
        await app.shutdown()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    token = sys.argv[1] if len(sys.argv) > 1 else os.environ.get("SESSION_TOKEN", "")
    if not token:
        sys.exit("usage: python -m marketplace_realtime <token>  (or set SESSION_TOKEN)")
    try:
        asyncio.run(run(token))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
