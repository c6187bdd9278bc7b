"""``websockets`` client adapter implementing the Transport port."""
from __future__ import annotations

import logging
from urllib.parse import quote as url_quote

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidStatus, WebSocketException

from marketplace_realtime.application.exceptions import AppError, AuthExpired, TransportError

logger = logging.getLogger(__name__)

AUTH_FAILED_CLOSE_CODE = 4001


def _closed_error(exc: ConnectionClosed) -> AppError:
    code = exc.rcvd.code if exc.rcvd is not None else None
    if code == AUTH_FAILED_CLOSE_CODE:
        return AuthExpired("Authentication failed")
    return TransportError(f"connection closed (code={code})")


class WebSocketsTransport:
    def __init__(self, connection: ClientConnection) -> None:
        self._ws = connection

    async def send(self, raw: str) -> None:
        try:
            await self._ws.send(raw)
        except ConnectionClosed as exc:
            raise _closed_error(exc) from exc

    async def recv(self) -> str:
        try:
            raw = await self._ws.recv()
        except ConnectionClosed as exc:
            raise _closed_error(exc) from exc
        return raw if isinstance(raw, str) else raw.decode("utf-8")

    async def close(self) -> None:
        await self._ws.close()


class WebSocketsTransportFactory:
    """Opens ``<url>?token=...`` connections; heartbeats are handled by the manager."""

    def __init__(self, url: str, *, open_timeout: float = 20.0) -> None:
        self._url = url
        self._open_timeout = open_timeout

    async def __call__(self, token: str) -> WebSocketsTransport:
        separator = "&" if "?" in self._url else "?"
        url = f"{self._url}{separator}token={url_quote(token, safe='')}"
        try:
            connection = await connect(url, open_timeout=self._open_timeout, ping_interval=None)
        except InvalidStatus as exc:
            status = exc.response.status_code
            if status in (401, 403):
                raise AuthExpired(f"handshake rejected ({status})") from exc
            raise TransportError(f"handshake failed ({status})") from exc
        except (OSError, TimeoutError, WebSocketException) as exc:
            raise TransportError(str(exc) or type(exc).__name__) from exc
        logger.debug("WebSocket opened to %s", self._url)
        return WebSocketsTransport(connection)
