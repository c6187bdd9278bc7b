from __future__ import annotations

from typing import Protocol


class Transport(Protocol):
    """An open bidirectional text channel.

    ``recv`` raises ``TransportError`` once the channel is closed and
    ``AuthExpired`` if the server rejected the identity token.
    """

    async def send(self, raw: str) -> None: ...

    async def recv(self) -> str: ...

    async def close(self) -> None: ...


class TransportFactory(Protocol):
    async def __call__(self, token: str) -> Transport: ...
