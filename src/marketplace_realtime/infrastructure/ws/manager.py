"""Lifecycle manager for the single live WebSocket session."""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable

from marketplace_realtime.application.exceptions import (
    AppError,
    AuthExpired,
    ConflictError,
    HeartbeatTimeout,
    MalformedEvent,
    TransportError,
)
from marketplace_realtime.application.ports.transport import Transport, TransportFactory
from marketplace_realtime.domain.entities.session import Session
from marketplace_realtime.domain.value_objects.enums import ConnectionSignal, ConnectionState
from marketplace_realtime.infrastructure.ws.protocol import (
    AUTH_EXPIRED,
    PING,
    PONG,
    WsEnvelope,
    encode_frame,
    parse_envelope,
)

logger = logging.getLogger(__name__)

FrameListener = Callable[[WsEnvelope], None]
StateListener = Callable[[ConnectionState], None]

_S = ConnectionState
_G = ConnectionSignal

_TRANSITIONS: dict[tuple[ConnectionState, ConnectionSignal], ConnectionState] = {
    (_S.DISCONNECTED, _G.CONNECT): _S.CONNECTING,
    (_S.CONNECTING, _G.OPENED): _S.CONNECTED,
    (_S.RECONNECTING, _G.OPENED): _S.CONNECTED,
    (_S.CONNECTING, _G.LOST): _S.RECONNECTING,
    (_S.CONNECTED, _G.LOST): _S.RECONNECTING,
    (_S.RECONNECTING, _G.LOST): _S.RECONNECTING,
    (_S.CONNECTED, _G.HEARTBEAT_TIMEOUT): _S.RECONNECTING,
    (_S.CONNECTING, _G.RETRY_EXHAUSTED): _S.DISCONNECTED,
    (_S.CONNECTED, _G.RETRY_EXHAUSTED): _S.DISCONNECTED,
    (_S.RECONNECTING, _G.RETRY_EXHAUSTED): _S.DISCONNECTED,
    (_S.CONNECTING, _G.AUTH_EXPIRED): _S.DISCONNECTED,
    (_S.CONNECTED, _G.AUTH_EXPIRED): _S.DISCONNECTED,
    (_S.RECONNECTING, _G.AUTH_EXPIRED): _S.DISCONNECTED,
    (_S.DISCONNECTED, _G.DISCONNECT): _S.DISCONNECTED,
    (_S.CONNECTING, _G.DISCONNECT): _S.DISCONNECTED,
    (_S.CONNECTED, _G.DISCONNECT): _S.DISCONNECTED,
    (_S.RECONNECTING, _G.DISCONNECT): _S.DISCONNECTED,
}


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    max_retries: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.2


@dataclass(frozen=True, slots=True)
class HeartbeatPolicy:
    interval: float = 30.0
    timeout: float = 75.0


def compute_backoff(attempt: int, policy: ReconnectPolicy, rng: random.Random | None = None) -> float:
    """Delay before reconnect ``attempt`` (1-based): exponential, capped, +/- jitter."""
    delay = min(policy.base_delay * (2 ** (attempt - 1)), policy.max_delay)
    if policy.jitter:
        r = (rng or random).random()
        delay *= 1 - policy.jitter + 2 * policy.jitter * r
    return delay


class ConnectionManager:
    """Owns one live session: connect, heartbeat, reconnect with backoff, disconnect.

    Transport failures never escape this class. Observers only see state
    changes, and a terminal ``DISCONNECTED`` once retries are exhausted or
    the token is rejected.
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        token: str,
        *,
        reconnect: ReconnectPolicy | None = None,
        heartbeat: HeartbeatPolicy | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._factory = transport_factory
        self._session = Session(token=token)
        self._reconnect = reconnect or ReconnectPolicy()
        self._heartbeat = heartbeat or HeartbeatPolicy()
        self._rng = rng
        self._transport: Transport | None = None
        self._supervisor: asyncio.Task[None] | None = None
        self._frame_listeners: list[FrameListener] = []
        self._state_listeners: list[StateListener] = []
        self._state_changed = asyncio.Event()
        self.offline = False
        self.last_error: AppError | None = None

    # ---- observation ----

    @property
    def state(self) -> ConnectionState:
        return self._session.state

    @property
    def retry_count(self) -> int:
        return self._session.retry_count

    @property
    def is_first_connection(self) -> bool:
        """True while the current connection is the first one since start-up."""
        return self._session.successful_connections == 1

    @property
    def last_heartbeat_at(self) -> float | None:
        return self._session.last_heartbeat_at

    def subscribe_state(self, listener: StateListener) -> Callable[[], None]:
        self._state_listeners.append(listener)
        return lambda: self._remove(self._state_listeners, listener)

    def subscribe_frames(self, listener: FrameListener) -> Callable[[], None]:
        self._frame_listeners.append(listener)
        return lambda: self._remove(self._frame_listeners, listener)

    async def wait_for(self, *states: ConnectionState, timeout: float | None = None) -> ConnectionState:
        async def _wait() -> ConnectionState:
            while self._session.state not in states:
                self._state_changed.clear()
                await self._state_changed.wait()
            return self._session.state

        return await asyncio.wait_for(_wait(), timeout)

    # ---- commands ----

    async def connect(self) -> None:
        if self._session.state is not ConnectionState.DISCONNECTED:
            raise ConflictError(f"connect() is only valid while disconnected (state={self.state})")
        self.offline = False
        self.last_error = None
        self._session.retry_count = 0
        self._transition(ConnectionSignal.CONNECT)
        self._supervisor = asyncio.create_task(self._supervise(), name="ws-connection-supervisor")
        self._supervisor.add_done_callback(self._on_supervisor_done)

    async def disconnect(self) -> None:
        """Release the transport and stop reconnecting. Valid from any state."""
        task, self._supervisor = self._supervisor, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        transport, self._transport = self._transport, None
        if transport is not None:
            await self._close_quietly(transport)
        self._transition(ConnectionSignal.DISCONNECT)
        logger.info("WS session closed by client")

    async def send(self, event_type: str, data: dict[str, Any] | None = None) -> None:
        transport = self._transport
        if transport is None or self._session.state is not ConnectionState.CONNECTED:
            raise TransportError(f"Cannot send {event_type}: not connected")
        await transport.send(encode_frame(event_type, data))

    # ---- state machine ----

    def _transition(self, signal: ConnectionSignal) -> ConnectionState:
        previous = self._session.state
        target = _TRANSITIONS.get((previous, signal))
        if target is None:
            raise ConflictError(f"Invalid transition {previous} --{signal}-->")

        if signal is ConnectionSignal.OPENED:
            self._session.retry_count = 0
            self._session.successful_connections += 1
            self._session.last_heartbeat_at = asyncio.get_running_loop().time()
        elif signal is ConnectionSignal.RETRY_EXHAUSTED:
            self.offline = True

        self._session.state = target
        if target is not previous or signal is ConnectionSignal.OPENED:
            logger.debug("WS state %s -> %s (%s)", previous, target, signal)
            self._state_changed.set()
            for listener in list(self._state_listeners):
                try:
                    listener(target)
                except Exception:
                    logger.exception("Error in connection state listener")
        return target

    async def _supervise(self) -> None:
        while True:
            try:
                transport = await self._factory(self._session.token)
            except AuthExpired as exc:
                self._expire(exc)
                return
            except Exception as exc:
                logger.warning("WS open failed: %s", exc)
                if not await self._schedule_retry(ConnectionSignal.LOST, exc):
                    return
                continue

            self._transport = transport
            self._transition(ConnectionSignal.OPENED)
            logger.info(
                "WS connected (%s)",
                "first connection" if self.is_first_connection else "recovered",
            )
            try:
                signal, error = await self._pump(transport)
            finally:
                self._transport = None
                await self._close_quietly(transport)

            if signal is ConnectionSignal.AUTH_EXPIRED:
                self._expire(error)
                return
            logger.warning("WS connection lost: %s", error)
            if not await self._schedule_retry(signal, error):
                return

    async def _pump(self, transport: Transport) -> tuple[ConnectionSignal, Exception]:
        reader = asyncio.create_task(self._read_loop(transport), name="ws-reader")
        beat = asyncio.create_task(self._heartbeat_loop(transport), name="ws-heartbeat")
        try:
            done, _ = await asyncio.wait({reader, beat}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            reader.cancel()
            beat.cancel()
            await asyncio.gather(reader, beat, return_exceptions=True)

        exc = done.pop().exception() or TransportError("connection closed")
        if isinstance(exc, AuthExpired):
            return ConnectionSignal.AUTH_EXPIRED, exc
        if isinstance(exc, HeartbeatTimeout):
            return ConnectionSignal.HEARTBEAT_TIMEOUT, exc
        return ConnectionSignal.LOST, exc

    async def _schedule_retry(self, signal: ConnectionSignal, error: Exception) -> bool:
        if self._session.retry_count >= self._reconnect.max_retries:
            self.last_error = error if isinstance(error, AppError) else TransportError(str(error))
            self._transition(ConnectionSignal.RETRY_EXHAUSTED)
            logger.error("WS offline after %d reconnect attempt(s)", self._session.retry_count)
            return False

        self._session.retry_count += 1
        self._transition(signal)
        delay = compute_backoff(self._session.retry_count, self._reconnect, self._rng)
        logger.info(
            "Reconnecting in %.2fs (attempt %d/%d)",
            delay, self._session.retry_count, self._reconnect.max_retries,
        )
        await asyncio.sleep(delay)
        return True

    def _expire(self, error: Exception) -> None:
        self.last_error = error if isinstance(error, AppError) else AuthExpired(str(error))
        logger.warning("WS token rejected, session ended: %s", error)
        self._transition(ConnectionSignal.AUTH_EXPIRED)

    async def _read_loop(self, transport: Transport) -> None:
        while True:
            raw = await transport.recv()
            self._handle_raw(raw)

    def _handle_raw(self, raw: str) -> None:
        try:
            envelope = parse_envelope(raw)
        except MalformedEvent as exc:
            logger.warning("Dropping malformed frame: %s", exc.detail)
            return

        if envelope.type == PONG:
            self._session.last_heartbeat_at = asyncio.get_running_loop().time()
            return
        if envelope.type == AUTH_EXPIRED:
            raise AuthExpired("server rejected the session token")

        for listener in list(self._frame_listeners):
            try:
                listener(envelope)
            except Exception:
                logger.exception("Error in frame listener for %s", envelope.type)

    async def _heartbeat_loop(self, transport: Transport) -> None:
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(self._heartbeat.interval)
            last = self._session.last_heartbeat_at or loop.time()
            silent_for = loop.time() - last
            if silent_for > self._heartbeat.timeout:
                raise HeartbeatTimeout(f"no heartbeat ack for {silent_for:.1f}s")
            await transport.send(encode_frame(PING))

    def _on_supervisor_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("WS supervisor crashed", exc_info=exc)
            self.last_error = exc if isinstance(exc, AppError) else TransportError(str(exc))
            if self._session.state is not ConnectionState.DISCONNECTED:
                self._transition(ConnectionSignal.DISCONNECT)

    @staticmethod
    async def _close_quietly(transport: Transport) -> None:
        try:
            await transport.close()
        except Exception:
            logger.debug("Error while closing transport", exc_info=True)

    @staticmethod
    def _remove(listeners: list[Any], listener: Any) -> None:
        try:
            listeners.remove(listener)
        except ValueError:
            pass
