"""Reconnect state machine for the live stream.

The machine is a pure function, :func:`transition`, from a
:class:`ReconnectState` and an event to a :class:`Transition` describing the
next state and the side effects to perform.  :class:`rangeherd._stream.LiveStream`
owns the socket and the timer and only ever acts on what a transition says.

::

    START ──> connecting ──OPENED──> connected
                  │                      │
               DROPPED                DROPPED
                  └──────┬───────────────┘
                         v
     retries < max ? reconnecting ──RETRY_DUE──> connecting
                   : closed (terminal; only START leaves it)
"""

from __future__ import annotations

import dataclasses
from enum import StrEnum

from rangeherd.models.status import ConnectionStatus


class StreamEvent(StrEnum):
    START = "start"
    """Explicit fresh connect (new session, user action)."""
    OPENED = "opened"
    """The socket handshake completed."""
    DROPPED = "dropped"
    """The connection failed to open, errored, or was closed by the peer."""
    RETRY_DUE = "retry_due"
    """The pending reconnect timer fired."""
    STOP = "stop"
    """Teardown."""


@dataclasses.dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff: ``min(base_delay * 2**attempt, max_delay)`` seconds."""

    base_delay: float = 1.0
    max_delay: float = 30.0
    max_retries: int = 10

    def delay_for(self, attempt: int) -> float:
        """Delay before reconnect *attempt* (0-indexed)."""
        if attempt < 0:
            raise ValueError("attempt must not be negative")
        # Cap the exponent so huge attempt numbers never overflow.
        return min(self.base_delay * (2 ** min(attempt, 62)), self.max_delay)

    def schedule(self) -> list[float]:
        """Every delay the policy will ever produce, in order."""
        return [self.delay_for(n) for n in range(self.max_retries)]


@dataclasses.dataclass(frozen=True)
class ReconnectState:
    status: ConnectionStatus = ConnectionStatus.CONNECTING
    retries: int = 0


@dataclasses.dataclass(frozen=True)
class Transition:
    state: ReconnectState
    open_socket: bool = False
    retry_delay: float | None = None


def transition(state: ReconnectState, event: StreamEvent, policy: BackoffPolicy) -> Transition:
    """Apply *event* to *state*.

    Events that make no sense in the current state (a late ``OPENED`` after
    teardown, a second ``DROPPED`` while a retry is already pending) leave
    the state untouched, which is what keeps at most one timer alive.
    """
    status = state.status

    if event is StreamEvent.START:
        return Transition(ReconnectState(ConnectionStatus.CONNECTING, 0), open_socket=True)

    if event is StreamEvent.STOP:
        return Transition(ReconnectState(ConnectionStatus.CLOSED, state.retries))

    if event is StreamEvent.OPENED:
        if status is ConnectionStatus.CONNECTING:
            return Transition(ReconnectState(ConnectionStatus.CONNECTED, 0))
        return Transition(state)

    if event is StreamEvent.DROPPED:
        if status not in (ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED):
            return Transition(state)
        if state.retries >= policy.max_retries:
            return Transition(ReconnectState(ConnectionStatus.CLOSED, state.retries))
        delay = policy.delay_for(state.retries)
        return Transition(
            ReconnectState(ConnectionStatus.RECONNECTING, state.retries + 1),
            retry_delay=delay,
        )

    if event is StreamEvent.RETRY_DUE:
        if status is ConnectionStatus.RECONNECTING:
            return Transition(ReconnectState(ConnectionStatus.CONNECTING, state.retries), open_socket=True)
        return Transition(state)

    raise ValueError(f"Unknown stream event: {event!r}")
