"""
Quote Stream Session

The mounted client: owns one EventLog, one connection and one subscription
controller, and exposes what the presentation layer reads (snapshot) and
calls (add/remove/subscribe).
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from shared.config.settings import Settings
from shared.utils.logger import LoggerMixin

from .event_log import EntryKind, EventLog, LogEntry
from .subscription_controller import NOT_OPEN_WARNING, SubscriptionController
from .symbols import EMPTY, SymbolSet, canonicalize
from .ws_client import (
    ConnectionEvent,
    ConnectionEventKind,
    ConnectionState,
    Connector,
    QuoteStreamConnection,
)

ConnectionFactory = Callable[[], QuoteStreamConnection]

_LIFECYCLE_TEXT = {
    ConnectionState.CLOSED: "[close] disconnected",
    ConnectionState.ERRORED: "[error] websocket error",
}


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of the session at one point in time"""
    raw_input: str
    parsed: Tuple[str, ...]
    subscribed: Tuple[str, ...]
    state: ConnectionState
    log: Tuple[LogEntry, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raw_input": self.raw_input,
            "parsed": list(self.parsed),
            "subscribed": list(self.subscribed),
            "state": self.state.value,
            "log": [entry.to_dict() for entry in self.log],
        }


class QuoteStreamSession(LoggerMixin):
    """
    Client instance lifetime: mount() creates and opens the connection,
    unmount() closes it. A closed connection is never reused; remount()
    builds a fresh one.
    """

    def __init__(
        self,
        connection_factory: ConnectionFactory,
        raw_input: str = "",
        event_log: Optional[EventLog] = None
    ):
        self.logger = self.get_logger()
        self._connection_factory = connection_factory
        self.event_log = event_log if event_log is not None else EventLog()
        self.raw_input = raw_input

        self.connection: Optional[QuoteStreamConnection] = None
        self.controller: Optional[SubscriptionController] = None
        self._mounted = False

    @classmethod
    def from_settings(cls, settings: Settings, connector: Optional[Connector] = None) -> "QuoteStreamSession":
        overrides = {"connector": connector} if connector is not None else {}
        return cls(
            lambda: QuoteStreamConnection.from_settings(settings, **overrides),
            raw_input=settings.quote_stream_default_symbols
        )

    @property
    def mounted(self) -> bool:
        return self._mounted

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def mount(self) -> None:
        """Create the connection and start the handshake"""
        if self._mounted:
            self.logger.warning("session_already_mounted")
            return

        connection = self._connection_factory()
        connection.subscribe(self._on_connection_event)
        self.connection = connection
        self.controller = SubscriptionController(connection, self.event_log)
        self._mounted = True

        self.logger.info("session_mounted", url=connection.endpoint_url)
        connection.open()

    async def unmount(self) -> None:
        """Tear down the connection whatever state it is in"""
        if not self._mounted:
            return
        self._mounted = False
        await self.connection.close()
        self.logger.info("session_unmounted")

    async def remount(self) -> None:
        """Replace the connection; the event log and raw input are kept"""
        await self.unmount()
        self.mount()

    async def __aenter__(self) -> "QuoteStreamSession":
        self.mount()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.unmount()

    def _on_connection_event(self, event: ConnectionEvent) -> None:
        if event.kind is ConnectionEventKind.MESSAGE:
            self.event_log.append(event.data, EntryKind.INBOUND)
        elif event.state is ConnectionState.OPEN:
            self.event_log.append(f"[open] connected to {self.connection.endpoint_url}")
        else:
            self.event_log.append(_LIFECYCLE_TEXT[event.state])

    # ------------------------------------------------------------------
    # Presentation state
    # ------------------------------------------------------------------

    def set_input(self, text: str) -> SymbolSet:
        self.raw_input = text
        return self.parsed

    @property
    def parsed(self) -> SymbolSet:
        return canonicalize(self.raw_input)

    @property
    def subscribed(self) -> SymbolSet:
        return self.controller.subscribed if self.controller else EMPTY

    @property
    def state(self) -> ConnectionState:
        return self.connection.state if self.connection else ConnectionState.CLOSED

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            raw_input=self.raw_input,
            parsed=tuple(self.parsed),
            subscribed=tuple(self.subscribed),
            state=self.state,
            log=self.event_log.entries,
        )

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def resolve(self, symbols: Optional[str] = None) -> SymbolSet:
        """Explicit raw text when given, otherwise the current input"""
        return canonicalize(symbols) if symbols is not None else self.parsed

    async def add_symbols(self, symbols: Optional[str] = None) -> bool:
        if not self._ready():
            return False
        return await self.controller.add(self.resolve(symbols))

    async def remove_symbols(self, symbols: Optional[str] = None) -> bool:
        if not self._ready():
            return False
        return await self.controller.remove(self.resolve(symbols))

    async def subscribe_symbols(self, symbols: Optional[str] = None) -> bool:
        if not self._ready():
            return False
        return await self.controller.subscribe(self.resolve(symbols))

    def _ready(self) -> bool:
        if self._mounted:
            return True
        self.event_log.warn(NOT_OPEN_WARNING)
        self.logger.warning("action_rejected_not_mounted")
        return False
