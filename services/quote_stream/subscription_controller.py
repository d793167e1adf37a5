"""
Subscription Controller

Turns add/remove/subscribe intents into control frames and keeps a local,
optimistic view of what the server is subscribed to.

The protocol has no acknowledgments: the local view is updated right after a
successful send and is never reconciled against the server.
"""

from typing import Iterable, Union

from shared.models.quote_stream import ControlMessage, ControlType
from shared.utils.logger import get_logger

from .event_log import EntryKind, EventLog
from .symbols import EMPTY, SymbolSet
from .ws_client import QuoteStreamConnection

logger = get_logger(__name__)

NOT_OPEN_WARNING = "socket not open"
EMPTY_SET_WARNING = "no symbols to send"


class SubscriptionController:
    """
    Gatekeeper between user intents and the connection.

    A control frame is only sent while the connection is OPEN, and the local
    view changes only when that send succeeded.
    """

    def __init__(self, connection: QuoteStreamConnection, event_log: EventLog):
        self.connection = connection
        self.event_log = event_log
        self._subscribed: SymbolSet = EMPTY

        # Metrics
        self.messages_sent = 0
        self.rejected = 0

    @property
    def subscribed(self) -> SymbolSet:
        """Current local subscription view (immutable snapshot)"""
        return self._subscribed

    async def apply(self, control_type: Union[ControlType, str], symbols: Iterable[str]) -> bool:
        """
        Send one control message and update the local view.

        Returns:
            True when the frame was sent and the view updated; False when the
            request was refused (empty set, socket not open, transport failure).
            Refusals are recorded as a single warning entry in the event log.
        """
        control_type = ControlType(control_type)
        symbols = symbols if isinstance(symbols, SymbolSet) else SymbolSet(symbols)

        if not symbols:
            self._reject(EMPTY_SET_WARNING, control_type)
            return False

        if not self.connection.is_open:
            self._reject(NOT_OPEN_WARNING, control_type)
            return False

        payload = ControlMessage(type=control_type, symbols=symbols.to_list()).to_wire()

        if not await self.connection.send(payload):
            self._reject(NOT_OPEN_WARNING, control_type)
            return False

        self.event_log.append(f"[sent] {payload}", EntryKind.SENT)
        self._subscribed = self._next_view(control_type, symbols)
        self.messages_sent += 1

        logger.info(
            "control_message_sent",
            type=control_type.value,
            symbols_count=len(symbols),
            subscribed_count=len(self._subscribed)
        )
        return True

    def _next_view(self, control_type: ControlType, symbols: SymbolSet) -> SymbolSet:
        if control_type is ControlType.SUBSCRIBE:
            return symbols
        if control_type is ControlType.ADD:
            return self._subscribed.union(symbols)
        return self._subscribed.difference(symbols)

    def _reject(self, reason: str, control_type: ControlType) -> None:
        self.rejected += 1
        self.event_log.warn(reason)
        logger.warning(
            "control_message_rejected",
            type=control_type.value,
            reason=reason,
            state=self.connection.state.value
        )

    async def add(self, symbols: Iterable[str]) -> bool:
        return await self.apply(ControlType.ADD, symbols)

    async def remove(self, symbols: Iterable[str]) -> bool:
        return await self.apply(ControlType.REMOVE, symbols)

    async def subscribe(self, symbols: Iterable[str]) -> bool:
        return await self.apply(ControlType.SUBSCRIBE, symbols)

    def get_metrics(self) -> dict:
        return {
            "messages_sent": self.messages_sent,
            "rejected": self.rejected,
            "subscribed": self._subscribed.to_list(),
        }
