"""
Quote Stream WebSocket Client

Cliente asíncrono que posee exactamente una conexión al quote stream:
- Máquina de estados explícita (connecting → open → closed / errored → closed)
- Envío de frames de control solo con la conexión abierta
- Entrega de frames entrantes sin interpretar a los suscriptores
- Sin reconexión automática: una conexión nueva requiere una instancia nueva
"""

import asyncio
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosedOK, WebSocketException

from shared.config.settings import Settings
from shared.utils.logger import get_logger

logger = get_logger(__name__)


class ConnectionState(str, Enum):
    """Estados de una conexión"""
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    ERRORED = "errored"


# Transiciones permitidas; CLOSED es terminal
_TRANSITIONS = {
    ConnectionState.CONNECTING: frozenset({ConnectionState.OPEN, ConnectionState.CLOSED, ConnectionState.ERRORED}),
    ConnectionState.OPEN: frozenset({ConnectionState.CLOSED, ConnectionState.ERRORED}),
    ConnectionState.ERRORED: frozenset({ConnectionState.CLOSED}),
    ConnectionState.CLOSED: frozenset(),
}


class ConnectionEventKind(str, Enum):
    STATE = "state"
    MESSAGE = "message"


@dataclass(frozen=True)
class ConnectionEvent:
    """
    Notificación entregada a los suscriptores

    STATE: `state` es el nuevo estado, `previous` el anterior
    MESSAGE: `data` es el frame entrante tal cual (texto)
    """
    kind: ConnectionEventKind
    state: ConnectionState
    previous: Optional[ConnectionState] = None
    data: Optional[str] = None
    error: Optional[str] = None


ConnectionListener = Callable[[ConnectionEvent], None]
Connector = Callable[..., Awaitable[Any]]


class QuoteStreamConnection:
    """
    Conexión única al quote stream

    El endpoint se inyecta en el constructor; no hay estado global.
    `connector` permite sustituir `websockets.connect` (tests).
    """

    def __init__(
        self,
        endpoint_url: str,
        open_timeout: float = 10.0,
        ping_interval: Optional[float] = 20.0,
        ping_timeout: Optional[float] = 20.0,
        close_timeout: float = 5.0,
        verify_tls: bool = True,
        connector: Optional[Connector] = None
    ):
        """
        Args:
            endpoint_url: URL ws:// o wss:// del stream
            open_timeout: Timeout del handshake (segundos)
            ping_interval: Intervalo de keepalive (segundos, None lo desactiva)
            ping_timeout: Timeout del pong (segundos)
            close_timeout: Timeout del cierre (segundos)
            verify_tls: Verificar certificados en wss://
            connector: Factoría de transporte, por defecto websockets.connect
        """
        self.endpoint_url = endpoint_url
        self.open_timeout = open_timeout
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self.close_timeout = close_timeout
        self.verify_tls = verify_tls
        self._connector = connector or websockets.connect

        self._state = ConnectionState.CONNECTING
        self._ws = None
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[ConnectionListener] = []
        # Tras close() no se entrega ningún evento más
        self._detached = False

        # Estadísticas
        self.stats: Dict[str, Any] = {
            "messages_received": 0,
            "messages_sent": 0,
            "sends_rejected": 0,
            "errors": 0,
            "opened_at": None,
            "closed_at": None,
            "last_message_time": None,
        }

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "QuoteStreamConnection":
        """Construye la conexión desde la configuración del servicio"""
        params = {
            "endpoint_url": settings.quote_stream_url,
            "open_timeout": settings.quote_stream_open_timeout,
            "ping_interval": settings.quote_stream_ping_interval,
            "ping_timeout": settings.quote_stream_ping_timeout,
            "close_timeout": settings.quote_stream_close_timeout,
            "verify_tls": settings.quote_stream_verify_tls,
        }
        params.update(overrides)
        return cls(**params)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN

    @property
    def is_closed(self) -> bool:
        return self._state is ConnectionState.CLOSED

    def subscribe(self, listener: ConnectionListener) -> Callable[[], None]:
        """
        Registra un listener de eventos

        Returns:
            Función que elimina el listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """
        Inicia el handshake en segundo plano

        Nunca falla de forma síncrona: los errores de transporte llegan como
        transición a ERRORED. Debe llamarse con un event loop activo.
        """
        if self._detached or self._task is not None:
            logger.warning(
                "open_rejected",
                state=self._state.value,
                reason="closed" if self._detached else "already_opened"
            )
            return

        logger.info("connecting_to_quote_stream", url=self.endpoint_url)
        self._task = asyncio.create_task(self._run(), name="quote-stream-reader")

    async def _run(self) -> None:
        """Handshake + lectura de frames hasta cierre o error"""
        try:
            ws = await self._connector(self.endpoint_url, **self._connect_kwargs())

            if self._detached:
                # close() llegó durante el handshake
                await ws.close()
                return

            self._ws = ws
            self._transition(ConnectionState.OPEN)

            async for frame in ws:
                if self._detached:
                    break
                self._deliver(frame)

            # Fin de iteración: cierre ordenado del servidor
            self._transition(ConnectionState.CLOSED)

        except ConnectionClosedOK:
            self._transition(ConnectionState.CLOSED)

        except (WebSocketException, OSError, asyncio.TimeoutError) as e:
            self._fail(e)

        except Exception as e:
            logger.error(
                "unexpected_error",
                error=str(e),
                error_type=type(e).__name__
            )
            self._fail(e)

        await self._release_transport()

    def _connect_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "open_timeout": self.open_timeout,
            "ping_interval": self.ping_interval,
            "ping_timeout": self.ping_timeout,
            "close_timeout": self.close_timeout,
        }
        if self.endpoint_url.lower().startswith("wss://") and not self.verify_tls:
            context = ssl.create_default_context()
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            kwargs["ssl"] = context
        return kwargs

    async def close(self) -> None:
        """
        Cierra la conexión desde cualquier estado. Idempotente.

        La transición a CLOSED y el desacople de listeners ocurren antes del
        primer await: después de close() ningún callback vuelve a dispararse.
        """
        if self._detached:
            return

        self._transition(ConnectionState.CLOSED)
        self._detached = True
        self._listeners.clear()

        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._release_transport()
        logger.info("quote_stream_closed", url=self.endpoint_url)

    async def _release_transport(self) -> None:
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await ws.close()
        except (WebSocketException, OSError) as e:
            logger.debug("transport_close_error", error=str(e))

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send(self, payload: str) -> bool:
        """
        Envía un frame de texto

        Returns:
            True si el frame se entregó al transporte. False si la conexión no
            está abierta (aviso, no excepción) o si el transporte falló.
        """
        ws = self._ws
        if self._state is not ConnectionState.OPEN or ws is None:
            self.stats["sends_rejected"] += 1
            logger.warning("send_rejected_not_open", state=self._state.value)
            return False

        try:
            await ws.send(payload)
        except (WebSocketException, OSError) as e:
            self._fail(e)
            await self._release_transport()
            return False

        self.stats["messages_sent"] += 1
        logger.debug("frame_sent", size=len(payload))
        return True

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, new_state: ConnectionState, error: Optional[str] = None) -> bool:
        if self._detached:
            return False

        previous = self._state
        if new_state not in _TRANSITIONS[previous]:
            logger.debug("transition_ignored", current=previous.value, requested=new_state.value)
            return False

        self._state = new_state
        now = datetime.now(timezone.utc).isoformat()
        if new_state is ConnectionState.OPEN:
            self.stats["opened_at"] = now
        elif new_state is ConnectionState.CLOSED:
            self.stats["closed_at"] = now

        logger.info(
            "connection_state_changed",
            previous=previous.value,
            state=new_state.value,
            url=self.endpoint_url
        )

        self._emit(ConnectionEvent(
            kind=ConnectionEventKind.STATE,
            state=new_state,
            previous=previous,
            error=error
        ))
        return True

    def _fail(self, exc: BaseException) -> None:
        """ERRORED siempre va seguido de CLOSED"""
        self.stats["errors"] += 1
        logger.error(
            "websocket_error",
            url=self.endpoint_url,
            error=str(exc),
            error_type=type(exc).__name__
        )
        self._transition(ConnectionState.ERRORED, error=str(exc) or type(exc).__name__)
        self._transition(ConnectionState.CLOSED)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def _deliver(self, frame: Union[str, bytes]) -> None:
        if isinstance(frame, str):
            data = frame
        else:
            data = bytes(frame).decode("utf-8", errors="replace")

        self.stats["messages_received"] += 1
        self.stats["last_message_time"] = datetime.now(timezone.utc).isoformat()

        self._emit(ConnectionEvent(
            kind=ConnectionEventKind.MESSAGE,
            state=self._state,
            data=data
        ))

    def _emit(self, event: ConnectionEvent) -> None:
        if self._detached:
            return
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    "listener_error",
                    event_kind=event.kind.value,
                    error=str(e),
                    error_type=type(e).__name__
                )

    def get_stats(self) -> Dict[str, Any]:
        """Obtiene estadísticas de la conexión"""
        return {
            **self.stats,
            "state": self._state.value,
            "url": self.endpoint_url,
        }
