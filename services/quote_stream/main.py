"""
Quote Stream Client - Main Entry Point

Mantiene una conexión al quote stream y expone a la capa de presentación:
- Estado actual (input, símbolos parseados, suscripción local, conexión, log)
- Acciones add / remove / subscribe sobre el set canonicalizado
- Reconexión explícita (nueva instancia de conexión)
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from shared.config.settings import settings
from shared.models.quote_stream import ControlType, SymbolActionRequest, SymbolInputRequest
from shared.utils.logger import configure_logging, get_logger
from services.quote_stream.session import QuoteStreamSession

# Configurar logger
configure_logging(service_name="quote_stream")
logger = get_logger(__name__)

# ============================================================================
# Global State
# ============================================================================

session: Optional[QuoteStreamSession] = None


def create_session() -> QuoteStreamSession:
    """Construye la sesión desde la configuración"""
    return QuoteStreamSession.from_settings(settings)


# ============================================================================
# Lifecycle Management
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Gestión del ciclo de vida de la aplicación"""
    global session

    logger.info("quote_stream_service_starting", url=settings.quote_stream_url)

    session = create_session()
    session.mount()

    logger.info("quote_stream_service_started")

    yield

    # Shutdown
    logger.info("quote_stream_service_shutting_down")

    if session:
        await session.unmount()

    logger.info("quote_stream_service_stopped")


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Quote Stream Client",
    description="Suscripción en tiempo real a quotes vía WebSocket",
    version="1.0.0",
    lifespan=lifespan
)


def _require_session() -> QuoteStreamSession:
    if not session or not session.mounted:
        raise HTTPException(status_code=503, detail="Service not ready")
    return session


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "quote_stream",
        "timestamp": datetime.now().isoformat(),
        "mounted": session.mounted if session else False,
        "connection_state": session.state.value if session else None
    }


@app.get("/state")
async def get_state():
    """Snapshot completo para la capa de presentación"""
    current = _require_session()
    return current.snapshot().to_dict()


@app.get("/log")
async def get_log(since: int = -1):
    """Entradas del log posteriores a `since`"""
    current = _require_session()
    entries = current.event_log.since(since)
    return {
        "entries": [entry.to_dict() for entry in entries],
        "count": len(entries),
        "total": len(current.event_log)
    }


@app.get("/stats")
async def get_stats():
    """Obtiene estadísticas de la conexión y del controlador"""
    current = _require_session()
    return JSONResponse(content={
        "connection": current.connection.get_stats(),
        "controller": current.controller.get_metrics()
    })


@app.put("/symbols/input")
async def set_symbol_input(request: SymbolInputRequest):
    """Reemplaza el texto de entrada y devuelve el set canonicalizado"""
    current = _require_session()
    parsed = current.set_input(request.text)
    return {
        "raw_input": current.raw_input,
        "parsed": parsed.to_list()
    }


@app.post("/symbols/{action}")
async def apply_symbols(action: ControlType, request: Optional[SymbolActionRequest] = None):
    """
    Ejecuta add / remove / subscribe

    Usa `symbols` del body si viene, si no el input actual.
    """
    current = _require_session()
    raw = request.symbols if request else None

    target = current.resolve(raw)
    if not target:
        raise HTTPException(status_code=400, detail="No symbols to send")

    handlers = {
        ControlType.ADD: current.add_symbols,
        ControlType.REMOVE: current.remove_symbols,
        ControlType.SUBSCRIBE: current.subscribe_symbols,
    }
    sent = await handlers[action](raw)

    if not sent:
        raise HTTPException(
            status_code=409,
            detail=f"Socket not open (state: {current.state.value})"
        )

    return {
        "status": "sent",
        "type": action.value,
        "symbols": target.to_list(),
        "subscribed": current.subscribed.to_list()
    }


@app.post("/reconnect")
async def reconnect():
    """Cierra la conexión actual y abre una nueva"""
    current = _require_session()
    await current.remount()
    return {
        "status": "reconnecting",
        "connection_state": current.state.value,
        "timestamp": datetime.now().isoformat()
    }


# ============================================================================
# Main
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "services.quote_stream.main:app",
        host=settings.quote_stream_host,
        port=settings.quote_stream_port,
        reload=False,
        log_config=None  # Usar nuestro logger personalizado
    )
