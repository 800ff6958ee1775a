import asyncio
import logging
import os
import sys
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from replay_use import __version__, config
from replay_use.exceptions import (
    CaptureSetupError,
    ExportValidationError,
    InvalidSeekIndexError,
    PlaybackNotFoundError,
    PlaybackStateError,
    RecordingNotFoundError,
    RecordingStateError,
    ReplayUseError,
    SessionNotFoundError,
)

from backend.logging_broadcast import LogBroadcastHandler, SessionIdFilter
from backend.routers import broadcast_router, recording_router, session_router
from backend.routers_logs import logs_router
from backend.service_factory import get_service
from backend.websocket_manager import websocket_manager

logger = logging.getLogger(__name__)

# Set event loop policy for Windows
if sys.platform == 'win32':
    asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())


@asynccontextmanager
async def lifespan(app: FastAPI):
    service = get_service()
    service.sessions.start_cleanup_loop()
    logger.info("🚀 Replay service started")
    try:
        yield
    finally:
        await service.shutdown()
        await websocket_manager.drain()
        logger.info("Replay service stopped")


app = FastAPI(title='Replay Use Service', version=__version__, lifespan=lifespan)

# ─── CORS ────────
origins = [
    "http://localhost:5173",           # local Vite dev
    "http://localhost:3000",           # React dev server
    "http://localhost:8080",           # Alternative dev server
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:8080",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins + ([os.getenv('CORS_ALLOWED_ORIGINS')] if os.getenv('CORS_ALLOWED_ORIGINS') else []),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─── Error mapping ────────
# Checked in order; the first matching class decides the status code
_ERROR_STATUS = (
    (SessionNotFoundError, 404),
    (RecordingNotFoundError, 404),
    (PlaybackNotFoundError, 404),
    (InvalidSeekIndexError, 400),
    (ExportValidationError, 400),
    (RecordingStateError, 409),
    (PlaybackStateError, 409),
    (CaptureSetupError, 500),
)


def _error_response(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": type(exc).__name__, "detail": str(exc)},
    )


@app.exception_handler(ReplayUseError)
async def replay_use_error_handler(request: Request, exc: ReplayUseError):
    status_code = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({status_code}): {exc}")
    return _error_response(status_code, exc)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    logger.info(f"{request.method} {request.url.path} rejected (400): {exc}")
    return _error_response(400, exc)


# ─── Logging ────────

def setup_logging() -> None:
    """Attach the rotating file log and the per-session broadcast handler.

    Safe to call more than once; existing handlers are not duplicated.
    """
    os.makedirs(config.LOG_DIR, exist_ok=True)
    log_path = os.path.abspath(os.path.join(config.LOG_DIR, 'replay_use.log'))
    file_handler = RotatingFileHandler(log_path, maxBytes=5 * 1024 * 1024, backupCount=3)
    file_handler.setFormatter(logging.Formatter('%(asctime)s [%(levelname)s] [%(name)s] %(message)s'))
    file_handler.setLevel(logging.INFO)

    root_logger = logging.getLogger()
    if not any(isinstance(f, SessionIdFilter) for f in root_logger.filters):
        root_logger.addFilter(SessionIdFilter())

    broadcast_handler = LogBroadcastHandler(level=logging.INFO)

    attached = {}
    for name in ['replay_use', 'backend']:
        ns_logger = logging.getLogger(name)
        ns_logger.setLevel(config.LOG_LEVEL.upper())
        if not any(getattr(h, 'baseFilename', '') == log_path for h in ns_logger.handlers):
            ns_logger.addHandler(file_handler)
        if not any(isinstance(h, LogBroadcastHandler) for h in ns_logger.handlers):
            ns_logger.addHandler(broadcast_handler)
        attached[name] = [type(h).__name__ for h in ns_logger.handlers]

    logger.info(f"Log setup complete. Handlers per logger={attached}")


try:
    setup_logging()
except OSError as _e:
    logger.warning(f"Log setup failed: {type(_e).__name__}: {_e}")


@app.get("/health")
async def health_check():
    service = get_service()
    return {
        "status": "healthy",
        "service": "replay-use",
        "version": __version__,
        "sessions": service.sessions.get_stats()["activeSessions"],
        "activeRecordings": len(service.recorders),
        "activePlaybacks": sum(1 for p in service.players.values() if p.is_active()),
        "websocket": websocket_manager.get_all_stats()["websocket_stats"],
    }


# Include routers
app.include_router(session_router)
app.include_router(recording_router)
app.include_router(broadcast_router)
app.include_router(logs_router)

# Optional standalone runner
if __name__ == '__main__':
    uvicorn.run('backend.api:app', host=config.SERVER_HOST, port=config.SERVER_PORT, log_level=config.LOG_LEVEL)
