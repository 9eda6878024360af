"""HomePair Server - FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from homepair.config import settings
from homepair.database import engine, init_db
from homepair.errors import AuthenticationError, HomePairError, ValidationError
from homepair.services.container import build_services

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("homepair")

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the database and services, and run the expiry sweeper."""
    init_db()
    services = build_services(engine, settings)
    app.state.services = services
    services.sweeper.start()
    logger.info("%s started", settings.server_name)

    yield

    await services.sweeper.stop()
    await services.registry.aclose()
    logger.info("%s stopped", settings.server_name)


app = FastAPI(
    title="HomePair",
    description="Device pairing, client tokens and live notifications for a home-automation backend",
    version=VERSION,
    lifespan=lifespan,
)

# CORS - allow all origins for local network usage
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HomePairError)
async def homepair_error_handler(request: Request, exc: HomePairError):
    body = {"error": exc.code, "message": exc.message}
    if isinstance(exc, ValidationError) and exc.field:
        body["field"] = exc.field
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = [str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path")]
    body = {"error": ValidationError.code, "message": first.get("msg", "Invalid request")}
    if loc:
        body["field"] = ".".join(loc)
    return JSONResponse(status_code=ValidationError.status_code, content=body)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "message": "Internal server error"},
    )


# --- Register API routers ---
from homepair.api.areas import router as areas_router  # noqa: E402
from homepair.api.auth import router as auth_router  # noqa: E402
from homepair.api.client_tokens import router as client_tokens_router  # noqa: E402
from homepair.api.clients import router as clients_router  # noqa: E402
from homepair.api.pairing import router as pairing_router  # noqa: E402

API_PREFIX = "/api/v1"

app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(pairing_router, prefix=API_PREFIX)
app.include_router(client_tokens_router, prefix=API_PREFIX)
app.include_router(clients_router, prefix=API_PREFIX)
app.include_router(areas_router, prefix=API_PREFIX)


# --- WebSocket endpoint ---
from homepair.ws.notify import websocket_notify  # noqa: E402


@app.websocket("/ws")
async def ws_endpoint(ws: WebSocket, token: str = Query(default="")):
    await websocket_notify(ws, token or None)


@app.get("/")
def root():
    """Health check / server info."""
    return {
        "name": settings.server_name,
        "version": VERSION,
        "status": "running",
    }


@app.get("/api/v1/health")
def health(request: Request):
    registry = request.app.state.services.registry
    return {
        "status": "ok",
        "connected_clients": registry.connected_count,
        "admin_connections": registry.admin_count,
    }


def run():
    import uvicorn

    uvicorn.run("homepair.main:app", host=settings.host, port=settings.port, reload=settings.debug)


if __name__ == "__main__":
    run()
