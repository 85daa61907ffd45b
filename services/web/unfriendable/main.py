"""
Unfriendable web service: entry point.

Backend-for-frontend over the BaaS: every page of the client is a router
returning view-model JSON, plus WebSocket live views for realtime
reconciliation.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP), when enabled
  2. Open the shared BaaS HTTP client
  3. Connect the session store (Redis, or in-memory when REDIS_URL is unset)
  4. Expose Prometheus /metrics endpoint
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from unfriendable.clients.baas import baas_client
from unfriendable.clients.errors import BackendError
from unfriendable.config import settings
from unfriendable.dependencies import close_session_store, init_session_store
from unfriendable.routers import auth, dev, home, live, profile, search
from unfriendable.telemetry import instrument_app, setup_tracing

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of all external connections."""
    logger.info("Starting Unfriendable web service (env=%s)", settings.environment)

    await baas_client.start()
    await init_session_store()

    logger.info("All services connected. API ready.")
    yield

    logger.info("Shutting down...")
    await baas_client.stop()
    await close_session_store()


async def backend_error_handler(request: Request, exc: BackendError) -> JSONResponse:
    """BaaS failures surface as transient notifications; nothing is retried."""
    status_code = exc.status_code if exc.status_code and 400 <= exc.status_code < 500 else 502
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


def create_app() -> FastAPI:
    app = FastAPI(
        title="Unfriendable",
        description=(
            "Social client over a backend-as-a-service: friends, best friends, "
            "follows, hidden users and the happenings feed."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(BackendError, backend_error_handler)

    # ── Routers ────────────────────────────────────────────────────────────
    app.include_router(auth.router, prefix="/auth", tags=["Auth"])
    app.include_router(home.router, prefix="/home", tags=["Home"])
    app.include_router(profile.router, prefix="/profile", tags=["Profile"])
    app.include_router(search.router, prefix="/search", tags=["Search"])
    app.include_router(dev.router, prefix="/dev", tags=["Dev"])
    app.include_router(live.router, prefix="/live", tags=["Live"])

    # ── Prometheus metrics endpoint ────────────────────────────────────────
    app.mount("/metrics", make_asgi_app())

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok", "service": settings.service_name}

    # ── OTel FastAPI instrumentation ───────────────────────────────────────
    if settings.otel_enabled:
        instrument_app(app)

    return app


# Set up tracing before the app is created so all clients are instrumented
if settings.otel_enabled:
    setup_tracing()

app = create_app()
