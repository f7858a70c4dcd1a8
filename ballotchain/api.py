"""
BallotChain v1.0 - REST API.

FastAPI server exposing the election ledger.
Main entry point for initialization and routing.
"""

import logging
import time
from collections import deque
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ballotchain import __version__, config
from ballotchain.chain.ledger import ElectionLedger
from ballotchain.exceptions import AdmissionError, LedgerNotReady, PersistenceUnavailable
from ballotchain.metrics import MetricsMiddleware, metrics
from ballotchain.routes import admin as admin_router
from ballotchain.routes import public as public_router
from ballotchain.storage import create_gateway

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the persistence gateway, then build and load the ledger."""
    # Read at runtime, not import time
    gateway = create_gateway(config.STORAGE_MODE, config.DB_PATH)
    logger.info("Starting lifespan with %r", gateway)

    # A gateway that cannot be established is fatal
    await gateway.connect()

    ledger = ElectionLedger(gateway)
    await ledger.load()

    app.state.gateway = gateway
    app.state.ledger = ledger

    try:
        yield
    finally:
        await gateway.close()
        app.state.ledger = None
        app.state.gateway = None


app = FastAPI(
    title="BallotChain - Election Ledger API",
    description="Hash-chained, proof-of-work sealed election ledger. "
    "One vote per registered voter, verifiable tallies.",
    version=__version__,
    lifespan=lifespan,
)


# ─── Middleware ──────────────────────────────────────────────────────


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window limiter per client address.

    Health and metrics probes are never limited. At most
    ``MAX_TRACKED_CLIENTS`` windows are kept; idle clients are dropped
    first, then the least recently seen.
    """

    MAX_TRACKED_CLIENTS = 10_000
    EXEMPT_PATHS = frozenset({"/health", "/metrics"})

    def __init__(self, app, limit: int = 300, window: int = 60):
        super().__init__(app)
        self.limit = limit
        self.window = window
        self.hits: dict[str, deque[float]] = {}

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        now = time.monotonic()
        hits = self.hits.setdefault(client, deque())
        while hits and now - hits[0] >= self.window:
            hits.popleft()

        if len(hits) >= self.limit:
            retry_after = max(1, int(self.window - (now - hits[0])))
            logger.warning("Rate limit exceeded for %s on %s", client, request.url.path)
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Please slow down."},
                headers={"Retry-After": str(retry_after)},
            )

        hits.append(now)
        if len(self.hits) > self.MAX_TRACKED_CLIENTS:
            self._prune(now)

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(self.limit - len(hits))
        return response

    def _prune(self, now: float) -> None:
        for client in [c for c, h in self.hits.items() if not h or now - h[-1] >= self.window]:
            del self.hits[client]
        overflow = len(self.hits) - self.MAX_TRACKED_CLIENTS
        if overflow > 0:
            by_last_seen = sorted(self.hits, key=lambda c: self.hits[c][-1])
            for client in by_last_seen[:overflow]:
                del self.hits[client]


app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)
app.add_middleware(RateLimitMiddleware, limit=config.RATE_LIMIT, window=config.RATE_WINDOW)
app.add_middleware(MetricsMiddleware)


# ─── Exception Handlers ──────────────────────────────────────────────


@app.exception_handler(AdmissionError)
async def admission_error_handler(request: Request, exc: AdmissionError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc), "kind": exc.kind})


@app.exception_handler(LedgerNotReady)
async def not_ready_handler(request: Request, exc: LedgerNotReady) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(PersistenceUnavailable)
async def persistence_error_handler(request: Request, exc: PersistenceUnavailable) -> JSONResponse:
    logger.error("Persistence error: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Ledger storage is unavailable. The request was not recorded."},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def universal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "An unexpected server error occurred."})


# ─── Routes ──────────────────────────────────────────────────────────


@app.get("/health", tags=["health"])
async def health_check(request: Request) -> dict:
    """Simple status check for load balancers."""
    ledger = getattr(request.app.state, "ledger", None)
    gateway = getattr(request.app.state, "gateway", None)
    return {
        "status": "healthy" if ledger is not None and ledger.is_loaded else "loading",
        "storage": bool(gateway and await gateway.health_check()),
        "height": ledger.chain_height if ledger is not None else 0,
        "version": __version__,
    }


@app.get("/metrics", tags=["health"])
async def get_metrics():
    """Expose Prometheus metrics."""
    return Response(content=metrics.to_prometheus(), media_type="text/plain")


app.include_router(public_router.router)
app.include_router(admin_router.router)
