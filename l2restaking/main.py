import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .agent_runtime import get_runtime, register_builtin_strategies
from .api import ccip, delegation, execnonce, health, operators, transactions
from .api import runtime as runtime_api
from .config import settings
from .core.bridge.constants import verify_event_signatures
from .core.recovery.errors import UnrecoverableError
from .db.legacy import import_legacy_transactions
from .db.ledger import get_ledger
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware
from .providers.rpc import close_clients

logger = logging.getLogger(__name__)


def import_legacy_history(ledger, path: str) -> int:
    """Backfill from a legacy file; a malformed file is logged and skipped, never fatal."""
    try:
        return import_legacy_transactions(ledger, path)
    except UnrecoverableError as exc:
        logger.error("Legacy import from %s skipped: %s", path, exc.message)
        return 0


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level)

    # Refuse to serve if the hard-coded event topic drifted from its signature
    verify_event_signatures()

    ledger = get_ledger()
    if settings.legacy_transactions_path:
        import_legacy_history(ledger, settings.legacy_transactions_path)

    runtime = get_runtime()
    register_builtin_strategies()
    await runtime.ensure_started()
    logger.info("L2 restaking relay ready on %s:%s", settings.host, settings.port)

    try:
        yield
    finally:
        await runtime.stop()
        await close_clients()


# Create FastAPI app
app = FastAPI(
    title="L2 Restaking Relay",
    description="Signing, nonce and cross-chain transaction tracking for EigenAgent restaking",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(transactions.router, tags=["Transactions"])
app.include_router(execnonce.router, tags=["Nonces"])
app.include_router(delegation.router, tags=["Delegation"])
app.include_router(ccip.router, tags=["CCIP"])
app.include_router(operators.router, tags=["Operators"])
app.include_router(runtime_api.router, tags=["Runtime"])


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "L2 Restaking Relay",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/healthz",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "l2restaking.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
