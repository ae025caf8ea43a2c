"""REST API module for coin trades.

This module provides HTTP endpoints for:
- Initiating, listing and cancelling trades
- Proposing, accepting and rejecting offers
- Shipment and receipt confirmation
- Reporting trades and moderating reports
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from auth import IdentitySessionProvider, JWTSessionProvider
from catalog import MemoryCoinCatalog, PostgresCoinCatalog
from config import settings_conf
from database import init_db, close as db_close
from trades import PostgresTradeStore, TradeManager, create_store

# Configure logging
logging.basicConfig(
    level=settings_conf['log_level'],
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

async def build_manager(backend: str) -> TradeManager:
    """Create the trade manager for the configured store backend.

    Raises:
        ValueError: If the backend is unknown
    """
    store = create_store(backend)
    if not isinstance(store, PostgresTradeStore):
        return TradeManager(store, MemoryCoinCatalog())

    logger.info("Initializing database...")
    pool = await init_db()
    store.pool = pool
    return TradeManager(store, PostgresCoinCatalog(pool))

def create_app(
    manager: Optional[TradeManager] = None,
    identity_provider: Optional[IdentitySessionProvider] = None
) -> FastAPI:
    """Create the API application.

    Args:
        manager: Trade manager to serve. If not provided, one is built on
                 startup from the store_backend setting.
        identity_provider: Resolves bearer tokens. Defaults to JWTSessionProvider.

    Returns:
        The FastAPI application
    """

    # Lifecycle management
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle startup and shutdown events."""
        # Startup
        logger.info("Initializing API...")
        owns_manager = app.state.trade_manager is None
        if owns_manager:
            app.state.trade_manager = await build_manager(settings_conf['store_backend'])

        yield

        # Shutdown
        logger.info("Shutting down API...")
        if owns_manager:
            await app.state.trade_manager.close()
            app.state.trade_manager = None
            if settings_conf['store_backend'] == 'postgres':
                logger.info("Closing database connections...")
                await db_close()

    app = FastAPI(
        title="Coin Trade API",
        description="REST API for peer-to-peer coin barter trades",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.trade_manager = manager
    app.state.identity_provider = identity_provider or JWTSessionProvider()

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, replace with specific origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["System"])
    async def health():
        """Liveness check."""
        return {"status": "ok"}

    # Import and include all routers
    from .trades import router as trades_router
    from .reports import router as reports_router

    app.include_router(trades_router)
    app.include_router(reports_router)

    return app

app = create_app()
