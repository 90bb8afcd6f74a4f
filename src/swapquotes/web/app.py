"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from swapquotes.config import Settings, get_settings
from swapquotes.swaps.api import SwapsApiClient
from swapquotes.swaps.controller import SwapsConfig, SwapsController
from swapquotes.swaps.gas import GasEstimationGuard
from swapquotes.swaps.rpc import EthRpcClient

logger = logging.getLogger(__name__)


def build_controller(settings: Settings) -> SwapsController:
    """Wire a SwapsController to the configured remote services."""
    api = SwapsApiClient(
        base_url=settings.swaps_api_url,
        token_price_url=settings.token_price_api_url,
        quote_timeout=settings.quote_fetch_timeout_seconds,
        trade_api_timeout_ms=settings.trade_api_timeout_ms,
    )
    rpc = EthRpcClient(settings.eth_rpc_url, timeout=settings.rpc_timeout_seconds)
    gas_guard = GasEstimationGuard(
        rpc,
        swaps_contract_address=settings.swaps_contract_address,
        timeout=settings.gas_estimate_timeout_seconds,
        max_gas_limit=settings.max_gas_limit,
    )
    return SwapsController(api, gas_guard, rpc=rpc, config=SwapsConfig.from_settings(settings))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    controller: SwapsController = app.state.controller
    # Startup
    live = await controller.check_swaps_liveness()
    logger.info(f"Swaps service live: {live}")
    yield
    # Shutdown
    await controller.aclose()
    if app.state.owns_clients:
        await controller.api.aclose()
        await controller.rpc.aclose()


def create_app(controller: Optional[SwapsController] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="swapquotes API",
        description="Swap quote aggregation and ranking",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.owns_clients = controller is None
    app.state.controller = controller or build_controller(settings)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routes
    from swapquotes.web.controllers import health_router, swaps_router

    app.include_router(health_router, tags=["Health"])
    app.include_router(swaps_router, prefix="/api/v1")

    return app
