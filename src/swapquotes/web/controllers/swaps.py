"""Quote session API endpoints."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request

from swapquotes.swaps.controller import SwapsController
from swapquotes.swaps.errors import SwapsException, SwapsOfflineError
from swapquotes.utils.locks import LockTimeoutError
from swapquotes.web.contracts.quotes import (
    AggregatorListResponse,
    SessionResponse,
    StartQuotesRequest,
    TokenListResponse,
    TokenPriceResponse,
)

router = APIRouter(prefix="/swaps", tags=["swaps"])


def get_controller(request: Request) -> SwapsController:
    """The application's single quote session owner."""
    return request.app.state.controller


@router.post("/quotes", response_model=SessionResponse)
async def start_quotes(
    body: StartQuotesRequest,
    controller: SwapsController = Depends(get_controller),
) -> SessionResponse:
    """Start polling for quotes.

    The first cycle runs in the background; poll GET /quotes for results.
    """
    try:
        request = body.to_fetch_request()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    controller.start_fetch_and_set_quotes(
        request, body.to_fetch_metadata(), custom_gas_price=body.custom_gas_price
    )
    state = controller.snapshot()
    return SessionResponse.from_state(state, success=state.error_kind is None)


@router.delete("/quotes", response_model=SessionResponse)
async def stop_quotes(controller: SwapsController = Depends(get_controller)) -> SessionResponse:
    """Stop polling and reset the session."""
    controller.stop_polling_and_reset_state()
    return SessionResponse.from_state(controller.snapshot())


@router.post("/quotes/refetch", response_model=SessionResponse)
async def refetch_quotes(controller: SwapsController = Depends(get_controller)) -> SessionResponse:
    """Fetch quotes now unless a scheduled cycle is already pending."""
    task = controller.safe_refetch_quotes()
    return SessionResponse.from_state(controller.snapshot(), success=task is not None)


@router.get("/quotes", response_model=SessionResponse)
async def get_quotes(controller: SwapsController = Depends(get_controller)) -> SessionResponse:
    return SessionResponse.from_state(controller.snapshot())


@router.post("/quotes/swap-failed", response_model=SessionResponse)
async def swap_failed(controller: SwapsController = Depends(get_controller)) -> SessionResponse:
    """Report that the accepted swap failed."""
    controller.report_swap_failed()
    return SessionResponse.from_state(controller.snapshot())


@router.get("/tokens", response_model=TokenListResponse)
async def get_tokens(controller: SwapsController = Depends(get_controller)) -> TokenListResponse:
    """Supported tokens, refreshed at most once a day."""
    try:
        tokens = await controller.fetch_token_with_cache()
    except LockTimeoutError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except SwapsOfflineError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except SwapsException as e:
        raise HTTPException(status_code=502, detail=str(e))

    return TokenListResponse(tokens=[t.to_dict() for t in tokens], total=len(tokens))


@router.get("/aggregators", response_model=AggregatorListResponse)
async def get_aggregators(
    controller: SwapsController = Depends(get_controller),
) -> AggregatorListResponse:
    try:
        metadata = await controller.fetch_aggregator_metadata_with_cache()
    except LockTimeoutError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except SwapsOfflineError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except SwapsException as e:
        raise HTTPException(status_code=502, detail=str(e))

    return AggregatorListResponse(
        aggregators={agg: asdict(meta) for agg, meta in metadata.items()}
    )


@router.get("/tokens/{address}/price", response_model=TokenPriceResponse)
async def get_token_price(
    address: str,
    controller: SwapsController = Depends(get_controller),
) -> TokenPriceResponse:
    """Display price of a token in ETH. Not used to rank quotes."""
    price = await controller.fetch_token_price_for_display(address)
    return TokenPriceResponse(success=price is not None, address=address.lower(), price_eth=price)
