"""Route quote endpoint: compare bridges for one transfer."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from app.aggregator.access import CallerContext
from app.aggregator.service import ServiceContainer
from app.core.dependencies import get_caller, get_container
from app.schemas.quote import QuoteQuery, QuoteResponse

router = APIRouter(prefix="/quotes", tags=["quotes"])


@router.get("", response_model=QuoteResponse)
async def get_quotes(
    query: Annotated[QuoteQuery, Query()],
    caller: CallerContext = Depends(get_caller),
    container: ServiceContainer = Depends(get_container),
):
    """Ranked routes across all providers plus per-provider errors.

    Anonymous callers are allowed at the conservative rate-limit tier.
    """
    result = await container.quotes.get_quotes(query.to_route_request(), caller)
    return result.to_dict()
