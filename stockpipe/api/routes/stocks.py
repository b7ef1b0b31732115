"""Stock routes: security master updates, current quotes, holiday calendar."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query

from stockpipe.api.dependencies import get_stock_service
from stockpipe.core.exceptions import ValidationError
from stockpipe.schemas.common import MessageResponse
from stockpipe.schemas.stocks import (
    CurrentQuotesResponse,
    HolidayScheduleResponse,
    SecurityInfoUpdate,
    normalize_code,
    parse_codes,
)
from stockpipe.services.stock_service import StockService


router = APIRouter()

MAX_QUOTE_CODES = 500


@router.get(
    "/quotes",
    response_model=CurrentQuotesResponse,
    summary="Current quotes",
    description="Latest stored quote for each requested code; unknown codes are omitted.",
)
async def get_current_quotes(
    codes: str = Query(..., min_length=1, description="Comma separated security codes", examples=["2330,2317"]),
    service: StockService = Depends(get_stock_service),
) -> CurrentQuotesResponse:
    try:
        code_list = parse_codes(codes)
    except ValueError as e:
        raise ValidationError(message=str(e)) from e
    if len(code_list) > MAX_QUOTE_CODES:
        raise ValidationError(message=f"At most {MAX_QUOTE_CODES} codes per request")
    return CurrentQuotesResponse(items=await service.fetch_current_quotes(code_list))


@router.get(
    "/holidays/{year}",
    response_model=HolidayScheduleResponse,
    summary="Holiday schedule",
)
async def get_holiday_schedule(
    year: int = Path(..., ge=1900, le=2999),
    service: StockService = Depends(get_stock_service),
) -> HolidayScheduleResponse:
    return HolidayScheduleResponse(year=year, items=await service.fetch_holiday_schedule(year))


@router.put(
    "/{code}",
    response_model=MessageResponse,
    summary="Update security info",
    description="Create or overwrite the master data of one security.",
)
async def update_security_info(
    payload: SecurityInfoUpdate,
    code: str = Path(..., min_length=1, max_length=16),
    service: StockService = Depends(get_stock_service),
) -> MessageResponse:
    try:
        code = normalize_code(code)
    except ValueError as e:
        raise ValidationError(message=str(e)) from e
    outcome = await service.update_security_info(
        code=code,
        name=payload.name,
        market_id=payload.market_id,
        industry_id=payload.industry_id,
        book_value_per_share=payload.book_value_per_share,
        suspended=payload.suspended,
    )
    return MessageResponse(message=f"Security {code} {outcome.value}")
