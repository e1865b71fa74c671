"""Daily picks: quote of the day and word of the day."""

from fastapi import APIRouter

from rsywx.dependencies import LibraryServiceDep, RefreshDep
from rsywx.schemas.common import ApiResponse, ErrorResponse

router = APIRouter()

EMPTY_TABLE = {404: {"model": ErrorResponse, "description": "Nothing to pick from"}}


@router.get("/qotd", response_model=ApiResponse, summary="Quote of the day", responses=EMPTY_TABLE)
async def quote_of_the_day(library: LibraryServiceDep, refresh: RefreshDep) -> ApiResponse:
    return ApiResponse.from_result(await library.get_quote_of_the_day(refresh))


@router.get("/wotd", response_model=ApiResponse, summary="Word of the day", responses=EMPTY_TABLE)
async def word_of_the_day(library: LibraryServiceDep, refresh: RefreshDep) -> ApiResponse:
    return ApiResponse.from_result(await library.get_word_of_the_day(refresh))
