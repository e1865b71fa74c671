"""Reading endpoints: summary and latest reviews."""

from fastapi import APIRouter

from rsywx.dependencies import LibraryServiceDep, RefreshDep
from rsywx.schemas.common import ApiResponse

router = APIRouter()


@router.get("/summary", response_model=ApiResponse, summary="Reading summary")
async def reading_summary(library: LibraryServiceDep, refresh: RefreshDep) -> ApiResponse:
    return ApiResponse.from_result(await library.get_reading_summary(refresh))


@router.get("/latest", response_model=ApiResponse, summary="Latest reviews")
@router.get("/latest/{count}", response_model=ApiResponse, include_in_schema=False)
async def latest_readings(
    library: LibraryServiceDep, refresh: RefreshDep, count: int = 1
) -> ApiResponse:
    return ApiResponse.from_result(await library.get_latest_readings(count, refresh))
