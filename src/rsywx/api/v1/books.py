"""Book endpoints.

Thin wrappers over BookService: parse path/query parameters, call one
service method, wrap the result in the success envelope. Fixed paths are
declared before ``/{bookid}`` so they are never read as a book id.
"""

from fastapi import APIRouter

from rsywx.core.logging import get_logger
from rsywx.dependencies import BookServiceDep, LibraryServiceDep, RefreshDep
from rsywx.schemas.common import ApiResponse, ErrorResponse, TagSubmission

logger = get_logger(__name__)

router = APIRouter()

NOT_FOUND = {404: {"model": ErrorResponse, "description": "Book not found"}}
BAD_REQUEST = {400: {"model": ErrorResponse, "description": "Invalid request"}}


# =============================================================================
# Collection
# =============================================================================


@router.get("/status", response_model=ApiResponse, summary="Collection status")
async def collection_status(
    library: LibraryServiceDep, refresh: RefreshDep
) -> ApiResponse:
    """Totals of shelved books, pages, kwords and visits."""
    return ApiResponse.from_result(await library.get_collection_status(refresh))


# =============================================================================
# Count-style lists
# =============================================================================


@router.get("/latest", response_model=ApiResponse, summary="Latest purchases")
@router.get("/latest/{count}", response_model=ApiResponse, include_in_schema=False)
async def latest_books(
    service: BookServiceDep, refresh: RefreshDep, count: int = 1
) -> ApiResponse:
    return ApiResponse.from_result(await service.get_latest(count, refresh))


@router.get("/random", response_model=ApiResponse, summary="Random books")
@router.get("/random/{count}", response_model=ApiResponse, include_in_schema=False)
async def random_books(
    service: BookServiceDep, refresh: RefreshDep, count: int = 1
) -> ApiResponse:
    return ApiResponse.from_result(await service.get_random(count, refresh))


@router.get("/last_visited", response_model=ApiResponse, summary="Recently viewed")
@router.get("/last_visited/{count}", response_model=ApiResponse, include_in_schema=False)
async def last_visited_books(
    service: BookServiceDep, refresh: RefreshDep, count: int = 1
) -> ApiResponse:
    return ApiResponse.from_result(await service.get_last_visited(count, refresh))


@router.get("/forgotten", response_model=ApiResponse, summary="Longest unvisited")
@router.get("/forgotten/{count}", response_model=ApiResponse, include_in_schema=False)
async def forgotten_books(
    service: BookServiceDep, refresh: RefreshDep, count: int = 1
) -> ApiResponse:
    return ApiResponse.from_result(await service.get_forgotten(count, refresh))


# =============================================================================
# Today in history / visit history
# =============================================================================


@router.get(
    "/today",
    response_model=ApiResponse,
    summary="Bought on this day in earlier years",
    responses=BAD_REQUEST,
)
@router.get("/today/{month}/{day}", response_model=ApiResponse, include_in_schema=False)
async def todays_books(
    service: BookServiceDep,
    refresh: RefreshDep,
    month: int | None = None,
    day: int | None = None,
) -> ApiResponse:
    return ApiResponse.from_result(await service.get_today(month, day, refresh))


@router.get("/visit_history", response_model=ApiResponse, summary="Visits per day")
async def visit_history(
    service: BookServiceDep, refresh: RefreshDep, days: int = 30
) -> ApiResponse:
    return ApiResponse.from_result(await service.get_visit_history(days, refresh))


# =============================================================================
# List / search
# =============================================================================


@router.get(
    "/list",
    response_model=ApiResponse,
    summary="List or search books",
    responses=BAD_REQUEST,
)
@router.get("/list/{page}", response_model=ApiResponse, include_in_schema=False)
@router.get(
    "/list/{search_type}/{value}/{page}",
    response_model=ApiResponse,
    include_in_schema=False,
)
async def list_books(
    service: BookServiceDep,
    refresh: RefreshDep,
    search_type: str = "title",
    value: str = "-",
    page: int = 1,
    per_page: int = 20,
) -> ApiResponse:
    """Search by author, title, tags, misc (title or author) or id.

    A value of "-" matches every book.
    """
    result = await service.list_books(search_type, value, page, per_page, refresh)
    return ApiResponse.from_result(result)


# =============================================================================
# Per-book
# =============================================================================


@router.get(
    "/{bookid}/related",
    response_model=ApiResponse,
    summary="Related books",
    responses=NOT_FOUND,
)
@router.get("/{bookid}/related/{count}", response_model=ApiResponse, include_in_schema=False)
async def related_books(
    bookid: str, service: BookServiceDep, refresh: RefreshDep, count: int = 5
) -> ApiResponse:
    return ApiResponse.from_result(await service.get_related(bookid, count, refresh))


@router.post(
    "/{bookid}/tags",
    response_model=ApiResponse,
    summary="Add tags to a book",
    responses={**NOT_FOUND, **BAD_REQUEST},
)
async def add_tags(
    bookid: str, submission: TagSubmission, service: BookServiceDep
) -> ApiResponse:
    result = await service.add_tags(bookid, submission.tags)
    logger.info(
        "tags_submitted",
        bookid=bookid,
        added=len(result["added"]),
        duplicates=len(result["duplicates"]),
    )
    return ApiResponse(data=result, cached=False)


@router.get(
    "/{bookid}",
    response_model=ApiResponse,
    summary="Book detail",
    responses=NOT_FOUND,
)
async def book_detail(
    bookid: str, service: BookServiceDep, refresh: RefreshDep
) -> ApiResponse:
    """Full record with tags, reviews and live visit statistics."""
    return ApiResponse.from_result(await service.get_book_detail(bookid, refresh))
