"""API v1 main router.

Aggregates all v1 API routers into a single router for inclusion in the app.
Every route under it requires the API key.
"""

from fastapi import APIRouter, Depends

from rsywx.api.v1.books import router as books_router
from rsywx.api.v1.misc import router as misc_router
from rsywx.api.v1.readings import router as readings_router
from rsywx.dependencies import require_api_key

router = APIRouter(dependencies=[Depends(require_api_key)])

# Include sub-routers
router.include_router(books_router, prefix="/books", tags=["Books"])
router.include_router(readings_router, prefix="/readings", tags=["Readings"])
router.include_router(misc_router, prefix="/misc", tags=["Misc"])
