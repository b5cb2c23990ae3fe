"""Main API router aggregating all module routers."""

from fastapi import APIRouter

from school_results.api.v1.endpoints import marks

api_router = APIRouter()

# Exam marks and result publication
api_router.include_router(
    marks.router,
    prefix="/marks",
    tags=["Marks"],
)
