"""V1 API router aggregation."""

from fastapi import APIRouter

from studypack.api.v1.study_packs import router as study_packs_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(study_packs_router)
