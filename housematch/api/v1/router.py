from fastapi import APIRouter

from housematch.api.v1.matches import router as matches_router
from housematch.api.v1.preferences import router as preferences_router

api_router = APIRouter()

api_router.include_router(matches_router)
api_router.include_router(preferences_router)
