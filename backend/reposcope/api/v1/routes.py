from fastapi import APIRouter

from reposcope.api.v1.analysis import router as analysis_router
from reposcope.api.v1.auth import router as auth_router
from reposcope.api.v1.repositories import router as repositories_router
from reposcope.api.v1.suggestions import router as suggestions_router
from reposcope.api.v1.unification import router as unification_router

api_router = APIRouter()
api_router.include_router(auth_router)
api_router.include_router(repositories_router)
api_router.include_router(analysis_router)
api_router.include_router(suggestions_router)
api_router.include_router(unification_router)
