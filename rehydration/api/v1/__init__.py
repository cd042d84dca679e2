"""API v1 router."""

from fastapi import APIRouter

from rehydration.api.v1.expirations import router as expirations_router
from rehydration.api.v1.rehydrations import router as rehydrations_router

router = APIRouter()

router.include_router(rehydrations_router, prefix="/rehydrations", tags=["rehydrations"])
router.include_router(expirations_router, prefix="/expirations", tags=["expirations"])
