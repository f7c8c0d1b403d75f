from fastapi import APIRouter

from app.api.v1.api_keys import router as api_keys_router
from app.api.v1.quotes import router as quotes_router
from app.api.v1.security import router as security_router

api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(quotes_router)
api_v1_router.include_router(security_router)
api_v1_router.include_router(api_keys_router)
