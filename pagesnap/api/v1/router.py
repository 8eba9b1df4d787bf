from fastapi import APIRouter

from pagesnap.api.v1 import screenshot

api_router = APIRouter(prefix="/v1")

api_router.include_router(screenshot.router, prefix="/screenshot", tags=["Screenshot"])
