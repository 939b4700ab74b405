from fastapi import APIRouter

from . import keys, providers

api_v1 = APIRouter(prefix="/api/v1")

api_v1.include_router(keys.router)
api_v1.include_router(providers.router)
