from apis.v1 import data, health, integrations, plaid
from fastapi import APIRouter

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(integrations.router)
api_router.include_router(plaid.router)
api_router.include_router(data.router)
