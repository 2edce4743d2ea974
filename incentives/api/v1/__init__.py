"""
API v1 router initialization and setup.
"""
from fastapi import APIRouter
from .endpoints import campaigns, users, sales, progress, prizes, redemptions, ledger, ranking

api_router = APIRouter()

api_router.include_router(
    campaigns.router,
    prefix="/campaigns",
    tags=["campaigns"]
)

api_router.include_router(
    users.router,
    prefix="/users",
    tags=["users"]
)

api_router.include_router(
    sales.router,
    prefix="/sales",
    tags=["sales"]
)

api_router.include_router(
    progress.router,
    prefix="/progress",
    tags=["progress"]
)

api_router.include_router(
    prizes.router,
    prefix="/prizes",
    tags=["prizes"]
)

api_router.include_router(
    redemptions.router,
    prefix="/redemptions",
    tags=["redemptions"]
)

api_router.include_router(
    ledger.router,
    prefix="/ledger",
    tags=["ledger"]
)

api_router.include_router(
    ranking.router,
    prefix="/ranking",
    tags=["ranking"]
)
