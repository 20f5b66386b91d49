from fastapi import APIRouter

from .routes import categories, health, jobs, markets

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(markets.router)
api_router.include_router(categories.router)
api_router.include_router(jobs.router)
