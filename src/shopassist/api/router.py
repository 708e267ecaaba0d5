from fastapi import APIRouter

from shopassist.api.endpoints import assistant, search

api_router = APIRouter()

api_router.include_router(assistant.router)
api_router.include_router(search.router)
