from fastapi import APIRouter
from app.api.v1.routes import experiments, users
from app.notifier import action_handler

api_router = APIRouter()

api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(experiments.router, prefix="/experiments", tags=["experiments"])
api_router.include_router(action_handler.router, prefix="/notifications", tags=["notifications"])
