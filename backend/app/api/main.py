from fastapi import APIRouter

from app.api.routes import export, generate, render, utils

api_router = APIRouter()
api_router.include_router(utils.router, tags=["utils"])
api_router.include_router(generate.router, prefix="/ai", tags=["generate"])
api_router.include_router(render.router, prefix="/mermaid", tags=["render"])
api_router.include_router(export.router, prefix="/pdf", tags=["export"])
