"""Top-level API router aggregation."""

from fastapi import APIRouter

from . import panel, records

api_router = APIRouter(prefix="/api")

api_router.include_router(panel.router)
api_router.include_router(records.router)
