"""Main FastAPI application."""
from fastapi import FastAPI

from wod_sync_api.api.routes import router

app = FastAPI(title="WOD Sync API")

app.include_router(router)
