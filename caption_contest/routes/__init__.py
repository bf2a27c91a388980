"""API routes."""

from fastapi import APIRouter

from caption_contest.routes import admin, captions, session

api_router = APIRouter()

# Session context (username, contest image)
api_router.include_router(session.router, prefix="/api", tags=["session"])

# Captions and votes
api_router.include_router(captions.router, prefix="/api/captions", tags=["captions"])

# Admin endpoints (contest lifecycle)
api_router.include_router(admin.router, prefix="/api/admin", tags=["admin"])
