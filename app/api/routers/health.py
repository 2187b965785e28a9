from __future__ import annotations

import os
from fastapi import APIRouter, Depends

from .rotation import get_session_store
from ...services.rotation_session import SessionStore


router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthcheck(store: SessionStore = Depends(get_session_store)):
    return {
        "status": "ok",
        "service": "credential-rotator",
        "version": os.getenv("APP_VERSION", "dev"),
        "activeSessions": len(store),
    }
