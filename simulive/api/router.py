"""
API Router
"""

from fastapi import APIRouter, Depends

from simulive.api.auth import router as auth_router
from simulive.api.channels import router as channels_router
from simulive.api.chat import router as chat_router
from simulive.api.health import router as health_router
from simulive.api.sessions import router as sessions_router
from simulive.api.student import router as student_router
from simulive.core.config import settings
from simulive.core.token import security_scheme
from simulive.debug.api import router as debug_router

api_router = APIRouter()

# 1. Routes that DON'T need authentication (Public/Debug)
api_router.include_router(health_router)
api_router.include_router(auth_router)
if settings.debug:
    api_router.include_router(debug_router, prefix="/debug")

# 2. Routes that DO need authentication (Protected)
api_router.include_router(sessions_router, dependencies=[Depends(security_scheme)])
api_router.include_router(chat_router, dependencies=[Depends(security_scheme)])
api_router.include_router(student_router, dependencies=[Depends(security_scheme)])
api_router.include_router(channels_router, dependencies=[Depends(security_scheme)])
