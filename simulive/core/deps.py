"""
Dependency Injection

FastAPI dependencies for routes.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from simulive.chat.ratelimit import SlidingWindowRateLimiter, get_rate_limiter
from simulive.infra.db import get_db
from simulive.realtime.broadcaster import Broadcaster, get_broadcaster

# Type aliases for common dependencies
SessionDep = Annotated[AsyncSession, Depends(get_db)]
BroadcasterDep = Annotated[Broadcaster, Depends(get_broadcaster)]
RateLimiterDep = Annotated[SlidingWindowRateLimiter, Depends(get_rate_limiter)]
