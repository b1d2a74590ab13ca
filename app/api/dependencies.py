from typing import Optional
from fastapi import Depends, HTTPException, status, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from app.core.database import get_async_session
from app.core.request_context import HDR_ACTOR_ID
from app.models.auth.user import User
import logging

logger = logging.getLogger(__name__)

async def get_current_actor_id(
    request: Request,
    session: AsyncSession = Depends(get_async_session)
) -> Optional[int]:
    """Resolve the acting user from the X-Actor-Id header; anonymous when absent"""
    raw_actor_id = request.headers.get(HDR_ACTOR_ID)
    if raw_actor_id is None or raw_actor_id == "":
        return None

    try:
        actor_id = int(raw_actor_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{HDR_ACTOR_ID} must be an integer user id",
        )

    result = await session.execute(select(User).where(User.id == actor_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        logger.warning(f"🚫 Rejected unknown or inactive actor {actor_id} on {request.method} {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Actor not found or inactive",
        )

    request.state.actor_id = actor_id
    return actor_id

async def require_actor_id(
    actor_id: Optional[int] = Depends(get_current_actor_id)
) -> int:
    """Same as get_current_actor_id but the header is mandatory"""
    if actor_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"{HDR_ACTOR_ID} header is required",
        )
    return actor_id
