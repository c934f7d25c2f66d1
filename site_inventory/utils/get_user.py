import logging

from fastapi import Depends, HTTPException, Header, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from site_inventory.core.db import get_db
from site_inventory.core.security import decode_access_token
from site_inventory.models.users.user_models import User

logger = logging.getLogger("auth.guard")


async def get_current_user(
    authorization: str = Header(...),
    db: AsyncSession = Depends(get_db),
) -> User:
    if not authorization.startswith("Bearer "):
        logger.warning("Missing bearer token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header",
        )

    token = authorization.split("Bearer ")[1].strip()
    payload = decode_access_token(token)

    username = payload.get("sub")
    token_version = payload.get("token_version", 0)

    user = await db.scalar(
        select(User).where(User.username == username)
    )

    if not user:
        logger.warning("Token user not found: %s", username)
        raise HTTPException(status_code=401, detail="User not found")

    if not user.is_active:
        logger.warning("Inactive user access blocked: %s", user.id)
        raise HTTPException(status_code=403, detail="User account is inactive")

    if user.token_version != token_version:
        logger.warning("Token version mismatch for user %s", user.id)
        raise HTTPException(status_code=401, detail="Session expired")

    return user
