"""
NeighborHelp Backend: Caller Identity
======================================

What:  FastAPI dependency resolving the authenticated caller's account.
How:   The upstream authentication layer (API gateway / auth service)
       verifies the session and forwards the account email in the
       X-User-Email header. This dependency loads that account.
Who:   Every /api/messages route depends on get_current_user.

Only enabled, non-deleted accounts are accepted; anything else is a 401.
"""

import logging
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.exceptions import AuthenticationError
from app.models.user import User

logger = logging.getLogger(__name__)

USER_EMAIL_HEADER = "X-User-Email"


async def get_current_user(
    x_user_email: Optional[str] = Header(default=None, alias=USER_EMAIL_HEADER),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    if not x_user_email or not x_user_email.strip():
        raise AuthenticationError()

    email = x_user_email.strip().lower()
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        logger.info("Rejected request for unknown or inactive account")
        raise AuthenticationError(message="Account not found or disabled")

    return user
