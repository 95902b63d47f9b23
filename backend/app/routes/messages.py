"""
NeighborHelp Backend: Message Route Handlers
=============================================

What:  HTTP surface of the message delivery service under /api/messages.
How:   Resolves the caller, delegates to MessageService, shapes the HTTP
       response (status code, X-Total-Count header).
Who:   Called by the NeighborHelp web client.

Route order matters: the fixed paths (/inbox, /sent, /unread, /users)
are declared before /{message_id}.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db_session
from app.identity import get_current_user
from app.models.user import User
from app.schemas.message import (
    ErrorResponse,
    MessageListResponse,
    MessageResponse,
    MessageUserResponse,
    SendMessageRequest,
    UnreadCountResponse,
)
from app.services.message_service import MessageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/messages", tags=["Messages"])

_ERRORS = {
    401: {"description": "Caller not authenticated", "model": ErrorResponse},
    500: {"description": "Server error", "model": ErrorResponse},
}


def get_message_service(request: Request) -> MessageService:
    """The service is built once in the lifespan and kept on app.state."""
    return request.app.state.message_service


def _page_params(
    page: int = Query(default=0, ge=0, description="Zero-based page index"),
    size: int = Query(
        default=20, ge=1, le=settings.message_page_size_max, description="Items per page"
    ),
) -> tuple:
    return page, size


@router.post(
    "",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid recipient or resource", "model": ErrorResponse},
        **_ERRORS,
    },
    summary="Send a message",
)
async def send_message(
    body: SendMessageRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    service: MessageService = Depends(get_message_service),
) -> MessageResponse:
    """
    Store an encrypted message and email the recipient.

    The response is 201 even when the notification email could not be sent.
    """
    return await service.send(db=db, request=body, sender=user)


@router.get("/inbox", response_model=MessageListResponse, responses=_ERRORS, summary="Received messages")
async def list_inbox(
    response: Response,
    paging: tuple = Depends(_page_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    service: MessageService = Depends(get_message_service),
) -> MessageListResponse:
    page, size = paging
    result = await service.list_inbox(db=db, user=user, page=page, size=size)
    response.headers["X-Total-Count"] = str(result.total_count)
    return result


@router.get("/sent", response_model=MessageListResponse, responses=_ERRORS, summary="Sent messages")
async def list_sent(
    response: Response,
    paging: tuple = Depends(_page_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    service: MessageService = Depends(get_message_service),
) -> MessageListResponse:
    page, size = paging
    result = await service.list_sent(db=db, user=user, page=page, size=size)
    response.headers["X-Total-Count"] = str(result.total_count)
    return result


@router.get("/unread", response_model=MessageListResponse, responses=_ERRORS, summary="Unread messages")
async def list_unread(
    response: Response,
    paging: tuple = Depends(_page_params),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    service: MessageService = Depends(get_message_service),
) -> MessageListResponse:
    page, size = paging
    result = await service.list_unread(db=db, user=user, page=page, size=size)
    response.headers["X-Total-Count"] = str(result.total_count)
    return result


@router.get(
    "/unread/count",
    response_model=UnreadCountResponse,
    responses=_ERRORS,
    summary="Number of unread messages",
)
async def unread_count(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    service: MessageService = Depends(get_message_service),
) -> UnreadCountResponse:
    count = await service.unread_count(db=db, user=user)
    return UnreadCountResponse(count=count)


@router.get(
    "/users",
    response_model=List[MessageUserResponse],
    responses=_ERRORS,
    summary="Accounts the caller can message",
)
async def list_available_recipients(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    service: MessageService = Depends(get_message_service),
) -> List[MessageUserResponse]:
    return await service.list_available_recipients(db=db, user=user)


@router.get(
    "/{message_id}",
    response_model=MessageResponse,
    responses={
        403: {"description": "Not a party to this message", "model": ErrorResponse},
        404: {"description": "Message not found", "model": ErrorResponse},
        **_ERRORS,
    },
    summary="Get a single message",
)
async def get_message(
    message_id: int,
    response: Response,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    service: MessageService = Depends(get_message_service),
) -> MessageResponse:
    result = await service.get_message(db=db, message_id=message_id, reader=user)
    # Per-user content: never cached by shared caches
    response.headers["Cache-Control"] = "private, no-store"
    return result


@router.patch(
    "/{message_id}/read",
    response_model=MessageResponse,
    responses={
        403: {"description": "Only the recipient can mark a message read", "model": ErrorResponse},
        404: {"description": "Message not found", "model": ErrorResponse},
        **_ERRORS,
    },
    summary="Mark a message as read",
)
async def mark_as_read(
    message_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    service: MessageService = Depends(get_message_service),
) -> MessageResponse:
    return await service.mark_as_read(db=db, message_id=message_id, reader=user)


@router.delete(
    "/{message_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        403: {"description": "Not a party to this message", "model": ErrorResponse},
        404: {"description": "Message not found", "model": ErrorResponse},
        **_ERRORS,
    },
    summary="Delete a message for the caller",
)
async def delete_message(
    message_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    service: MessageService = Depends(get_message_service),
) -> Response:
    await service.delete(db=db, message_id=message_id, caller=user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
