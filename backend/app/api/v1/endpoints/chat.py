import logging

from fastapi import APIRouter, Depends, Request

from app.models.schemas import ChatRequest, ChatResponse
from app.services.chat import ChatService

router = APIRouter()
logger = logging.getLogger(__name__)


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


@router.post("", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    chat_service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    """Answer a mobility question, with route data when a location is given"""

    logger.info(
        f"Chat message: {(request.message or '')[:50]!r} "
        f"(location: {'yes' if request.location else 'no'})"
    )
    return await chat_service.handle(request.message, request.location)
