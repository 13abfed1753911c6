"""
Chat Routes - Conversations and messages for the authenticated user.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from chatapp.api.dependencies import get_chat_service, get_current_user
from chatapp.db.models import Conversation, Message, User
from chatapp.models.api import (
    ConversationDeletedResponse,
    ConversationListResponse,
    ConversationResponse,
    ConversationSummary,
    CreateConversationRequest,
    ErrorResponse,
    MessageItem,
    MessageListResponse,
    MessageMetadataModel,
    MessagePagination,
    MessageRole,
    SendMessageRequest,
    SendMessageResponse,
    UpdateConversationRequest,
)
from chatapp.models.domain import ConversationSettings
from chatapp.services.chat import ChatService

router = APIRouter(
    prefix="/api/chat",
    tags=["chat"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)


def conversation_to_summary(conversation: Conversation) -> ConversationSummary:
    """Convert ORM conversation to its listing shape."""
    return ConversationSummary(
        id=conversation.id,
        title=conversation.title,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
        message_count=conversation.message_count,
        last_message_at=conversation.last_message_at,
    )


def message_to_item(message: Message) -> MessageItem:
    """Convert ORM message to its API shape; user turns carry no generation metadata."""
    metadata = None
    if message.role == MessageRole.ASSISTANT.value:
        metadata = MessageMetadataModel(
            tokens=message.tokens,
            model=message.model,
            temperature=message.temperature,
            processing_time=message.processing_time_ms,
        )
    return MessageItem(
        id=message.id,
        content=message.content,
        role=MessageRole(message.role),
        created_at=message.created_at,
        is_edited=message.is_edited,
        edited_at=message.edited_at,
        metadata=metadata,
    )


@router.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
    user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> ConversationListResponse:
    """List the 50 most recently updated active conversations."""
    conversations = await service.list_conversations(user.id)
    return ConversationListResponse(
        conversations=[conversation_to_summary(c) for c in conversations]
    )


@router.post(
    "/conversations",
    response_model=ConversationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_conversation(
    request: CreateConversationRequest,
    user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> ConversationResponse:
    """Create a conversation, optionally with generation settings."""
    conversation_settings = None
    if request.settings is not None:
        conversation_settings = ConversationSettings(
            model=request.settings.model.value,
            temperature=request.settings.temperature,
            max_tokens=request.settings.max_tokens,
        )
    conversation = await service.create_conversation(user.id, request.title, conversation_settings)
    return ConversationResponse(
        message="Conversation created successfully",
        conversation=conversation_to_summary(conversation),
    )


@router.get("/conversations/{conversation_id}/messages", response_model=MessageListResponse)
async def list_messages(
    conversation_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> MessageListResponse:
    """Page through a conversation's turns in creation order."""
    messages, total = await service.list_messages(user.id, conversation_id, page, limit)
    return MessageListResponse(
        messages=[message_to_item(m) for m in messages],
        pagination=MessagePagination(page=page, limit=limit, total=total),
    )


@router.post("/conversations/{conversation_id}/messages", response_model=SendMessageResponse)
async def send_message(
    conversation_id: UUID,
    request: SendMessageRequest,
    user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> SendMessageResponse:
    """
    Send a message and receive the generated reply.

    Costs one credit. Returns 402 INSUFFICIENT_CREDITS, 404
    CONVERSATION_NOT_FOUND, or 500 SEND_MESSAGE_ERROR (nothing is charged).
    """
    exchange = await service.send_message(user, conversation_id, request.content)
    return SendMessageResponse(
        message="Message sent successfully",
        user_message=message_to_item(exchange.user_message),
        ai_message=message_to_item(exchange.ai_message),
        credits=exchange.credits,
    )


@router.put("/conversations/{conversation_id}", response_model=ConversationResponse)
async def update_conversation(
    conversation_id: UUID,
    request: UpdateConversationRequest,
    user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> ConversationResponse:
    """Rename a conversation."""
    conversation = await service.update_conversation(user.id, conversation_id, request.title)
    return ConversationResponse(
        message="Conversation updated successfully",
        conversation=conversation_to_summary(conversation),
    )


@router.delete("/conversations/{conversation_id}", response_model=ConversationDeletedResponse)
async def delete_conversation(
    conversation_id: UUID,
    user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> ConversationDeletedResponse:
    """Soft-delete a conversation; its messages are kept."""
    await service.delete_conversation(user.id, conversation_id)
    return ConversationDeletedResponse(
        message="Conversation deleted successfully",
        conversation_id=conversation_id,
    )
