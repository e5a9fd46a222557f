"""
Conversation API endpoints.

All routes require `Authorization: Bearer <jwt>` and only ever see the
caller's own conversations.
"""

from fastapi import APIRouter, Body, Depends, status

from lawpal.api.dependencies import get_conversation_service, require_database
from lawpal.core.security import get_current_user_id
from lawpal.schemas.conversation import (
    AppendMessageRequest,
    ConversationListResponse,
    ConversationOut,
    ConversationResponse,
    CreateConversationRequest,
    RenameConversationRequest,
    SuccessResponse,
)
from lawpal.services.conversation_service import ConversationService

router = APIRouter(dependencies=[Depends(require_database)])


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationService = Depends(get_conversation_service),
) -> ConversationListResponse:
    """List the caller's conversations, most recently updated first."""
    items = await conversations.list_conversations(user_id)
    return ConversationListResponse(conversations=[ConversationOut(**c.to_dict()) for c in items])


@router.post("", response_model=ConversationResponse, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    request: CreateConversationRequest | None = Body(None),
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationService = Depends(get_conversation_service),
) -> ConversationResponse:
    """Create an empty conversation. The title defaults to "New Conversation"."""
    title = request.title if request else None
    conversation = await conversations.create_conversation(user_id, title)
    return ConversationResponse(conversation=ConversationOut(**conversation.to_dict()))


@router.put("/{conversation_id}/title", response_model=SuccessResponse)
async def rename_conversation(
    conversation_id: str,
    request: RenameConversationRequest,
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationService = Depends(get_conversation_service),
) -> SuccessResponse:
    await conversations.rename_conversation(user_id, conversation_id, request.title)
    return SuccessResponse()


@router.post("/{conversation_id}/messages", response_model=SuccessResponse)
async def append_message(
    conversation_id: str,
    request: AppendMessageRequest,
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationService = Depends(get_conversation_service),
) -> SuccessResponse:
    """
    Append a message to a conversation.

    **Request Body:**
    ```json
    {
        "sender": "user",
        "text": "Can my landlord keep my deposit?"
    }
    ```
    """
    await conversations.append_message(user_id, conversation_id, request.sender, request.text)
    return SuccessResponse()


@router.delete("/{conversation_id}", response_model=SuccessResponse)
async def delete_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationService = Depends(get_conversation_service),
) -> SuccessResponse:
    await conversations.delete_conversation(user_id, conversation_id)
    return SuccessResponse()
