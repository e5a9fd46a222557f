"""Pydantic schemas for conversation CRUD."""

from lawpal.schemas.base import APIModel


class MessageOut(APIModel):
    sender: str
    text: str
    ts: str | None = None


class ConversationOut(APIModel):
    id: str
    title: str
    date: str | None = None
    messages: list[MessageOut] = []


class ConversationListResponse(APIModel):
    success: bool = True
    conversations: list[ConversationOut]


class ConversationResponse(APIModel):
    success: bool = True
    conversation: ConversationOut


class CreateConversationRequest(APIModel):
    title: str | None = None


class RenameConversationRequest(APIModel):
    title: str | None = None


class AppendMessageRequest(APIModel):
    sender: str | None = None
    text: str | None = None


class SuccessResponse(APIModel):
    success: bool = True
