"""
Conversation CRUD scoped to the authenticated user.

A conversation owned by someone else is reported exactly like a missing one.
"""

import logging

from fastapi import HTTPException, status

from lawpal.models import Conversation, build_message

logger = logging.getLogger("lawpal.conversations")


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Conversation not found",
    )


class ConversationService:
    """List, create, rename, append to and delete a user's conversations."""

    def __init__(self, db=None):
        self._db = db

    @property
    def db(self):
        """Get database instance."""
        if self._db is None:
            from lawpal.services.database import database

            self._db = database
        return self._db

    async def list_conversations(self, user_id: str) -> list[Conversation]:
        """Most recently updated first."""
        return await self.db.list_conversations(user_id)

    async def create_conversation(self, user_id: str, title: str | None = None) -> Conversation:
        conversation = Conversation.create(user_id, title)
        conversation = await self.db.create_conversation(conversation)
        logger.info("Created conversation %s for user %s", conversation.id, user_id)
        return conversation

    async def rename_conversation(self, user_id: str, conversation_id: str, title: str | None) -> None:
        title = (title or "").strip()
        if not title:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Title is required",
            )
        if not await self.db.rename_conversation(conversation_id, user_id, title):
            raise _not_found()

    async def append_message(self, user_id: str, conversation_id: str, sender: str | None, text: str | None) -> dict:
        """
        Append a message stamped with the server time.

        Raises:
            HTTPException: 400 if sender/text is missing or the sender tag is unknown,
                404 if the conversation is not the caller's.
        """
        try:
            message = build_message(sender, text)
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e),
            ) from None

        if not await self.db.append_message(conversation_id, user_id, message):
            raise _not_found()
        return message

    async def delete_conversation(self, user_id: str, conversation_id: str) -> None:
        if not await self.db.delete_conversation(conversation_id, user_id):
            raise _not_found()
        logger.info("Deleted conversation %s for user %s", conversation_id, user_id)


# Global instance
conversation_service = ConversationService()
