"""
ConversationStore

Durable user → Assistants thread mapping backed by the `threads` table.
Simple key-value access; the user id is the primary key so writes are upserts.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from src.config.logging_config import get_logger
from src.database.models import ConversationThread
from src.database.session import get_db_session

logger = get_logger(__name__)


class ConversationStore:
    """
    Repository for ConversationThread rows.

    Usage:
        store = ConversationStore()
        thread_id = await store.get_conversation_id("123456789")
        await store.set_conversation_id("123456789", "thread_abc")
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        """
        Args:
            session_factory: Optional async_sessionmaker (defaults to the
                process-wide one from src.database.session)
        """
        self._session_factory = session_factory

    async def get_conversation_id(self, user_id: str) -> Optional[str]:
        async with get_db_session(self._session_factory) as session:
            row = await session.get(ConversationThread, str(user_id))
            thread_id = row.thread_id if row else None

        logger.debug(f"🥝 Retrieved thread for {user_id}: {thread_id or 'None'}")
        return thread_id

    async def set_conversation_id(self, user_id: str, conversation_id: str) -> None:
        """Insert or replace the user's thread id, refreshing the timestamp."""
        async with get_db_session(self._session_factory) as session:
            row = await session.get(ConversationThread, str(user_id))
            if row is None:
                session.add(ConversationThread(user_id=str(user_id), thread_id=conversation_id))
            else:
                row.thread_id = conversation_id
                row.updated_at = datetime.now(timezone.utc)

        logger.info(f"🥝 Saved thread ID {conversation_id} for user {user_id}")
