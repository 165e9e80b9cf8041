"""
SQLAlchemy ORM Models

Durable mapping of Discord users to their OpenAI Assistants thread.

Design Decisions:
- Discord user id is the primary key (one thread per user, upsert on write)
- Rows are never deleted by the bot; retention is handled outside
"""

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class ConversationThread(Base):
    """
    User → Assistants thread mapping

    Created lazily on a user's first turn and reused for every later turn.
    """

    __tablename__ = "threads"

    user_id = Column(String(32), primary_key=True)
    thread_id = Column(String(64), nullable=False)

    # Last write (creation or re-assignment)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self):
        return f"<ConversationThread(user_id='{self.user_id}', thread_id='{self.thread_id}')>"
