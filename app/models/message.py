"""
Message and MessageReaction models.
"""
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, IDMixin, TimestampMixin

if TYPE_CHECKING:
    from app.models.conversation import Conversation


DELETED_PLACEHOLDER = "This message was deleted"


class Message(Base, IDMixin, TimestampMixin):
    """
    Message model.

    author_name is a snapshot taken at send time; later profile renames do
    not rewrite history. Deletion is soft: the body is kept but masked.
    """

    __tablename__ = "messages"

    conversation_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        doc="Conversation this message belongs to"
    )

    author_id: Mapped[str | None] = mapped_column(
        String(32),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        doc="User who sent the message"
    )

    author_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Author display name at send time"
    )

    body: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Message text"
    )

    # Threading. Not a FK: a dangling reference is tolerated and simply
    # renders without a reply preview.
    reply_to_id: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
        doc="ID of message this is replying to"
    )

    deleted: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        doc="Soft delete flag"
    )

    edited: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        doc="Whether the message has been edited"
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When the message was last edited"
    )

    # Relationships
    conversation: Mapped["Conversation"] = relationship(back_populates="messages")

    @property
    def display_body(self) -> str:
        """Body as shown to viewers."""
        return DELETED_PLACEHOLDER if self.deleted else self.body

    def __repr__(self) -> str:
        preview = self.body[:50] if self.body else ""
        return f"<Message(id={self.id}, deleted={self.deleted}, body='{preview}')>"


class MessageReaction(Base, IDMixin, TimestampMixin):
    """
    MessageReaction model - emoji reactions to messages.

    Existence is the state. Each user can react with several different emoji
    to the same message, but only once per emoji.
    """

    __tablename__ = "message_reactions"

    message_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("messages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="Message ID"
    )

    user_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        doc="User ID"
    )

    emoji: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        doc="Emoji reaction"
    )

    __table_args__ = (
        UniqueConstraint("message_id", "user_id", "emoji", name="uq_message_user_emoji"),
    )

    def __repr__(self) -> str:
        return f"<MessageReaction(message_id={self.message_id}, user_id={self.user_id}, emoji={self.emoji})>"


# Cursor pages filter and order by (conversation_id, id)
Index("idx_messages_conversation_id_cursor", Message.conversation_id, Message.id)
