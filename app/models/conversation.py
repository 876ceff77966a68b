"""
Conversation and ConversationMember models.

Handles both 1:1 conversations and group chats.
"""
from datetime import datetime
from typing import TYPE_CHECKING, List

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, IDMixin, TimestampMixin
from app.utils.datetime_utils import utc_now

if TYPE_CHECKING:
    from app.models.user import User
    from app.models.message import Message


class Conversation(Base, IDMixin, TimestampMixin):
    """
    Conversation model for 1:1 and group chats.

    A non-group conversation has exactly two members; a group conversation
    has at least one (the creator) at creation.
    """

    __tablename__ = "conversations"

    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        doc="Group display name"
    )

    is_group: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Whether this is a group conversation"
    )

    # Maintained by the message store on every append. No FK: messages
    # reference conversations, so a FK back would make the pair circular.
    last_message_id: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
        doc="Most recently appended message"
    )

    created_by: Mapped[str | None] = mapped_column(
        String(32),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        doc="User who created the conversation"
    )

    # "<lower user id>:<higher user id>" for 1:1 conversations, NULL for groups.
    # The unique constraint is what keeps one 1:1 thread per pair.
    direct_key: Mapped[str | None] = mapped_column(
        String(80),
        nullable=True,
        doc="Sorted member pair of a 1:1 conversation"
    )

    # Relationships
    members: Mapped[List["ConversationMember"]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    messages: Mapped[List["Message"]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        lazy="select"
    )

    __table_args__ = (
        UniqueConstraint("direct_key", name="uq_conversations_direct_key"),
    )

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, is_group={self.is_group}, name={self.name})>"


class ConversationMember(Base):
    """
    ConversationMember model - association of users and conversations.

    Rows are append-only; last_read_at is written only by the owning user.
    """

    __tablename__ = "conversation_members"

    conversation_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        primary_key=True,
        doc="Conversation ID"
    )

    user_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        doc="User ID"
    )

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
        doc="When the user joined the conversation"
    )

    last_read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Last time the user read this conversation"
    )

    # Relationships
    conversation: Mapped["Conversation"] = relationship(back_populates="members")
    user: Mapped["User"] = relationship(back_populates="conversation_memberships", lazy="selectin")

    def __repr__(self) -> str:
        return (
            f"<ConversationMember(conversation_id={self.conversation_id}, "
            f"user_id={self.user_id})>"
        )


# Indexes for performance
Index("idx_conversation_members_user", ConversationMember.user_id)
Index("idx_conversations_created_by", Conversation.created_by)
