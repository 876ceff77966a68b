"""
User model - local record for an external identity.

Sign-in happens at the identity provider; a User row is created on first
authenticated contact and refreshed when the provider's profile drifts.
"""
from datetime import datetime
from typing import TYPE_CHECKING, List

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, IDMixin, TimestampMixin

if TYPE_CHECKING:
    from app.models.conversation import ConversationMember


class User(Base, IDMixin, TimestampMixin):
    """
    User model.

    Never deleted. Presence flag fields are only written by the presence
    tracker (flag and hybrid policies).
    """

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Display name from the identity provider"
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
        index=True,
        doc="Email from the identity provider (empty when not shared)"
    )

    token_identifier: Mapped[str] = mapped_column(
        String(512),
        unique=True,
        nullable=False,
        index=True,
        doc="Stable external identity: '<issuer>|<subject>'"
    )

    image: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
        doc="Profile image URL"
    )

    # Presence (flag policy)
    is_online: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        doc="Explicit online flag set by heartbeat and cleared by disconnect"
    )

    last_seen: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When the user last disconnected"
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When the profile was last patched from the identity provider"
    )

    # Relationships
    conversation_memberships: Mapped[List["ConversationMember"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, name={self.name})>"
