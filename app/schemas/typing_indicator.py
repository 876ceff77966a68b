"""
Typing indicator schemas.
"""
from pydantic import BaseModel


class TypingUser(BaseModel):
    """A user currently typing in a conversation."""

    user_id: str
    name: str
