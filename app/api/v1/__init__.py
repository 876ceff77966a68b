"""
API v1 router exports.
Provides API endpoint routers.
"""
from app.api.v1 import messages, conversations, users, presence, typing_indicators

__all__ = [
    "messages",
    "conversations",
    "users",
    "presence",
    "typing_indicators",
]
