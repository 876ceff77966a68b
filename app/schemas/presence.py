"""
Presence schemas.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class PresenceResponse(BaseModel):
    """Online status of one user."""

    user_id: str
    is_online: bool
    last_seen: Optional[datetime] = None


class HeartbeatResponse(BaseModel):
    user_id: str
    is_online: bool
