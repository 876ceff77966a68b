"""
User schemas for API request/response validation.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class UserResponse(BaseModel):
    """Public profile of a user."""

    id: str
    name: str
    email: str = ""
    image: Optional[str] = None
    is_online: bool = False
    last_seen: Optional[datetime] = None

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": "0192f3c1a2b40001a1b2c3d4e5",
                "name": "Ada Lovelace",
                "email": "ada@example.com",
                "image": "https://example.com/ada.png",
                "is_online": True,
                "last_seen": "2025-10-10T10:00:00Z"
            }
        }
    )

