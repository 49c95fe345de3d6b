"""Chat history entry."""

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    message_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str
    role: str  # "user" | "assistant"
    content: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
