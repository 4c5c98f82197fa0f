import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ConversationMessage(BaseModel):
    """Individual message in a chat thread"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: Literal["user", "agent"] = Field(description="Message role: user or agent")
    content: str = Field(description="Message content")
    created_at: datetime = Field(default_factory=_now)


class ConversationThread(BaseModel):
    """A chat thread; replaced wholesale on every mutation"""

    model_config = ConfigDict(frozen=True)

    thread_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    messages: List[ConversationMessage] = Field(default_factory=list)

    @property
    def message_count(self) -> int:
        return len(self.messages)
