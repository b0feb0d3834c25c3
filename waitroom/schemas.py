from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from waitroom.models import MessageRole


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class Extraction(BaseModel):
    """Fresh key points, structured fields and narrative produced from a transcript."""

    key_points: list[str] = Field(default_factory=list)
    structured: dict[str, Any] = Field(default_factory=dict)
    free_text: str = ""

    @field_validator("key_points", mode="before")
    @classmethod
    def _coerce_key_points(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("structured", mode="before")
    @classmethod
    def _coerce_structured(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("free_text", mode="before")
    @classmethod
    def _coerce_free_text(cls, value: Any) -> Any:
        return "" if value is None else value


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MessageRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    identity: str
    role: MessageRole
    content: str
    created_at: datetime

    normalize_created_at = field_validator("created_at")(as_utc)


class SummaryRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    identity: str
    key_points: list[str] = Field(default_factory=list)
    structured: dict[str, Any] = Field(default_factory=dict)
    free_text: str = ""
    updated_at: datetime

    normalize_updated_at = field_validator("updated_at")(as_utc)


class ConversationRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    identity: str
    message_cap: int
    created_at: datetime
    closed_at: Optional[datetime] = None

    normalize_timestamps = field_validator("created_at", "closed_at")(as_utc)


class ConversationPreview(BaseModel):
    identity: str
    key_points: list[str]
    updated_at: Optional[datetime] = None
    last_message: datetime


class MessageRequest(BaseModel):
    content: str


class TurnResponse(BaseModel):
    reply: str
    capped: bool


class TurnErrorResponse(TurnResponse):
    detail: str


class ConversationCreated(BaseModel):
    identity: str
    greeting: str


class ConversationDetail(BaseModel):
    summary: Optional[SummaryRecord] = None
    transcript: list[MessageRecord]
