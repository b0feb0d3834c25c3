import enum
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from waitroom.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, enum.Enum):
    PATIENT = "patient"
    ASSISTANT = "assistant"


class Conversation(Base):
    __tablename__ = "conversations"

    identity: Mapped[str] = mapped_column(String(64), primary_key=True)
    message_cap: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_identity_created_at", "identity", "created_at"),)

    # Autoincrement id doubles as the insertion sequence for equal timestamps
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity: Mapped[str] = mapped_column(
        String(64), ForeignKey("conversations.identity"), nullable=False
    )
    role: Mapped[MessageRole] = mapped_column(
        Enum(MessageRole, native_enum=False, length=16, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Summary(Base):
    __tablename__ = "summaries"

    identity: Mapped[str] = mapped_column(
        String(64), ForeignKey("conversations.identity"), primary_key=True
    )
    key_points: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    structured: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    free_text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
