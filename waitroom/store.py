import logging
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from waitroom.config import MESSAGE_CAP
from waitroom.errors import PersistenceError
from waitroom.models import Conversation, Message, MessageRole, Summary, utcnow
from waitroom.schemas import (
    ConversationPreview,
    ConversationRecord,
    MessageRecord,
    SummaryRecord,
    as_utc,
)

logger = logging.getLogger(__name__)


class ConversationStore:
    """Transcript and summary persistence keyed by conversation identity.

    Messages are append-only and read back ordered by timestamp, then by
    insertion id. Summaries are upserted per identity with last-writer-wins
    semantics. Every database failure surfaces as ``PersistenceError``.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        default_message_cap: int = MESSAGE_CAP,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_maker = session_maker
        self.default_message_cap = default_message_cap
        self._clock = clock

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_maker() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Database operation failed: %s", exc)
            raise PersistenceError("Conversation store unavailable") from exc

    async def create_conversation(
        self, identity: Optional[str] = None, message_cap: Optional[int] = None
    ) -> ConversationRecord:
        conversation = Conversation(
            identity=identity or str(uuid.uuid4()),
            message_cap=self.default_message_cap if message_cap is None else message_cap,
            created_at=self._clock(),
            closed_at=None,
        )
        async with self._session() as session:
            session.add(conversation)
            await session.commit()
            return ConversationRecord.model_validate(conversation)

    async def get_conversation(self, identity: str) -> Optional[ConversationRecord]:
        async with self._session() as session:
            conversation = await session.get(Conversation, identity)
            if conversation is None:
                return None
            return ConversationRecord.model_validate(conversation)

    async def ensure_conversation(self, identity: str) -> ConversationRecord:
        """Return the conversation, creating it on first contact."""
        existing = await self.get_conversation(identity)
        if existing is not None:
            return existing
        try:
            return await self.create_conversation(identity)
        except PersistenceError as exc:
            # A concurrent first turn may have inserted the same identity
            if not isinstance(exc.__cause__, IntegrityError):
                raise
        existing = await self.get_conversation(identity)
        if existing is None:  # pragma: no cover - insert failed for another reason
            raise PersistenceError(f"Conversation {identity} could not be created")
        return existing

    async def close_conversation(self, identity: str) -> Optional[ConversationRecord]:
        async with self._session() as session:
            conversation = await session.get(Conversation, identity)
            if conversation is None:
                return None
            if conversation.closed_at is None:
                conversation.closed_at = self._clock()
                await session.commit()
            return ConversationRecord.model_validate(conversation)

    async def append_message(self, identity: str, role: MessageRole, content: str) -> MessageRecord:
        async with self._session() as session:
            last = await session.scalar(
                select(func.max(Message.created_at)).where(Message.identity == identity)
            )
            created_at = self._clock()
            last = as_utc(last)
            # Keep timestamps non-decreasing per identity even if the clock steps back
            if last is not None and created_at < last:
                created_at = last
            message = Message(identity=identity, role=role, content=content, created_at=created_at)
            session.add(message)
            await session.commit()
            return MessageRecord.model_validate(message)

    async def count_patient_messages(self, identity: str) -> int:
        async with self._session() as session:
            count = await session.scalar(
                select(func.count())
                .select_from(Message)
                .where(Message.identity == identity, Message.role == MessageRole.PATIENT)
            )
            return int(count or 0)

    async def messages_since(self, identity: str, since: datetime) -> list[MessageRecord]:
        stmt = (
            select(Message)
            .where(Message.identity == identity, Message.created_at >= since)
            .order_by(Message.created_at, Message.id)
        )
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
            return [MessageRecord.model_validate(row) for row in rows]

    async def transcript(self, identity: str) -> list[MessageRecord]:
        stmt = select(Message).where(Message.identity == identity).order_by(Message.created_at, Message.id)
        async with self._session() as session:
            rows = (await session.scalars(stmt)).all()
            return [MessageRecord.model_validate(row) for row in rows]

    async def get_summary(self, identity: str) -> Optional[SummaryRecord]:
        async with self._session() as session:
            summary = await session.get(Summary, identity)
            if summary is None:
                return None
            return SummaryRecord.model_validate(summary)

    async def upsert_summary(self, record: SummaryRecord) -> SummaryRecord:
        values = record.model_dump()
        async with self._session() as session:
            row = await session.get(Summary, record.identity)
            if row is None:
                session.add(Summary(**values))
                try:
                    await session.commit()
                    return record
                except IntegrityError:
                    # Lost the insert race; fall through and overwrite
                    await session.rollback()
                    row = await session.get(Summary, record.identity)
            for key, value in values.items():
                setattr(row, key, value)
            await session.commit()
            return record

    async def list_active(self) -> list[ConversationPreview]:
        last_message = (
            select(
                Message.identity.label("identity"),
                func.max(Message.created_at).label("last_message"),
            )
            .group_by(Message.identity)
            .subquery()
        )
        stmt = (
            select(Conversation, Summary, last_message.c.last_message)
            .outerjoin(Summary, Summary.identity == Conversation.identity)
            .outerjoin(last_message, last_message.c.identity == Conversation.identity)
            .where(Conversation.closed_at.is_(None))
        )
        async with self._session() as session:
            rows = (await session.execute(stmt)).all()

        previews = [
            ConversationPreview(
                identity=conversation.identity,
                key_points=list(summary.key_points) if summary is not None else [],
                updated_at=as_utc(summary.updated_at) if summary is not None else None,
                last_message=as_utc(last or conversation.created_at),
            )
            for conversation, summary, last in rows
        ]
        previews.sort(key=lambda p: p.last_message, reverse=True)
        return previews


__all__ = ["ConversationStore"]
