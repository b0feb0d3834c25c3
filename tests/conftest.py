from collections.abc import AsyncIterator, Sequence
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from waitroom.db import init_db
from waitroom.errors import ReasoningServiceError
from waitroom.notifier import ChangeNotifier
from waitroom.schemas import ChatMessage, Extraction
from waitroom.store import ConversationStore


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class StubReasoning:
    def __init__(self, replies: Optional[list[str]] = None, error: Optional[Exception] = None) -> None:
        self.replies = list(replies or [])
        self.error = error
        self.calls: list[list[ChatMessage]] = []

    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        return f"reply {len(self.calls)}"


class StubExtractor:
    def __init__(self, extraction: Optional[Extraction] = None, error: Optional[Exception] = None) -> None:
        self.extraction = extraction or Extraction(
            key_points=["Headache for 2 days"],
            structured={"chief_complaint": "headache", "onset_duration": "2 days"},
            free_text="Patient reports a headache for two days.",
        )
        self.error = error
        self.transcripts: list[str] = []

    async def extract(self, transcript_text: str) -> Extraction:
        self.transcripts.append(transcript_text)
        if self.error is not None:
            raise self.error
        return self.extraction


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc))


@pytest_asyncio.fixture
async def session_maker(tmp_path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    # File-backed so background summary jobs get their own connections
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'waitroom.db'}")
    await init_db(engine)
    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    await engine.dispose()


@pytest.fixture
def store(session_maker, clock) -> ConversationStore:
    return ConversationStore(session_maker, default_message_cap=50, clock=clock)


@pytest.fixture
def notifier() -> ChangeNotifier:
    return ChangeNotifier()


@pytest.fixture
def failing_reasoning() -> StubReasoning:
    return StubReasoning(error=ReasoningServiceError("OpenAI API is currently unavailable. Please retry later."))
