"""
Clinician summary maintenance.

``merge`` folds a fresh extraction into the previous summary without losing
information: key points accumulate (first-seen order, exact-string dedup),
structured fields are only overwritten by non-empty fresh values, and the
narrative is replaced wholesale. ``Summarizer`` runs extraction over the full
transcript, merges, persists and notifies observers.
"""
import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, Optional, Protocol

from waitroom.config import EXTRACTION_TIMEOUT_SECONDS, SUMMARY_MAX_WORDS
from waitroom.errors import ReasoningServiceError
from waitroom.models import MessageRole, utcnow
from waitroom.notifier import ChangeNotifier
from waitroom.prompts import DEGRADED_FREE_TEXT, DEGRADED_KEY_POINT
from waitroom.schemas import Extraction, MessageRecord, SummaryRecord
from waitroom.store import ConversationStore

logger = logging.getLogger(__name__)

SPEAKER_LABELS = {
    MessageRole.PATIENT: "Patient",
    MessageRole.ASSISTANT: "Assistant",
}


class ExtractionCapability(Protocol):
    async def extract(self, transcript_text: str) -> Extraction: ...


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def bound_words(text: str, max_words: int) -> str:
    words = text.split()
    if len(words) <= max_words:
        return text.strip()
    return " ".join(words[:max_words])


def degraded_extraction() -> Extraction:
    return Extraction(key_points=[DEGRADED_KEY_POINT], structured={}, free_text=DEGRADED_FREE_TEXT)


def merge(
    old: Optional[SummaryRecord],
    fresh: Extraction,
    *,
    identity: str,
    updated_at: datetime,
    max_words: int = SUMMARY_MAX_WORDS,
) -> SummaryRecord:
    key_points: list[str] = []
    seen: set[str] = set()
    previous = old.key_points if old is not None else []
    for point in [*previous, *fresh.key_points]:
        if point.strip() and point not in seen:
            seen.add(point)
            key_points.append(point)

    structured = dict(old.structured) if old is not None else {}
    for field, value in fresh.structured.items():
        # No clear signal exists: an empty fresh value never erases a known one
        if not is_empty(value):
            structured[field] = value

    return SummaryRecord(
        identity=identity,
        key_points=key_points,
        structured=structured,
        free_text=bound_words(fresh.free_text, max_words),
        updated_at=updated_at,
    )


def render_transcript(messages: list[MessageRecord]) -> str:
    return "\n".join(f"{SPEAKER_LABELS[m.role]}: {m.content}" for m in messages)


class Summarizer:
    def __init__(
        self,
        store: ConversationStore,
        extractor: ExtractionCapability,
        notifier: ChangeNotifier,
        *,
        timeout: float = EXTRACTION_TIMEOUT_SECONDS,
        max_words: int = SUMMARY_MAX_WORDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._notifier = notifier
        self._timeout = timeout
        self._max_words = max_words
        self._clock = clock

    async def recompute(self, identity: str) -> SummaryRecord:
        """Re-extract the whole transcript and merge it into the stored summary.

        Extraction failures degrade to a placeholder extraction so the summary
        never silently goes stale. Persistence failures propagate.
        """
        transcript = await self._store.transcript(identity)
        try:
            fresh = await asyncio.wait_for(
                self._extractor.extract(render_transcript(transcript)), timeout=self._timeout
            )
        except (ReasoningServiceError, asyncio.TimeoutError) as exc:
            logger.warning("Extraction failed for conversation %s, using degraded summary: %s", identity, exc)
            fresh = degraded_extraction()
        except Exception:
            logger.exception("Unexpected extraction failure for conversation %s, using degraded summary", identity)
            fresh = degraded_extraction()

        old = await self._store.get_summary(identity)
        summary = merge(old, fresh, identity=identity, updated_at=self._clock(), max_words=self._max_words)
        await self._store.upsert_summary(summary)
        self._notifier.publish(identity)
        logger.info("Summary updated for conversation %s (%d key points)", identity, len(summary.key_points))
        return summary


__all__ = [
    "ExtractionCapability",
    "Summarizer",
    "bound_words",
    "degraded_extraction",
    "is_empty",
    "merge",
    "render_transcript",
]
