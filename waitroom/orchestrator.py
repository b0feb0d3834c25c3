import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

from waitroom.cap_policy import Admission, admit
from waitroom.config import REASONING_TIMEOUT_SECONDS
from waitroom.context_window import ContextWindowBuilder
from waitroom.errors import EmptyMessageError, ErrorKind, ReasoningServiceError
from waitroom.models import MessageRole, utcnow
from waitroom.prompts import CAP_MESSAGE, CHAT_SYSTEM, FALLBACK_REPLY
from waitroom.schemas import ChatMessage
from waitroom.store import ConversationStore
from waitroom.tasks import SummaryScheduler

logger = logging.getLogger(__name__)


class ReasoningCapability(Protocol):
    async def complete(self, messages: Sequence[ChatMessage]) -> str: ...


@dataclass(frozen=True)
class TurnResult:
    reply: str
    capped: bool
    error: Optional[ErrorKind] = None
    error_detail: Optional[str] = None


class DialogueOrchestrator:
    """Runs one patient turn: cap gate, transcript writes, model call, summary trigger."""

    def __init__(
        self,
        store: ConversationStore,
        context_builder: ContextWindowBuilder,
        reasoning: ReasoningCapability,
        scheduler: SummaryScheduler,
        *,
        timeout: float = REASONING_TIMEOUT_SECONDS,
        system_prompt: str = CHAT_SYSTEM,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._context_builder = context_builder
        self._reasoning = reasoning
        self._scheduler = scheduler
        self._timeout = timeout
        self._system_prompt = system_prompt
        self._clock = clock

    async def respond(self, identity: str, text: str) -> TurnResult:
        content = (text or "").strip()
        if not content:
            raise EmptyMessageError()

        conversation = await self._store.ensure_conversation(identity)
        # Soft cap: two concurrent turns may both pass this check
        count = await self._store.count_patient_messages(identity)
        if admit(count, conversation.message_cap) is Admission.DENY:
            logger.info("Conversation %s reached its cap of %d messages", identity, conversation.message_cap)
            await self._store.append_message(identity, MessageRole.ASSISTANT, CAP_MESSAGE)
            return TurnResult(reply=CAP_MESSAGE, capped=True)

        patient_message = await self._store.append_message(identity, MessageRole.PATIENT, content)

        context = await self._context_builder.build(
            identity, self._clock(), exclude_id=patient_message.id
        )
        messages = [
            ChatMessage(role="system", content=self._system_prompt),
            *context,
            ChatMessage(role="user", content=content),
        ]

        try:
            reply = await asyncio.wait_for(self._reasoning.complete(messages), timeout=self._timeout)
            if not reply or not reply.strip():
                raise ReasoningServiceError("Empty response from LLM")
        except asyncio.TimeoutError:
            return await self._fallback(identity, "Reasoning service timed out")
        except ReasoningServiceError as exc:
            return await self._fallback(identity, str(exc))
        except asyncio.CancelledError:
            logger.warning("Turn for conversation %s cancelled, storing fallback reply", identity)
            await asyncio.shield(self._store.append_message(identity, MessageRole.ASSISTANT, FALLBACK_REPLY))
            self._scheduler.schedule(identity)
            raise
        except Exception as exc:
            # Injected capabilities may raise their own transport errors
            logger.exception("Unexpected reasoning capability failure for conversation %s", identity)
            return await self._fallback(identity, f"Reasoning service failed: {exc}")

        reply = reply.strip()
        await self._store.append_message(identity, MessageRole.ASSISTANT, reply)
        self._scheduler.schedule(identity)
        return TurnResult(reply=reply, capped=False)

    async def _fallback(self, identity: str, detail: str) -> TurnResult:
        logger.warning("Reasoning service failed for conversation %s: %s", identity, detail)
        await self._store.append_message(identity, MessageRole.ASSISTANT, FALLBACK_REPLY)
        # The patient message is still new information for the clinician
        self._scheduler.schedule(identity)
        return TurnResult(reply=FALLBACK_REPLY, capped=False, error=ErrorKind.UPSTREAM, error_detail=detail)


__all__ = ["DialogueOrchestrator", "ReasoningCapability", "TurnResult"]
