from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from waitroom.config import CONTEXT_WINDOW_DAYS, MESSAGE_CAP
from waitroom.context_window import ContextWindowBuilder
from waitroom.notifier import ChangeNotifier
from waitroom.orchestrator import DialogueOrchestrator, ReasoningCapability
from waitroom.store import ConversationStore
from waitroom.summary import ExtractionCapability, Summarizer
from waitroom.tasks import SummaryScheduler


@dataclass
class Services:
    store: ConversationStore
    notifier: ChangeNotifier
    summarizer: Summarizer
    scheduler: SummaryScheduler
    orchestrator: DialogueOrchestrator


def build_services(
    session_maker: async_sessionmaker[AsyncSession],
    reasoning: ReasoningCapability,
    extractor: ExtractionCapability,
    *,
    message_cap: int = MESSAGE_CAP,
    context_window: timedelta = timedelta(days=CONTEXT_WINDOW_DAYS),
    **orchestrator_options,
) -> Services:
    """Wire the pipeline around explicit capabilities so tests can swap in fakes."""
    store = ConversationStore(session_maker, default_message_cap=message_cap)
    notifier = ChangeNotifier()
    summarizer = Summarizer(store, extractor, notifier)
    scheduler = SummaryScheduler(summarizer.recompute)
    orchestrator = DialogueOrchestrator(
        store,
        ContextWindowBuilder(store, context_window),
        reasoning,
        scheduler,
        **orchestrator_options,
    )
    return Services(
        store=store,
        notifier=notifier,
        summarizer=summarizer,
        scheduler=scheduler,
        orchestrator=orchestrator,
    )


__all__ = ["Services", "build_services"]
