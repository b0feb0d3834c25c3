import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator, Optional

from waitroom.schemas import SummaryRecord

if TYPE_CHECKING:
    from waitroom.store import ConversationStore

logger = logging.getLogger(__name__)


class Subscription:
    """Latest-wins signal: any number of publishes collapse into one wake-up."""

    def __init__(self, identity: str) -> None:
        self.identity = identity
        self._event = asyncio.Event()

    def signal(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()
        self._event.clear()


class ChangeNotifier:
    """In-process "summary changed" broadcast keyed by conversation identity.

    Delivery is best effort. Observers never rely on it for state; they re-read
    the summary from the store on every wake-up and once on subscribe.
    """

    def __init__(self) -> None:
        self._subscribers: defaultdict[str, set[Subscription]] = defaultdict(set)

    def publish(self, identity: str) -> None:
        subscribers = self._subscribers.get(identity, ())
        for subscription in list(subscribers):
            subscription.signal()
        logger.debug("Published summary change for %s to %d observers", identity, len(subscribers))

    @contextmanager
    def subscribe(self, identity: str) -> Iterator[Subscription]:
        subscription = Subscription(identity)
        self._subscribers[identity].add(subscription)
        try:
            yield subscription
        finally:
            subscribers = self._subscribers.get(identity)
            if subscribers is not None:
                subscribers.discard(subscription)
                if not subscribers:
                    del self._subscribers[identity]

    def observer_count(self, identity: str) -> int:
        return len(self._subscribers.get(identity, ()))


async def watch_summary(
    store: "ConversationStore", notifier: ChangeNotifier, identity: str
) -> AsyncIterator[Optional[SummaryRecord]]:
    """Yield the current summary, then the fresh summary after every change.

    The subscription is registered before the first read so a change landing
    between the read and the wait is not lost.
    """
    with notifier.subscribe(identity) as subscription:
        yield await store.get_summary(identity)
        while True:
            await subscription.wait()
            yield await store.get_summary(identity)


__all__ = ["ChangeNotifier", "Subscription", "watch_summary"]
