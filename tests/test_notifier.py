import asyncio
from contextlib import aclosing

import pytest

from tests.conftest import StubExtractor
from waitroom.models import MessageRole
from waitroom.notifier import ChangeNotifier, watch_summary
from waitroom.summary import Summarizer


@pytest.mark.asyncio
async def test_publish_without_subscribers_is_a_no_op():
    ChangeNotifier().publish("P1")


@pytest.mark.asyncio
async def test_repeated_publishes_collapse_into_one_wake_up():
    notifier = ChangeNotifier()

    with notifier.subscribe("P1") as subscription:
        notifier.publish("P1")
        notifier.publish("P1")
        await asyncio.wait_for(subscription.wait(), timeout=1)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(subscription.wait(), timeout=0.05)


@pytest.mark.asyncio
async def test_publish_only_reaches_matching_identity():
    notifier = ChangeNotifier()

    with notifier.subscribe("P1") as p1, notifier.subscribe("P2") as p2:
        notifier.publish("P2")
        await asyncio.wait_for(p2.wait(), timeout=1)
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(p1.wait(), timeout=0.05)


@pytest.mark.asyncio
async def test_unsubscribe_on_exit():
    notifier = ChangeNotifier()

    with notifier.subscribe("P1"):
        assert notifier.observer_count("P1") == 1

    assert notifier.observer_count("P1") == 0


@pytest.mark.asyncio
async def test_watch_summary_sends_current_state_first(store, notifier):
    await store.ensure_conversation("P1")

    async with aclosing(watch_summary(store, notifier, "P1")) as updates:
        assert await anext(updates) is None


@pytest.mark.asyncio
async def test_watch_summary_pushes_fresh_summary_after_change(store, notifier, clock):
    await store.ensure_conversation("P1")
    await store.append_message("P1", MessageRole.PATIENT, "headache for 2 days")
    summarizer = Summarizer(store, StubExtractor(), notifier, clock=clock)

    async with aclosing(watch_summary(store, notifier, "P1")) as updates:
        assert await anext(updates) is None
        await summarizer.recompute("P1")
        summary = await asyncio.wait_for(anext(updates), timeout=1)

    assert summary.key_points == ["Headache for 2 days"]


@pytest.mark.asyncio
async def test_observer_connecting_after_publish_reads_latest_summary(store, notifier, clock):
    await store.ensure_conversation("P1")
    await store.append_message("P1", MessageRole.PATIENT, "headache for 2 days")
    await Summarizer(store, StubExtractor(), notifier, clock=clock).recompute("P1")

    async with aclosing(watch_summary(store, notifier, "P1")) as updates:
        summary = await anext(updates)

    assert summary is not None
    assert summary.free_text == "Patient reports a headache for two days."
    assert notifier.observer_count("P1") == 0
