from datetime import timedelta

import pytest

from waitroom.context_window import ContextWindowBuilder
from waitroom.models import MessageRole


@pytest.mark.asyncio
async def test_build_respects_window_boundary(store, clock):
    window = timedelta(days=7)
    now = clock() + window
    await store.ensure_conversation("P1")

    clock.now = now - window - timedelta(seconds=1)
    await store.append_message("P1", MessageRole.PATIENT, "too old")
    clock.now = now - window + timedelta(seconds=1)
    await store.append_message("P1", MessageRole.ASSISTANT, "just inside")

    context = await ContextWindowBuilder(store, window).build("P1", now)

    assert [m.content for m in context] == ["just inside"]


@pytest.mark.asyncio
async def test_build_maps_roles_in_ascending_order(store, clock):
    await store.ensure_conversation("P1")
    await store.append_message("P1", MessageRole.PATIENT, "I feel dizzy")
    clock.advance(seconds=3)
    await store.append_message("P1", MessageRole.ASSISTANT, "Since when?")
    clock.advance(seconds=30)
    await store.append_message("P1", MessageRole.PATIENT, "Since this morning")

    context = await ContextWindowBuilder(store).build("P1", clock())

    assert [(m.role, m.content) for m in context] == [
        ("user", "I feel dizzy"),
        ("assistant", "Since when?"),
        ("user", "Since this morning"),
    ]


@pytest.mark.asyncio
async def test_build_is_empty_for_new_identity(store, clock):
    assert await ContextWindowBuilder(store).build("nobody", clock()) == []


@pytest.mark.asyncio
async def test_build_can_exclude_the_message_being_answered(store, clock):
    await store.ensure_conversation("P1")
    await store.append_message("P1", MessageRole.PATIENT, "earlier")
    latest = await store.append_message("P1", MessageRole.PATIENT, "latest")

    context = await ContextWindowBuilder(store).build("P1", clock(), exclude_id=latest.id)

    assert [m.content for m in context] == ["earlier"]
