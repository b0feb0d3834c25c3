import httpx
import pytest

from tests.conftest import StubExtractor, StubReasoning
from waitroom.errors import PersistenceError, ReasoningServiceError
from waitroom.main import app, get_services
from waitroom.prompts import CAP_MESSAGE, FALLBACK_REPLY, FIRST_MESSAGE
from waitroom.services import build_services


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_create_conversation_returns_identity_and_greeting(session_maker):
    services = build_services(session_maker, StubReasoning(), StubExtractor())
    app.dependency_overrides[get_services] = lambda: services

    async with _client() as client:
        resp = await client.post("/api/conversations")

    app.dependency_overrides.clear()

    assert resp.status_code == 200
    body = resp.json()
    assert body["greeting"] == FIRST_MESSAGE
    assert await services.store.get_conversation(body["identity"]) is not None


@pytest.mark.asyncio
async def test_post_message_returns_reply_then_cap(session_maker):
    services = build_services(session_maker, StubReasoning(replies=["Any fever?"]), StubExtractor(), message_cap=1)
    app.dependency_overrides[get_services] = lambda: services

    async with _client() as client:
        first = await client.post("/api/conversations/P1/messages", json={"content": "headache"})
        second = await client.post("/api/conversations/P1/messages", json={"content": "fever now"})
        transcript = await client.get("/api/conversations/P1/messages")

    await services.scheduler.drain()
    app.dependency_overrides.clear()

    assert first.status_code == 200
    assert first.json() == {"reply": "Any fever?", "capped": False}
    assert second.status_code == 200
    assert second.json() == {"reply": CAP_MESSAGE, "capped": True}
    assert [(m["role"], m["content"]) for m in transcript.json()] == [
        ("patient", "headache"),
        ("assistant", "Any fever?"),
        ("assistant", CAP_MESSAGE),
    ]


@pytest.mark.asyncio
async def test_post_empty_message_returns_400(session_maker):
    services = build_services(session_maker, StubReasoning(), StubExtractor())
    app.dependency_overrides[get_services] = lambda: services

    async with _client() as client:
        resp = await client.post("/api/conversations/P1/messages", json={"content": "   "})

    app.dependency_overrides.clear()

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Message must not be empty"
    assert await services.store.get_conversation("P1") is None


@pytest.mark.asyncio
async def test_post_message_returns_502_with_fallback_reply(session_maker):
    reasoning = StubReasoning(error=ReasoningServiceError("OpenAI API rate limit exceeded. Please try again shortly."))
    services = build_services(session_maker, reasoning, StubExtractor())
    app.dependency_overrides[get_services] = lambda: services

    async with _client() as client:
        resp = await client.post("/api/conversations/P1/messages", json={"content": "headache"})

    await services.scheduler.drain()
    app.dependency_overrides.clear()

    assert resp.status_code == 502
    assert resp.json() == {
        "reply": FALLBACK_REPLY,
        "capped": False,
        "detail": "OpenAI API rate limit exceeded. Please try again shortly.",
    }


@pytest.mark.asyncio
async def test_doctor_endpoints_expose_summary_and_previews(session_maker):
    services = build_services(session_maker, StubReasoning(replies=["Since when?"]), StubExtractor())
    app.dependency_overrides[get_services] = lambda: services

    async with _client() as client:
        await client.post("/api/conversations/P1/messages", json={"content": "headache for 2 days"})
        await services.scheduler.drain()
        listing = await client.get("/api/doctor/conversations")
        detail = await client.get("/api/doctor/conversations/P1")
        missing = await client.get("/api/doctor/conversations/nobody")

    app.dependency_overrides.clear()

    assert listing.status_code == 200
    assert [(p["identity"], p["key_points"]) for p in listing.json()] == [("P1", ["Headache for 2 days"])]
    assert detail.status_code == 200
    body = detail.json()
    assert body["summary"]["structured"] == {"chief_complaint": "headache", "onset_duration": "2 days"}
    assert [m["content"] for m in body["transcript"]] == ["headache for 2 days", "Since when?"]
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_persistence_failure_returns_500(session_maker):
    services = build_services(session_maker, StubReasoning(), StubExtractor())

    async def broken_ensure(identity: str):
        raise PersistenceError("Conversation store unavailable")

    services.store.ensure_conversation = broken_ensure
    app.dependency_overrides[get_services] = lambda: services

    async with _client() as client:
        resp = await client.post("/api/conversations/P1/messages", json={"content": "hello"})

    app.dependency_overrides.clear()

    assert resp.status_code == 500
    assert resp.json() == {"detail": "Conversation store unavailable"}
