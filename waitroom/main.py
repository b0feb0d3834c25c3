import json
from contextlib import aclosing, asynccontextmanager
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse

from waitroom.config import LOG_FILE, LOG_LEVEL
from waitroom.db import async_session_maker
from waitroom.errors import EmptyMessageError, ErrorKind, PersistenceError
from waitroom.logging_config import setup_logging
from waitroom.notifier import watch_summary
from waitroom.openai_client import OpenAIClient
from waitroom.prompts import FIRST_MESSAGE
from waitroom.schemas import (
    ConversationCreated,
    ConversationDetail,
    ConversationPreview,
    MessageRecord,
    MessageRequest,
    TurnErrorResponse,
    TurnResponse,
)
from waitroom.services import Services, build_services


@lru_cache(maxsize=1)
def get_openai_client() -> OpenAIClient:
    return OpenAIClient()


@lru_cache(maxsize=1)
def get_services() -> Services:
    client = get_openai_client()
    return build_services(async_session_maker, client, client)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(LOG_LEVEL, LOG_FILE)
    yield
    if get_services.cache_info().currsize:
        await get_services().scheduler.drain()


app = FastAPI(title="Waitroom Chat", lifespan=lifespan)


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.post("/api/conversations", response_model=ConversationCreated)
async def create_conversation(services: Services = Depends(get_services)):
    conversation = await services.store.create_conversation()
    return ConversationCreated(identity=conversation.identity, greeting=FIRST_MESSAGE)


@app.post(
    "/api/conversations/{identity}/messages",
    response_model=TurnResponse,
    responses={502: {"model": TurnErrorResponse}},
)
async def post_message(
    identity: str, req: MessageRequest, services: Services = Depends(get_services)
):
    try:
        result = await services.orchestrator.respond(identity, req.content)
    except EmptyMessageError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    if result.error is ErrorKind.UPSTREAM:
        # The fallback reply is still shown to the patient
        body = TurnErrorResponse(
            reply=result.reply,
            capped=result.capped,
            detail=result.error_detail or result.error.value,
        )
        return JSONResponse(status_code=502, content=body.model_dump())
    return TurnResponse(reply=result.reply, capped=result.capped)


@app.get("/api/conversations/{identity}/messages", response_model=list[MessageRecord])
async def get_transcript(identity: str, services: Services = Depends(get_services)):
    if await services.store.get_conversation(identity) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return await services.store.transcript(identity)


@app.get("/api/doctor/conversations", response_model=list[ConversationPreview])
async def list_conversations(services: Services = Depends(get_services)):
    return await services.store.list_active()


@app.get("/api/doctor/conversations/{identity}", response_model=ConversationDetail)
async def get_conversation_detail(identity: str, services: Services = Depends(get_services)):
    if await services.store.get_conversation(identity) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    summary = await services.store.get_summary(identity)
    transcript = await services.store.transcript(identity)
    return ConversationDetail(summary=summary, transcript=transcript)


@app.get("/api/doctor/conversations/{identity}/stream")
async def stream_summary(
    identity: str, request: Request, services: Services = Depends(get_services)
):
    async def events():
        async with aclosing(watch_summary(services.store, services.notifier, identity)) as updates:
            async for summary in updates:
                if await request.is_disconnected():
                    break
                payload = {
                    "type": "summary_update",
                    "identity": identity,
                    "summary": summary.model_dump(mode="json") if summary is not None else None,
                }
                yield f"event: summary_update\ndata: {json.dumps(payload)}\n\n"

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
