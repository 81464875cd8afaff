# propsignal/routers/chat.py
from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, List, Optional
from queue import Queue, Empty
from threading import Thread

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from anyio import EndOfStream

from propsignal.deps import chat_service
from propsignal.core.chat_service import ChatService, QEmitter
from propsignal.core.models import ChatMessage, ChatRequest, TurnResult

logger = logging.getLogger("propsignal.routers.chat")
router = APIRouter(prefix="/chat", tags=["chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
KEEPALIVE_SECONDS = 15


def _sse(event: Dict[str, Any]) -> str:
    lines = []
    if "id" in event and event["id"] is not None:
        lines.append(f"id: {event['id']}")
    lines.append(f"event: {event.get('name', 'message')}")
    payload = json.dumps(event.get("data", {}), default=str, ensure_ascii=False)
    lines.append(f"data: {payload}")
    return "\n".join(lines) + "\n\n"


def _validate(messages: List[ChatMessage]) -> None:
    if not messages or not any(m.role == "user" and m.content.strip() for m in messages):
        raise HTTPException(status_code=400, detail="At least one non-empty user message is required.")


def _start_stream(service: ChatService, session_id: str, messages: List[ChatMessage]) -> StreamingResponse:
    _validate(messages)
    q: Queue = Queue(maxsize=1000)
    emitter = QEmitter(q)

    def worker() -> None:
        # The turn runs on its own loop so the endpoint returns SSE immediately
        try:
            asyncio.run(service.handle_turn(session_id, messages, emit=emitter.send))
        except Exception as exc:
            logger.exception("Fatal error in chat worker: %s", exc)
            emitter.send({"name": "chat-error", "data": {"message": "Internal error", "trace_id": str(uuid.uuid4())}})
        finally:
            emitter.send({"name": "chat-done", "data": {"sessionId": session_id}})

    Thread(target=worker, daemon=True, name="propsignal-chat-worker").start()

    def gen():
        try:
            while True:
                try:
                    ev = q.get(timeout=KEEPALIVE_SECONDS)
                except Empty:
                    yield "event: keepalive\ndata: {}\n\n"
                    continue
                yield _sse(ev)
                if ev.get("name") == "chat-done":
                    break
        except (EndOfStream, GeneratorExit):
            logger.info("Client disconnected from /chat stream.")

    return StreamingResponse(gen(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/stream")
def stream(
    q: str = Query(..., description="User question"),
    session_id: Optional[str] = Query(None, alias="sessionId"),
    service: ChatService = Depends(chat_service),
):
    return _start_stream(service, session_id or str(uuid.uuid4()), [ChatMessage(role="user", content=q)])


@router.post("/", response_model=TurnResult)
async def chat(body: ChatRequest, service: ChatService = Depends(chat_service)) -> TurnResult:
    _validate(body.messages)
    return await service.handle_turn(body.sessionId or str(uuid.uuid4()), body.messages)


@router.delete("/{session_id}", summary="Forget a session's conversation context")
def reset(session_id: str, service: ChatService = Depends(chat_service)) -> Dict[str, Any]:
    service.store.reset(session_id)
    return {"ok": True, "sessionId": session_id}
