from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from fastapi import Depends, FastAPI, Header, HTTPException
from pydantic import BaseModel, Field

from taskflow.agent.cortex.graph import TurnInterpreter
from taskflow.agent.identity import UnauthenticatedCaller
from taskflow.config import settings

logger = logging.getLogger(__name__)

app = FastAPI(title="TaskFlow Assistant API", version="0.1.0")


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    message: str | None = None
    history: list[ChatMessage] = Field(default_factory=list)
    action: Literal["chat", "clear", "status"] = "chat"


@lru_cache(maxsize=1)
def get_interpreter() -> TurnInterpreter:
    return TurnInterpreter.from_settings()


def _require_caller(x_caller_id: str | None) -> str:
    caller = str(x_caller_id or "").strip()
    if not caller:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return caller


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/ai/chat")
async def chat(
    payload: ChatRequest,
    x_caller_id: str | None = Header(default=None),
    interpreter: TurnInterpreter = Depends(get_interpreter),
) -> dict:
    caller = _require_caller(x_caller_id)

    if payload.action == "clear":
        interpreter.clear_conversation(caller)
        return {"success": True, "message": "Conversation cleared"}

    if payload.action == "status":
        return {"success": True, **interpreter.conversation_status(caller)}

    message = str(payload.message or "").strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")
    limit = settings.get_max_message_chars()
    if len(message) > limit:
        raise HTTPException(
            status_code=400,
            detail=f"Message too long. Maximum {limit} characters allowed.",
        )

    history = [item.model_dump() for item in payload.history]
    try:
        result = await interpreter.handle_turn(message, history, caller)
    except UnauthenticatedCaller as exc:
        raise HTTPException(status_code=401, detail="Unauthorized") from exc
    return {"success": True, **result.to_dict()}


@app.get("/ai/chat")
def chat_status(
    x_caller_id: str | None = Header(default=None),
    interpreter: TurnInterpreter = Depends(get_interpreter),
) -> dict:
    caller = _require_caller(x_caller_id)
    return {"success": True, "status": "AI Chat service is running", **interpreter.conversation_status(caller)}
