from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from billscan.core.db import get_db
from billscan.models.schemas import ChatRequest, ChatResponse
from billscan.services import chat_service

logger = logging.getLogger("billscan.api.chat")
router = APIRouter()


def _chat_impl(req: ChatRequest, db: Session) -> ChatResponse:
    logger.info("POST /chat lead=%s turns=%d", req.lead_id, len(req.messages))
    turn = chat_service.reply(db, req.lead_id, req.messages)
    # Always 200; `degraded` tells callers the content is the canned apology
    logger.info("POST /chat lead=%s done degraded=%s reply_len=%d", req.lead_id, turn.degraded, len(turn.content))
    return ChatResponse(content=turn.content, degraded=turn.degraded)


@router.post("/", response_model=ChatResponse, name="chat")
def chat(req: ChatRequest, db: Session = Depends(get_db)):
    return _chat_impl(req, db)


@router.post("", response_model=ChatResponse, include_in_schema=False, name="chat_no_slash")
def chat_no_slash(req: ChatRequest, db: Session = Depends(get_db)):
    return _chat_impl(req, db)
