import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from billscan.core.config import (
    BRAND,
    CHAT_APOLOGY,
    CHAT_CONFIG,
    CHAT_MAX_TURN_CHARS,
    CHAT_MAX_TURNS,
)
from billscan.services import leads_repo, reasoning_service
from billscan.services.errors import ReasoningServiceError

logger = logging.getLogger("billscan.chat")

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
TRANSCRIPT_ROLES = {ROLE_USER, ROLE_ASSISTANT}

DEFAULT_PERSONA = (
    'You are an expert Solar Sales Consultant for "{brand}".\n'
    "Your goal is to explain the benefits of the proposed system and "
    "ULTIMATELY GET THE USER TO BOOK AN APPOINTMENT."
)
DEFAULT_CLOSING = (
    "Reply as the consultant. Be helpful, professional, but persuasive.\n"
    "Always try to steer towards booking a call to finalize the design."
)
DEFAULT_PENDING = "User has uploaded a bill but analysis is pending."


@dataclass
class ChatReply:
    role: str
    content: str
    degraded: bool = False


def _get(turn: Any, key: str) -> Any:
    if isinstance(turn, dict):
        return turn.get(key)
    return getattr(turn, key, None)


def window(transcript: Iterable[Any], max_turns: int = CHAT_MAX_TURNS,
           max_chars: int = CHAT_MAX_TURN_CHARS) -> List[Dict[str, str]]:
    """Known roles only, blank turns dropped, last `max_turns` kept, each clipped."""
    turns: List[Dict[str, str]] = []
    for t in transcript or []:
        role = (_get(t, "role") or "").strip().lower()
        content = _get(t, "content")
        if role not in TRANSCRIPT_ROLES or not isinstance(content, str) or not content.strip():
            continue
        text = content.strip()
        if len(text) > max_chars:
            text = text[:max_chars] + " …"
        turns.append({"role": role, "content": text})
    if max_turns > 0 and len(turns) > max_turns:
        logger.info("chat window: dropped %d older turns", len(turns) - max_turns)
        turns = turns[-max_turns:]
    return turns


def context_block(lead) -> str:
    if lead is None or lead.analysis is None:
        return CHAT_CONFIG.get("pending_notice") or DEFAULT_PENDING
    return f"User's Analysis: {json.dumps(lead.analysis, ensure_ascii=False)}. Name: {lead.name}."


def build_prompt(lead, transcript: Iterable[Any]) -> str:
    persona = (CHAT_CONFIG.get("persona") or DEFAULT_PERSONA).format(brand=BRAND)
    closing = CHAT_CONFIG.get("closing") or DEFAULT_CLOSING
    history = "\n".join(f"{t['role']}: {t['content']}" for t in window(transcript))
    return (
        f"{persona}\n\n"
        f"Context: {context_block(lead)}\n\n"
        f"Current Conversation:\n{history}\n\n"
        f"{closing}"
    )


def apology() -> ChatReply:
    return ChatReply(role=ROLE_ASSISTANT, content=CHAT_APOLOGY, degraded=True)


# ------------ Public API ------------
def reply(db: Session, lead_id: str, transcript: Iterable[Any]) -> ChatReply:
    """
    One assistant turn grounded on the lead's analysis. Never throws:
    any failure becomes the apology turn (degraded=True).
    """
    try:
        lead = leads_repo.get_lead(db, lead_id)
        if lead is None:
            logger.warning("chat lead=%s not found; answering with pending context", lead_id)
        prompt = build_prompt(lead, transcript)
    except Exception:
        logger.exception("chat lead=%s context assembly failed", lead_id)
        return apology()

    try:
        text = reasoning_service.generate(prompt, json_mode=False, temperature=0.7, tag=f"chat:{lead_id}")
    except ReasoningServiceError as e:
        logger.warning("chat lead=%s reasoning failed kind=%s: %s", lead_id, e.kind, e)
        return apology()
    except Exception:
        logger.exception("chat lead=%s unexpected reasoning error", lead_id)
        return apology()

    content: Optional[str] = (text or "").strip()
    if not content:
        return apology()
    return ChatReply(role=ROLE_ASSISTANT, content=content)
