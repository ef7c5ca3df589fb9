from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

import requests

from billscan.core.config import CHAT_APOLOGY, CHAT_CONFIG, CHAT_GREETING

logger = logging.getLogger("billscan.client.conversation")

Transcript = List[Dict[str, str]]
ReplyFn = Callable[[Transcript], Awaitable[str]]

DEFAULT_COMPLETION = (
    "Good news! I've finished the analysis. Based on your ${monthly_avg:g} monthly bill, "
    "you could save about ${potential_savings:g}/month with a {zero_bill_system} system. "
    "Would you like to see the breakdown?"
)


class TurnInFlight(RuntimeError):
    """A user turn was sent while the previous reply is still outstanding."""


def completion_message(analysis: dict) -> str:
    template = CHAT_CONFIG.get("completion_message") or DEFAULT_COMPLETION
    try:
        return template.format(**analysis)
    except (KeyError, ValueError, TypeError):
        logger.warning("completion message template did not fit the analysis; using short form")
        return "Good news! I've finished the analysis. Would you like to see the breakdown?"


class Conversation:
    """
    Session-owned transcript. User turns are serialized: one reply at a time,
    so the transcript order sent to the assistant always matches what was shown.
    """

    def __init__(self, reply_fn: ReplyFn, *, greeting: Optional[str] = CHAT_GREETING):
        self._reply_fn = reply_fn
        self.messages: Transcript = []
        if greeting:
            self.messages.append({"role": "assistant", "content": greeting})
        self._busy = False
        self._announced = False

    @property
    def busy(self) -> bool:
        return self._busy

    def transcript(self) -> Transcript:
        return [dict(m) for m in self.messages]

    async def send(self, text: str) -> Optional[Dict[str, str]]:
        """Append the user turn, await the reply, append it. Blank input is ignored."""
        text = (text or "").strip()
        if not text:
            return None
        if self._busy:
            raise TurnInFlight("wait for the current reply before sending another message")

        self._busy = True
        try:
            self.messages.append({"role": "user", "content": text})
            try:
                content = await self._reply_fn(self.transcript())
            except Exception:
                logger.exception("reply failed; showing apology")
                content = CHAT_APOLOGY
            turn = {"role": "assistant", "content": (content or "").strip() or CHAT_APOLOGY}
            self.messages.append(turn)
            return turn
        finally:
            self._busy = False

    def announce_completion(self, analysis: Optional[dict]) -> bool:
        """Append the 'analysis finished' turn once, when the lead completes."""
        if self._announced or not analysis:
            return False
        self.messages.append({"role": "assistant", "content": completion_message(analysis)})
        self._announced = True
        return True


def http_reply_fn(base_url: str, lead_id: str, *, session: Optional[requests.Session] = None,
                  timeout: float = 60.0) -> ReplyFn:
    """Reply callable posting the transcript to POST {base_url}/chat."""
    s = session or requests.Session()
    url = f"{base_url.rstrip('/')}/chat"

    def _post(messages: Transcript) -> str:
        resp = s.post(url, json={"messages": messages, "lead_id": lead_id}, timeout=timeout)
        resp.raise_for_status()
        return resp.json().get("content") or ""

    async def reply(messages: Transcript) -> str:
        return await asyncio.to_thread(_post, messages)

    return reply
