import os
import json
from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from billscan.core.config import GEMINI_API_KEY, GEMINI_BASE_URL, GEMINI_MODEL
from billscan.core.logger import logger
from billscan.services.errors import MalformedReasoningResponse, ReasoningServiceUnavailable

# ---------- Transport ----------
# Bill analysis prompts are long-running on the provider side; a slow read is
# normal, a slow connect is not.
CONNECT_TIMEOUT = float(os.getenv("GEMINI_CONNECT_TIMEOUT", "3"))
READ_TIMEOUT = float(os.getenv("GEMINI_READ_TIMEOUT", "90"))
# Transport retries only; a malformed answer is never re-asked.
TOTAL_RETRIES = int(os.getenv("GEMINI_TOTAL_RETRIES", "3"))
BACKOFF_FACTOR = float(os.getenv("GEMINI_BACKOFF", "1.5"))
# one analysis job plus a handful of chat turns in flight per worker
POOL_MAXSIZE = int(os.getenv("GEMINI_POOL_MAXSIZE", "4"))

# 429 is Gemini's per-minute quota; 408/5xx are transient on generateContent
RETRY_STATUSES = frozenset({408, 429, 500, 502, 503, 504})

_session: Optional[requests.Session] = None


def _build_retry() -> Retry:
    return Retry(
        total=TOTAL_RETRIES,
        backoff_factor=BACKOFF_FACTOR,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=frozenset({"POST"}),
        respect_retry_after_header=True,
        raise_on_status=False,
    )


def _get_session() -> requests.Session:
    global _session
    if _session is None:
        s = requests.Session()
        s.mount(GEMINI_BASE_URL, HTTPAdapter(max_retries=_build_retry(), pool_maxsize=POOL_MAXSIZE))
        _session = s
    return _session


def _headers() -> Dict[str, str]:
    return {
        "x-goog-api-key": GEMINI_API_KEY,
        "Content-Type": "application/json",
    }


def _endpoint() -> str:
    return f"{GEMINI_BASE_URL}/models/{GEMINI_MODEL}:generateContent"


def is_configured() -> bool:
    return bool(GEMINI_API_KEY)


def _first_candidate_text(data: Dict) -> str:
    """Concatenated text parts of candidates[0]; raises if the envelope has none."""
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        parts = None
    if not isinstance(parts, list):
        raise MalformedReasoningResponse(
            "response has no candidate content", raw=json.dumps(data)[:2000]
        )
    text = "".join(
        p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)
    )
    if not text.strip():
        raise MalformedReasoningResponse("candidate text is empty", raw=json.dumps(data)[:2000])
    return text


# ------------ Public API ------------
def generate(prompt: str, *, json_mode: bool = False, temperature: float = 0.4, tag: str = "-") -> str:
    """
    One blocking generateContent call. Returns the first candidate's raw text.

    Raises ReasoningServiceUnavailable (no key, network error, HTTP >= 400)
    or MalformedReasoningResponse (no usable candidate). Callers decide the fallback.
    """
    if not is_configured():
        logger.warning("Gemini disabled: GEMINI_API_KEY not set (tag=%s)", tag)
        raise ReasoningServiceUnavailable("GEMINI_API_KEY is not configured")

    generation_config: Dict = {"temperature": temperature}
    if json_mode:
        generation_config["responseMimeType"] = "application/json"

    body = {
        "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        "generationConfig": generation_config,
    }

    try:
        s = _get_session()
        resp = s.post(_endpoint(), headers=_headers(), json=body, timeout=(CONNECT_TIMEOUT, READ_TIMEOUT))
    except requests.RequestException as e:
        logger.error(f"Gemini network error (tag={tag}): {repr(e)}")
        raise ReasoningServiceUnavailable(f"reasoning service unreachable: {e.__class__.__name__}") from e

    if resp.status_code >= 400:
        logger.warning(f"Gemini HTTP {resp.status_code} (tag={tag}): {resp.text[:300]}")
        raise ReasoningServiceUnavailable(f"reasoning service returned HTTP {resp.status_code}")

    try:
        data = resp.json()
    except ValueError:
        logger.error(f"Gemini returned non-JSON envelope (tag={tag}): {resp.text[:300]}")
        raise MalformedReasoningResponse("response envelope is not JSON", raw=resp.text[:2000])

    text = _first_candidate_text(data)
    logger.info("Gemini ok tag=%s json_mode=%s len=%d", tag, json_mode, len(text))
    return text
