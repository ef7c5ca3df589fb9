"""
Client-side convergence on a lead's analysis.

The loop reads the lead by slug at a fixed interval until the record leaves
`processing`. Lookups are strictly sequential, the wait between them is
cancellable, and "not found" (the insert may not be visible yet) is retried a
bounded number of times before it is reported as its own terminal state.

Reads go through a `LeadSource`, so the transport can be swapped (HTTP, direct
record store access, a push channel) without touching the loop.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol, Union

import requests

from billscan.core.config import POLL_INTERVAL

logger = logging.getLogger("billscan.client.convergence")


class LeadSource(Protocol):
    async def fetch(self, slug: str) -> Optional[dict]:
        """The lead record as a dict, or None when no lead has this slug."""
        ...


class HttpLeadSource:
    """GET {base_url}/leads/{slug} with a blocking requests session run off the event loop."""

    def __init__(self, base_url: str, *, session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _get(self, slug: str) -> Optional[dict]:
        resp = self.session.get(f"{self.base_url}/leads/{slug}", timeout=self.timeout)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    async def fetch(self, slug: str) -> Optional[dict]:
        return await asyncio.to_thread(self._get, slug)


class RepositoryLeadSource:
    """Reads straight from the record store (same-process consumers and tests)."""

    def __init__(self, scope_factory=None):
        if scope_factory is None:
            from billscan.core.db import session_scope
            scope_factory = session_scope
        self._scope = scope_factory

    def _get(self, slug: str) -> Optional[dict]:
        from billscan.services import leads_repo

        with self._scope() as db:
            lead = leads_repo.get_lead_by_slug(db, slug)
            return lead.to_dict() if lead is not None else None

    async def fetch(self, slug: str) -> Optional[dict]:
        return await asyncio.to_thread(self._get, slug)


class ConvergenceState(str, Enum):
    LOADING = "loading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    NOT_FOUND = "not_found"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"
    ERROR = "error"


FINAL_STATES = frozenset({
    ConvergenceState.COMPLETED,
    ConvergenceState.FAILED,
    ConvergenceState.NOT_FOUND,
    ConvergenceState.CANCELLED,
    ConvergenceState.TIMEOUT,
    ConvergenceState.ERROR,
})


@dataclass
class Observation:
    state: ConvergenceState
    lead: Optional[dict] = None
    lookups: int = 0
    error: Optional[str] = None

    @property
    def final(self) -> bool:
        return self.state in FINAL_STATES


UpdateCallback = Callable[[Observation], Union[None, Awaitable[None]]]


class ConvergenceLoop:
    def __init__(
        self,
        source: LeadSource,
        slug: str,
        *,
        interval: float = POLL_INTERVAL,
        not_found_retries: int = 3,
        max_errors: int = 3,
        max_polls: Optional[int] = None,
        on_update: Optional[UpdateCallback] = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.source = source
        self.slug = slug
        self.interval = interval
        self.not_found_retries = not_found_retries
        self.max_errors = max_errors
        self.max_polls = max_polls
        self.on_update = on_update

        self.lookups = 0
        self.last: Observation = Observation(ConvergenceState.LOADING)
        self._cancelled = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    # ---- control ------------------------------------------------------------
    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.ensure_future(self.run())
        return self._task

    def cancel(self) -> None:
        """Stop polling; an in-flight lookup finishes but no further lookup is issued."""
        if not self._cancelled.is_set():
            logger.info("convergence slug=%s cancelled after %d lookups", self.slug, self.lookups)
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    # ---- internals ----------------------------------------------------------
    async def _emit(self, obs: Observation) -> Observation:
        self.last = obs
        if self.on_update is not None:
            res = self.on_update(obs)
            if asyncio.iscoroutine(res):
                await res
        return obs

    async def _wait(self) -> bool:
        """Sleep one interval; True if cancelled meanwhile."""
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            return False
        return True

    def _observe(self, lead: dict) -> Observation:
        status = (lead or {}).get("status")
        try:
            state = ConvergenceState(status)
        except ValueError:
            return Observation(ConvergenceState.ERROR, lead=lead, lookups=self.lookups,
                               error=f"unknown status {status!r}")
        if state not in (ConvergenceState.PROCESSING, ConvergenceState.COMPLETED, ConvergenceState.FAILED):
            return Observation(ConvergenceState.ERROR, lead=lead, lookups=self.lookups,
                               error=f"unexpected status {status!r}")
        return Observation(state, lead=lead, lookups=self.lookups)

    # ---- main loop ----------------------------------------------------------
    async def run(self) -> Observation:
        misses = 0
        errors = 0
        while True:
            if self.cancelled:
                return await self._emit(Observation(ConvergenceState.CANCELLED, lead=self.last.lead, lookups=self.lookups))

            self.lookups += 1
            try:
                lead = await self.source.fetch(self.slug)
            except Exception as e:
                errors += 1
                logger.warning("convergence slug=%s lookup %d failed (%d/%d): %r",
                               self.slug, self.lookups, errors, self.max_errors, e)
                if errors >= self.max_errors:
                    return await self._emit(Observation(ConvergenceState.ERROR, lead=self.last.lead,
                                                         lookups=self.lookups, error=str(e)))
            else:
                errors = 0
                if lead is None:
                    misses += 1
                    logger.info("convergence slug=%s not found (%d/%d)", self.slug, misses, self.not_found_retries + 1)
                    if misses > self.not_found_retries:
                        return await self._emit(Observation(ConvergenceState.NOT_FOUND, lookups=self.lookups))
                else:
                    obs = await self._emit(self._observe(lead))
                    if obs.final:
                        logger.info("convergence slug=%s -> %s after %d lookups",
                                    self.slug, obs.state.value, self.lookups)
                        return obs

            if self.max_polls is not None and self.lookups >= self.max_polls:
                return await self._emit(Observation(ConvergenceState.TIMEOUT, lead=self.last.lead, lookups=self.lookups))

            if await self._wait():
                return await self._emit(Observation(ConvergenceState.CANCELLED, lead=self.last.lead, lookups=self.lookups))


async def converge(source: LeadSource, slug: str, **kwargs) -> Observation:
    return await ConvergenceLoop(source, slug, **kwargs).run()
