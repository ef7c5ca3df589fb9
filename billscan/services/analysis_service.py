# billscan/services/analysis_service.py
"""
Analysis job: lead id + bill URL -> reasoning service -> normalized Analysis
-> one guarded write to the lead record.

Outcome policy
  - model answer normalizes        -> completed, analysis_source="model"
  - model answer is malformed      -> failed, error summary, analysis stays NULL
  - reasoning service unavailable  -> completed with the placeholder analysis,
                                      analysis_source="placeholder"
  - lead already completed/failed  -> no-op, stored state is returned
  - anything unexpected            -> lead left in processing, error outcome
Nothing raises past run_analysis().
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from billscan.core.config import ANALYSIS_CONFIG
from billscan.core.db import session_scope
from billscan.models.lead_state import LeadStatus
from billscan.models.schemas import Analysis
from billscan.services import leads_repo, reasoning_service
from billscan.services.errors import (
    LeadNotFound,
    MalformedAnalysis,
    MalformedReasoningResponse,
    ReasoningServiceUnavailable,
)
from billscan.services.normalizer import normalize_analysis

logger = logging.getLogger("billscan.analysis")

SOURCE_MODEL = "model"
SOURCE_PLACEHOLDER = "placeholder"

DEFAULT_PROMPT = (
    "You are a senior solar engineer. Analyze this bill URL: {document_url}\n"
    "Return ONLY a JSON object with the fields monthly_avg (number), daily_kwh (number), "
    "zero_bill_system (string), necessity_explanation (string), cost_10_years (number), "
    "energy_profile (string), potential_savings (number), roi_years (number)."
)

DEFAULT_PLACEHOLDER = {
    "monthly_avg": 250,
    "daily_kwh": 28,
    "zero_bill_system": "10.5kW Solar + Tesla Powerwall 3",
    "necessity_explanation": "Your high evening consumption requires a large battery to bridge the night gap.",
    "cost_10_years": 30000,
    "energy_profile": "Evening Peaking",
    "potential_savings": 240,
    "roi_years": 5.5,
}


@dataclass
class AnalysisOutcome:
    ok: bool
    lead_id: str
    status: Optional[str] = None
    analysis: Optional[dict] = None
    source: Optional[str] = None
    kind: Optional[str] = None      # error kind when not ok
    error: Optional[str] = None
    noop: bool = False              # lead was already terminal


def build_prompt(document_url: str) -> str:
    template = ANALYSIS_CONFIG.get("prompt_template") or DEFAULT_PROMPT
    return template.format(document_url=document_url)


def placeholder_analysis() -> Analysis:
    return Analysis.model_validate(ANALYSIS_CONFIG.get("placeholder") or DEFAULT_PLACEHOLDER)


def _stored_outcome(db: Session, lead_id: str, *, noop: bool) -> AnalysisOutcome:
    db.expire_all()
    lead = leads_repo.get_lead(db, lead_id)
    if lead is None:
        return AnalysisOutcome(ok=False, lead_id=lead_id, kind=LeadNotFound.kind, error="lead not found")
    if lead.status == LeadStatus.COMPLETED.value:
        return AnalysisOutcome(
            ok=True, lead_id=lead_id, status=lead.status, analysis=lead.analysis,
            source=lead.analysis_source, noop=noop,
        )
    return AnalysisOutcome(
        ok=False, lead_id=lead_id, status=lead.status, kind=MalformedAnalysis.kind,
        error=lead.error or "analysis failed", noop=noop,
    )


def _produce(lead_id: str, document_url: str) -> tuple[Analysis, str]:
    """Ask the model; degrade to the placeholder when the service is unavailable."""
    try:
        raw = reasoning_service.generate(build_prompt(document_url), json_mode=True, temperature=0.2, tag=lead_id)
    except ReasoningServiceUnavailable as e:
        logger.warning("analysis lead=%s reasoning unavailable (%s) -> placeholder", lead_id, e)
        return placeholder_analysis(), SOURCE_PLACEHOLDER
    except MalformedReasoningResponse as e:
        raise MalformedAnalysis(str(e), raw=e.raw)
    return normalize_analysis(raw), SOURCE_MODEL


# ------------ Public API ------------
def run_analysis(db: Session, lead_id: str, document_url: str) -> AnalysisOutcome:
    """Commits its own write on `db`. Never throws."""
    try:
        lead = leads_repo.get_lead(db, lead_id)
        if lead is None:
            logger.warning("analysis lead=%s not found", lead_id)
            return AnalysisOutcome(ok=False, lead_id=lead_id, kind=LeadNotFound.kind, error="lead not found")

        if lead.status != LeadStatus.PROCESSING.value:
            logger.info("analysis lead=%s already %s -> no-op", lead_id, lead.status)
            return _stored_outcome(db, lead_id, noop=True)

        if document_url and document_url != lead.document_url:
            logger.warning("analysis lead=%s document_url mismatch; using stored url", lead_id)
        document_url = lead.document_url

        try:
            analysis, source = _produce(lead_id, document_url)
        except MalformedAnalysis as e:
            logger.error("analysis lead=%s malformed: %s raw=%r", lead_id, e, (e.raw or "")[:300])
            moved = leads_repo.mark_failed(db, lead_id, f"MalformedAnalysis: {e}")
            db.commit()
            if not moved:
                return _stored_outcome(db, lead_id, noop=True)
            return AnalysisOutcome(
                ok=False, lead_id=lead_id, status=LeadStatus.FAILED.value,
                kind=MalformedAnalysis.kind, error=str(e),
            )

        payload = analysis.model_dump()
        moved = leads_repo.mark_completed(db, lead_id, payload, source=source)
        db.commit()
        if not moved:
            # a concurrent trigger got there first; its result stands
            return _stored_outcome(db, lead_id, noop=True)

        logger.info("analysis lead=%s completed source=%s", lead_id, source)
        return AnalysisOutcome(
            ok=True, lead_id=lead_id, status=LeadStatus.COMPLETED.value,
            analysis=payload, source=source,
        )
    except Exception as e:
        logger.exception("analysis lead=%s internal error", lead_id)
        try:
            db.rollback()
        except Exception:
            logger.exception("analysis lead=%s rollback failed", lead_id)
        return AnalysisOutcome(ok=False, lead_id=lead_id, kind="InternalError", error=e.__class__.__name__)


def run_analysis_job(lead_id: str, document_url: str) -> AnalysisOutcome:
    """Background-task entry point with its own session."""
    with session_scope() as db:
        outcome = run_analysis(db, lead_id, document_url)
    logger.info("analysis job lead=%s ok=%s kind=%s", lead_id, outcome.ok, outcome.kind)
    return outcome
