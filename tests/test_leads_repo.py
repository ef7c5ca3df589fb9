import re

import pytest
from sqlalchemy import text

from billscan.models.lead_state import IllegalTransition, LeadStatus
from billscan.services import leads_repo

ANALYSIS = {
    "monthly_avg": 245.0, "daily_kwh": 22.5, "zero_bill_system": "6.6kW", "necessity_explanation": None,
    "cost_10_years": 29400.0, "energy_profile": None, "potential_savings": 185.0, "roi_years": 4.2,
}


def test_create_lead_starts_processing_without_analysis(db, make_lead):
    lead = make_lead()
    assert lead.status == "processing"
    assert lead.analysis is None
    assert re.fullmatch(r"[a-z0-9]{8}", lead.slug)
    assert leads_repo.get_lead_by_slug(db, lead.slug).id == lead.id


def test_analysis_column_is_sql_null_while_processing(db, make_lead):
    lead = make_lead()
    raw = db.execute(text("SELECT analysis IS NULL FROM leads WHERE id = :id"), {"id": lead.id}).scalar()
    assert raw == 1


def test_slug_collision_precheck_retries(db, make_lead, monkeypatch):
    first = make_lead()
    slugs = iter([first.slug, "fresh123"])
    monkeypatch.setattr(leads_repo, "new_slug", lambda length=8: next(slugs))
    second = make_lead()
    assert second.slug == "fresh123"


def test_slug_exhaustion_raises(db, make_lead, monkeypatch):
    first = make_lead()
    monkeypatch.setattr(leads_repo, "new_slug", lambda length=8: first.slug)
    with pytest.raises(RuntimeError):
        make_lead()


def test_completed_transition_happens_once(db, make_lead):
    lead = make_lead()
    assert leads_repo.mark_completed(db, lead.id, ANALYSIS) is True
    db.commit()
    assert leads_repo.mark_completed(db, lead.id, dict(ANALYSIS, monthly_avg=1.0)) is False
    assert leads_repo.mark_failed(db, lead.id, "late failure") is False
    db.commit()

    stored = leads_repo.get_lead(db, lead.id)
    assert stored.status == "completed"
    assert stored.analysis["monthly_avg"] == 245.0
    assert stored.analysis_source == "model"
    assert stored.completed_at is not None


def test_failed_transition_keeps_analysis_null(db, make_lead):
    lead = make_lead()
    assert leads_repo.mark_failed(db, lead.id, "MalformedAnalysis: not valid JSON") is True
    db.commit()
    stored = leads_repo.get_lead(db, lead.id)
    assert stored.status == "failed"
    assert stored.analysis is None
    assert stored.error.startswith("MalformedAnalysis")


def test_transition_back_to_processing_is_illegal(db, make_lead):
    lead = make_lead()
    with pytest.raises(IllegalTransition):
        leads_repo.transition(db, lead.id, LeadStatus.PROCESSING)


def test_count_by_status(db, make_lead):
    a = make_lead()
    make_lead()
    leads_repo.mark_failed(db, a.id, "boom")
    db.commit()
    assert leads_repo.count_by_status(db) == {"processing": 1, "completed": 0, "failed": 1}
