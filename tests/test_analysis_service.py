import json

from billscan.services import analysis_service, leads_repo
from billscan.services.errors import MalformedReasoningResponse, ReasoningServiceUnavailable

GOOD = {
    "monthly_avg": 245,
    "daily_kwh": 22.5,
    "zero_bill_system": "6.6kW Solar + 10kWh Battery",
    "necessity_explanation": "Covers the evening peak.",
    "cost_10_years": 29400,
    "energy_profile": "Evening Peaking",
    "potential_savings": 185,
    "roi_years": 4.2,
}


def test_string_in_list_is_normalized_and_committed(db, make_lead, fake_reasoning):
    lead = make_lead("https://store/x.pdf")
    fake = fake_reasoning(json.dumps([json.dumps(GOOD)]))

    outcome = analysis_service.run_analysis(db, lead.id, "https://store/x.pdf")

    assert outcome.ok and outcome.source == "model"
    assert outcome.analysis["monthly_avg"] == 245
    assert fake.calls[0]["json_mode"] is True
    assert "https://store/x.pdf" in fake.calls[0]["prompt"]

    stored = leads_repo.get_lead(db, lead.id)
    assert stored.status == "completed"
    assert stored.analysis == outcome.analysis
    assert stored.analysis_source == "model"


def test_second_run_on_completed_lead_is_a_noop(db, make_lead, fake_reasoning):
    lead = make_lead()
    fake = fake_reasoning(json.dumps(GOOD), json.dumps(dict(GOOD, monthly_avg=999)))

    first = analysis_service.run_analysis(db, lead.id, lead.document_url)
    second = analysis_service.run_analysis(db, lead.id, lead.document_url)

    assert first.ok and not first.noop
    assert second.ok and second.noop
    assert second.analysis == first.analysis
    assert len(fake.calls) == 1
    assert leads_repo.get_lead(db, lead.id).analysis["monthly_avg"] == 245


def test_malformed_output_marks_lead_failed(db, make_lead, fake_reasoning):
    lead = make_lead()
    fake_reasoning("Sorry, I cannot read that bill.")

    outcome = analysis_service.run_analysis(db, lead.id, lead.document_url)

    assert not outcome.ok
    assert outcome.kind == "MalformedAnalysis"
    stored = leads_repo.get_lead(db, lead.id)
    assert stored.status == "failed"
    assert stored.analysis is None
    assert stored.error.startswith("MalformedAnalysis")


def test_empty_candidate_envelope_is_malformed(db, make_lead, fake_reasoning):
    lead = make_lead()
    fake_reasoning(MalformedReasoningResponse("response has no candidate content", raw="{}"))

    outcome = analysis_service.run_analysis(db, lead.id, lead.document_url)

    assert outcome.kind == "MalformedAnalysis"
    assert leads_repo.get_lead(db, lead.id).status == "failed"


def test_unavailable_service_falls_back_to_placeholder(db, make_lead, fake_reasoning):
    lead = make_lead()
    fake_reasoning(ReasoningServiceUnavailable("GEMINI_API_KEY is not configured"))

    outcome = analysis_service.run_analysis(db, lead.id, lead.document_url)

    assert outcome.ok
    assert outcome.source == "placeholder"
    assert outcome.analysis == analysis_service.placeholder_analysis().model_dump()
    stored = leads_repo.get_lead(db, lead.id)
    assert stored.status == "completed"
    assert stored.analysis_source == "placeholder"


def test_missing_api_key_uses_placeholder_without_patching(db, make_lead):
    # conftest clears GEMINI_API_KEY, so the real adapter refuses to call out
    lead = make_lead()
    outcome = analysis_service.run_analysis(db, lead.id, lead.document_url)
    assert outcome.ok and outcome.source == "placeholder"


def test_unknown_lead_reports_not_found(db, fake_reasoning):
    fake = fake_reasoning(json.dumps(GOOD))
    outcome = analysis_service.run_analysis(db, "nope", "https://store/x.pdf")
    assert outcome.kind == "NotFound"
    assert fake.calls == []


def test_stored_document_url_wins(db, make_lead, fake_reasoning):
    lead = make_lead("https://store/submitted.pdf")
    fake = fake_reasoning(json.dumps(GOOD))
    analysis_service.run_analysis(db, lead.id, "https://elsewhere/other.pdf")
    assert "https://store/submitted.pdf" in fake.calls[0]["prompt"]


def test_unexpected_error_is_contained_and_lead_stays_processing(db, make_lead, fake_reasoning, monkeypatch):
    lead = make_lead()
    fake_reasoning(json.dumps(GOOD))

    def boom(*a, **kw):
        raise RuntimeError("database went away")

    monkeypatch.setattr(leads_repo, "mark_completed", boom)
    outcome = analysis_service.run_analysis(db, lead.id, lead.document_url)

    assert not outcome.ok
    assert outcome.kind == "InternalError"
    assert leads_repo.get_lead(db, lead.id).status == "processing"


def test_background_job_uses_its_own_session(db, make_lead, fake_reasoning):
    lead = make_lead()
    fake_reasoning(json.dumps(GOOD))

    outcome = analysis_service.run_analysis_job(lead.id, lead.document_url)

    assert outcome.ok
    db.expire_all()
    assert leads_repo.get_lead(db, lead.id).status == "completed"


def test_non_finite_number_marks_lead_failed(db, make_lead, fake_reasoning):
    lead = make_lead()
    fake_reasoning(json.dumps(dict(GOOD, monthly_avg="NaN")))

    outcome = analysis_service.run_analysis(db, lead.id, lead.document_url)

    assert outcome.kind == "MalformedAnalysis"
    stored = leads_repo.get_lead(db, lead.id)
    assert stored.status == "failed"
    assert stored.analysis is None


def test_null_text_part_from_provider_marks_lead_failed(db, make_lead, monkeypatch):
    from billscan.services import reasoning_service

    class Response:
        status_code = 200
        text = ""

        def json(self):
            return {"candidates": [{"content": {"parts": [{"text": None}]}}]}

    class Session:
        def post(self, *a, **kw):
            return Response()

    monkeypatch.setattr(reasoning_service, "GEMINI_API_KEY", "test-key")
    monkeypatch.setattr(reasoning_service, "_get_session", lambda: Session())
    lead = make_lead()

    outcome = analysis_service.run_analysis(db, lead.id, lead.document_url)

    assert outcome.kind == "MalformedAnalysis"
    assert leads_repo.get_lead(db, lead.id).status == "failed"
