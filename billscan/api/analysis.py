from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from billscan.core.db import get_db
from billscan.models.schemas import AnalyzeRequest, AnalyzeResponse, ErrorResponse
from billscan.services import analysis_service
from billscan.services.errors import LeadNotFound, MalformedAnalysis

logger = logging.getLogger("billscan.api.analysis")
router = APIRouter()

# outcome kind -> HTTP status for the `{error}` body
_ERROR_STATUS = {
    LeadNotFound.kind: 404,
    MalformedAnalysis.kind: 502,
}
_ERROR_RESPONSES = {code: {"model": ErrorResponse} for code in (404, 500, 502)}


def _analyze_impl(body: AnalyzeRequest, db: Session):
    logger.info("POST /analyze-bill lead=%s", body.lead_id)
    outcome = analysis_service.run_analysis(db, body.lead_id, body.document_url)
    if outcome.ok:
        return AnalyzeResponse(success=True, analysis=outcome.analysis, source=outcome.source)

    status = _ERROR_STATUS.get(outcome.kind or "", 500)
    logger.info("POST /analyze-bill lead=%s failed kind=%s status=%d", body.lead_id, outcome.kind, status)
    err = ErrorResponse(error=outcome.error or "analysis failed")
    return JSONResponse(status_code=status, content=err.model_dump())


@router.post("/analyze-bill", response_model=AnalyzeResponse, responses=_ERROR_RESPONSES, name="analyze_bill")
def analyze_bill(body: AnalyzeRequest, db: Session = Depends(get_db)):
    return _analyze_impl(body, db)


@router.post("/analyze-bill/", response_model=AnalyzeResponse, responses=_ERROR_RESPONSES,
             include_in_schema=False, name="analyze_bill_slash")
def analyze_bill_slash(body: AnalyzeRequest, db: Session = Depends(get_db)):
    return _analyze_impl(body, db)
