from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from billscan.core.db import get_db
from billscan.models.schemas import ErrorResponse, LeadCreate, LeadCreated, LeadOut
from billscan.services import analysis_service, document_store, leads_repo
from billscan.services.errors import UploadFailure

router = APIRouter()
logger = logging.getLogger("billscan.api.leads")

# `{error}` bodies returned by the submission handler
_SUBMIT_ERRORS = {
    400: {"model": ErrorResponse},
    413: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}


@router.post("", response_model=LeadCreated, status_code=201, responses=_SUBMIT_ERRORS, name="submit_lead")
@router.post("/", response_model=LeadCreated, status_code=201, responses=_SUBMIT_ERRORS,
             include_in_schema=False, name="submit_lead_slash")
async def submit_lead(
    background: BackgroundTasks,
    name: str = Form(...),
    email: str = Form(...),
    phone: str = Form(...),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
):
    """
    Bill submission: upload -> insert lead (processing) -> schedule analysis.
    No lead row is created when the upload fails.
    """
    try:
        contact = LeadCreate(name=name, email=email, phone=phone)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

    content = await file.read()
    try:
        document_url = document_store.save(content, file.filename)
    except UploadFailure as e:
        logger.warning("submission rejected: %s", e)
        return JSONResponse(status_code=e.status_code, content=ErrorResponse(error=str(e)).model_dump())

    try:
        lead = leads_repo.create_lead(
            db,
            name=contact.name,
            email=contact.email,
            phone=contact.phone,
            document_url=document_url,
        )
        db.commit()
    except Exception:
        db.rollback()
        document_store.delete(document_url)
        logger.exception("lead insert failed; upload discarded url=%s", document_url)
        body = ErrorResponse(error="Could not save your request. Please try again.")
        return JSONResponse(status_code=500, content=body.model_dump())

    background.add_task(analysis_service.run_analysis_job, lead.id, document_url)
    logger.info("submission accepted lead=%s slug=%s", lead.id, lead.slug)
    return LeadCreated(id=lead.id, slug=lead.slug, status=lead.status, url=f"/bill/{lead.slug}")


@router.get("/{slug}", response_model=LeadOut, responses={404: {"model": ErrorResponse}})
def get_lead(slug: str, db: Session = Depends(get_db)):
    lead = leads_repo.get_lead_by_slug(db, slug)
    if lead is None:
        logger.info("lead lookup slug=%s -> not found", slug)
        return JSONResponse(status_code=404, content=ErrorResponse(error=f"Lead {slug} not found").model_dump())
    return LeadOut.model_validate(lead)
