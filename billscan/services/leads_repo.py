# billscan/services/leads_repo.py
import logging
import secrets
import string
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billscan.models import lead_state
from billscan.models.lead_state import LeadStatus
from billscan.models.orm import Lead

logger = logging.getLogger("billscan.leads_repo")

SLUG_ALPHABET = string.ascii_lowercase + string.digits
SLUG_LENGTH = 8
SLUG_ATTEMPTS = 5


def new_slug(length: int = SLUG_LENGTH) -> str:
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(length))


def slug_taken(db: Session, slug: str) -> bool:
    return db.scalar(select(Lead.id).where(Lead.slug == slug).limit(1)) is not None


def get_lead(db: Session, lead_id: str) -> Optional[Lead]:
    return db.get(Lead, lead_id)


def get_lead_by_slug(db: Session, slug: str) -> Optional[Lead]:
    return db.scalars(select(Lead).where(Lead.slug == slug).limit(1)).first()


def create_lead(db: Session, *, name: str, email: str, phone: str, document_url: str) -> Lead:
    """
    Insert a new lead in `processing` (flushed, not committed). The slug is
    checked before insert; the unique index catches the remaining race and we
    retry with a fresh slug.
    """
    for attempt in range(1, SLUG_ATTEMPTS + 1):
        slug = new_slug()
        if slug_taken(db, slug):
            logger.warning("slug collision (pre-check) slug=%s attempt=%d", slug, attempt)
            continue
        obj = Lead(
            id=uuid.uuid4().hex,
            slug=slug,
            name=name,
            email=email,
            phone=phone,
            document_url=document_url,
            status=LeadStatus.PROCESSING.value,
            analysis=None,
        )
        db.add(obj)
        try:
            db.flush()
        except IntegrityError:
            # lead creation is the first write of its unit of work, nothing else is lost
            db.rollback()
            logger.warning("slug collision (insert) slug=%s attempt=%d", slug, attempt)
            continue
        logger.info("lead created id=%s slug=%s", obj.id, obj.slug)
        return obj
    raise RuntimeError(f"could not allocate a unique slug after {SLUG_ATTEMPTS} attempts")


def transition(db: Session, lead_id: str, target: LeadStatus, *,
               expected: LeadStatus = LeadStatus.PROCESSING, **values) -> bool:
    """
    Single guarded update: the row moves only if it is still in `expected`.
    Returns False when the row was already elsewhere (or missing), leaving it untouched.
    """
    lead_state.ensure_transition(expected, target)
    lead_state.check_invariant(target, values.get("analysis"))

    now = datetime.utcnow()
    values.setdefault("updated_at", now)
    if lead_state.is_terminal(target):
        values.setdefault("completed_at", now)

    stmt = (
        update(Lead)
        .where(Lead.id == lead_id, Lead.status == expected.value)
        .values(status=target.value, **values)
        .execution_options(synchronize_session=False)
    )
    res = db.execute(stmt)
    moved = res.rowcount == 1
    if moved:
        logger.info("lead transition id=%s -> %s", lead_id, target.value)
    else:
        logger.info("lead transition skipped id=%s target=%s (not %s)", lead_id, target.value, expected.value)
    return moved


def mark_completed(db: Session, lead_id: str, analysis: dict, *, source: str = "model") -> bool:
    return transition(
        db, lead_id, LeadStatus.COMPLETED,
        analysis=analysis, analysis_source=source, error=None,
    )


def mark_failed(db: Session, lead_id: str, error: str) -> bool:
    return transition(db, lead_id, LeadStatus.FAILED, analysis=None, error=(error or "")[:2000])


def count_by_status(db: Session) -> dict:
    rows = db.execute(select(Lead.status, func.count(Lead.id)).group_by(Lead.status)).all()
    out = {s.value: 0 for s in LeadStatus}
    out.update({status: n for status, n in rows})
    return out
