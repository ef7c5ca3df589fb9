from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Request
from fastapi.routing import APIRoute
from sqlalchemy.orm import Session

from billscan.core.config import GEMINI_MODEL
from billscan.core.db import get_db, ping as db_ping
from billscan.services import document_store, leads_repo, reasoning_service

logger = logging.getLogger("billscan.api.health")
router = APIRouter()


@router.get("/ping")
def ping():
    logger.info("GET /health/ping")
    return {"ok": True}


@router.get("/store")
def store_health(db: Session = Depends(get_db)):
    """Record store reachability plus lead counts per status."""
    reachable = db_ping()
    counts = leads_repo.count_by_status(db) if reachable else {}
    logger.info("GET /health/store reachable=%s counts=%s", reachable, counts)
    return {
        "ok": reachable,
        "leads": counts,
        "total": sum(counts.values()),
        "documents": str(document_store.document_dir()),
    }


@router.get("/reasoning")
def reasoning_health():
    # placeholder mode: analyses complete with the canned result
    configured = reasoning_service.is_configured()
    logger.info("GET /health/reasoning configured=%s", configured)
    return {
        "ok": True,
        "configured": configured,
        "model": GEMINI_MODEL,
        "mode": "model" if configured else "placeholder",
    }


@router.get("/routes")
def list_routes(request: Request):
    """API routes with their tags; mounts (the document store) are listed separately."""
    routes: List[Dict[str, Any]] = []
    mounts: List[str] = []
    for r in request.app.routes:
        if isinstance(r, APIRoute):
            routes.append({
                "path": r.path,
                "methods": sorted(r.methods),
                "name": r.name,
                "tags": list(r.tags),
            })
        elif getattr(r, "path", None) and not getattr(r, "methods", None):
            mounts.append(r.path)
    routes.sort(key=lambda x: (x["path"], x["methods"]))
    logger.info("GET /health/routes count=%d mounts=%d", len(routes), len(mounts))
    return {"ok": True, "routes": routes, "mounts": sorted(mounts)}
