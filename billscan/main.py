from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
import logging

from billscan.api import analysis, chat, health, leads
from billscan.core.config import CORS_ORIGINS, LOG_LEVEL
from billscan.core.db import create_all
from billscan.core.logger import configure_logging
from billscan.middleware.request_logger import RequestLoggerMiddleware
from billscan.services import document_store, reasoning_service

# ---- Logging config ---------------------------------------------------------
configure_logging(LOG_LEVEL)
logger = logging.getLogger("billscan.main")
logger.info("Starting Billscan backend with LOG_LEVEL=%s", LOG_LEVEL)

# ---- FastAPI app ------------------------------------------------------------
app = FastAPI(title="Billscan Backend")
app.add_middleware(RequestLoggerMiddleware)

# ---- CORS -------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---- Routers ----------------------------------------------------------------
# Bill submission + public lookup by slug (/bill/:slug in the front end)
app.include_router(leads.router,    prefix="/leads",  tags=["Leads"])
# Analysis job invocation
app.include_router(analysis.router,                   tags=["Analysis"])
# Assistant grounded on the lead's analysis
app.include_router(chat.router,     prefix="/chat",   tags=["Chat"])
# Health + introspection
app.include_router(health.router,   prefix="/health", tags=["Health"])

# ---- Document store ---------------------------------------------------------
app.mount(
    document_store.STATIC_PREFIX,
    StaticFiles(directory=str(document_store.document_dir())),
    name="bills",
)

logger.info("Routers registered.")


# ---- Startup ----------------------------------------------------------------
@app.on_event("startup")
def _startup() -> None:
    # Auto-create tables (safe to run repeatedly)
    create_all()
    if not reasoning_service.is_configured():
        logger.warning("GEMINI_API_KEY missing: analyses will use the placeholder result")
    logger.info("Startup completed.")
