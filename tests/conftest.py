import os
import sys
import tempfile

import pytest


def _ensure_repo_on_path() -> None:
    root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if root not in sys.path:
        sys.path.append(root)


_ensure_repo_on_path()

# Must be set before billscan.core.* is imported
_TMP = tempfile.mkdtemp(prefix="billscan-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["BILLSCAN_DOCUMENT_DIR"] = os.path.join(_TMP, "bills")
os.environ["BILLSCAN_PUBLIC_BASE_URL"] = "https://store"
os.environ["GEMINI_API_KEY"] = ""
os.environ.setdefault("BILLSCAN_LOG_LEVEL", "WARNING")

from billscan.core.db import SessionLocal, create_all, engine  # noqa: E402
from billscan.models.orm import Lead  # noqa: E402

create_all()


@pytest.fixture(autouse=True)
def _clean_leads():
    yield
    with engine.begin() as conn:
        conn.execute(Lead.__table__.delete())


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def make_lead(db):
    from billscan.services import leads_repo

    def _make(document_url: str = "https://store/x.pdf", **kw):
        lead = leads_repo.create_lead(
            db,
            name=kw.get("name", "Jane Doe"),
            email=kw.get("email", "jane@example.com"),
            phone=kw.get("phone", "+61 400 000 000"),
            document_url=document_url,
        )
        db.commit()
        return lead

    return _make


class FakeReasoning:
    """Scripted stand-in for reasoning_service.generate."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def __call__(self, prompt, *, json_mode=False, temperature=0.4, tag="-"):
        self.calls.append({"prompt": prompt, "json_mode": json_mode, "tag": tag})
        item = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def fake_reasoning(monkeypatch):
    from billscan.services import reasoning_service

    def _install(*results):
        fake = FakeReasoning(*results)
        monkeypatch.setattr(reasoning_service, "generate", fake)
        return fake

    return _install
