# billscan/models/schemas.py
import re
from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

_NUMBER_NOISE = re.compile(r"[,$€£\s]")
_LEADING_NUMBER = re.compile(r"^[-+]?\d+(?:\.\d+)?")


def _to_number(v: Any) -> Any:
    """'$1,245' -> 1245.0, '22.5 kWh' -> 22.5; anything else is left for pydantic to reject."""
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        m = _LEADING_NUMBER.match(_NUMBER_NOISE.sub("", v))
        if m:
            return float(m.group(0))
    return v


# ---------- Analysis ----------
class Analysis(BaseModel):
    # NaN/inf would serialize as null on a completed lead
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    monthly_avg: float
    daily_kwh: float
    zero_bill_system: str = Field(..., min_length=1)
    necessity_explanation: Optional[str] = None
    cost_10_years: float
    energy_profile: Optional[str] = None
    potential_savings: float
    roi_years: float

    @field_validator(
        "monthly_avg", "daily_kwh", "cost_10_years", "potential_savings", "roi_years",
        mode="before",
    )
    @classmethod
    def _numeric(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("boolean is not a number")
        return _to_number(v)

    @field_validator("zero_bill_system", "necessity_explanation", "energy_profile", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


ANALYSIS_NUMERIC_FIELDS = ("monthly_avg", "daily_kwh", "cost_10_years", "potential_savings", "roi_years")


# ---------- Leads ----------
class LeadCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=160)
    email: str = Field(..., max_length=160, pattern=r"^[\w\.\+-]+@[\w\.-]+\.\w+$")  # Basic email validation
    phone: str = Field(..., min_length=8, max_length=60)

    @field_validator("name", "email", "phone", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class LeadCreated(BaseModel):
    id: str
    slug: str
    status: str
    url: str


class LeadOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    slug: str
    name: str
    email: str
    phone: str
    document_url: str
    status: Literal["processing", "completed", "failed"]
    analysis: Optional[Analysis] = None
    analysis_source: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


# ---------- Analysis job ----------
class AnalyzeRequest(BaseModel):
    lead_id: str = Field(..., min_length=1)
    # older front ends post `bill_url`
    document_url: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("document_url", "bill_url")
    )


class AnalyzeResponse(BaseModel):
    success: bool = True
    analysis: Analysis
    source: Literal["model", "placeholder"]


class ErrorResponse(BaseModel):
    error: str


# ---------- Chat ----------
class ConversationTurn(BaseModel):
    # anything other than user/assistant is dropped when the prompt is assembled
    role: str = "user"
    content: str = ""


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    messages: List[ConversationTurn] = Field(default_factory=list)
    lead_id: str = Field(..., min_length=1)


class ChatResponse(BaseModel):
    content: str
    # True when `content` is the substituted apology rather than a model reply
    degraded: bool = False
