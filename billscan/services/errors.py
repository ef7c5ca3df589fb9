# billscan/services/errors.py
"""
Error taxonomy shared by the document store, the reasoning adapter,
the analysis orchestrator and the chat assembler.
"""
from __future__ import annotations

from typing import Optional


class BillscanError(Exception):
    """Base class; `kind` is the stable name reported to callers."""
    kind = "Error"


class UploadFailure(BillscanError):
    kind = "UploadFailure"

    def __init__(self, message: str, *, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class MalformedAnalysis(BillscanError):
    kind = "MalformedAnalysis"

    def __init__(self, message: str, *, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class ReasoningServiceError(BillscanError):
    kind = "ReasoningServiceError"


class ReasoningServiceUnavailable(ReasoningServiceError):
    """Missing credential, network failure or an HTTP error from the provider."""
    kind = "ReasoningServiceUnavailable"


class MalformedReasoningResponse(ReasoningServiceError):
    """The provider answered but the envelope has no usable candidate text."""
    kind = "MalformedReasoningResponse"

    def __init__(self, message: str, *, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class LeadNotFound(BillscanError):
    kind = "NotFound"
