# backend/cv_intelligence/core/errors.py
"""
Error taxonomy for the CV Intelligence core.

Every error carries a stable `code`, a human message, optional `details`
(rendered as the envelope's `data`) and the HTTP status the host API uses.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class CVIntelligenceError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidInput(CVIntelligenceError):
    code = "invalid_input"
    status_code = 400


class ValidationFailed(InvalidInput):
    code = "validation_failed"

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Validation failed", {"errors": self.errors})


class NotFound(CVIntelligenceError):
    # also used for foreign batches so existence never leaks across owners
    code = "not_found"
    status_code = 404


class AlreadyProcessing(CVIntelligenceError):
    code = "already_processing"
    status_code = 409


class InvalidStateTransition(CVIntelligenceError):
    code = "invalid_state_transition"
    status_code = 500


class ExtractionFailed(CVIntelligenceError):
    code = "extraction_failed"
    status_code = 422

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        self.reason = reason
        super().__init__(f"{filename}: {reason}", {"filename": filename, "reason": reason})

    def as_failure(self) -> Dict[str, str]:
        return {"filename": self.filename, "reason": self.reason}


class EmptyBatch(CVIntelligenceError):
    code = "empty_batch"
    status_code = 422

    def __init__(self, failures: Optional[List[Dict[str, str]]] = None, batch: Optional[Dict[str, Any]] = None):
        self.failures = list(failures or [])
        details: Dict[str, Any] = {"failures": self.failures}
        if batch is not None:
            details["batch"] = batch
        super().__init__("No CV could be analyzed; batch marked as failed", details)


__all__ = [
    "CVIntelligenceError",
    "InvalidInput",
    "ValidationFailed",
    "NotFound",
    "AlreadyProcessing",
    "InvalidStateTransition",
    "ExtractionFailed",
    "EmptyBatch",
]
