# backend/cv_intelligence/pipeline/ingest.py
"""
Stage 0: upload validation + text loading.

validate_uploads() is pure: it looks at names, declared types and sizes and
returns every violation it finds, so the caller can show the full list at once.
load_text() turns one accepted file into normalized text or raises
ExtractionFailed for that file only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..core.errors import ExtractionFailed
from ..core.utils import normalize_text, read_any_bytes
from .state import UploadedFile

ALLOWED_CONTENT_TYPES = {
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}
# multipart clients that cannot guess a type send these; fall back to the extension
_GENERIC_CONTENT_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


def _file_errors(f: UploadedFile, allowed_ext: Sequence[str], max_bytes: int) -> List[str]:
    errors: List[str] = []
    name = f.filename or "(unnamed)"
    ext = Path(f.filename or "").suffix.lower()
    ctype = (f.content_type or "").split(";")[0].strip().lower()
    if ext not in allowed_ext or (ctype not in _GENERIC_CONTENT_TYPES and ctype not in ALLOWED_CONTENT_TYPES):
        errors.append(f"{name}: unsupported file type (allowed: PDF, TXT, DOC, DOCX)")
    if f.size > max_bytes:
        errors.append(f"{name}: file exceeds {max_bytes // (1024 * 1024)}MB limit")
    elif f.size == 0:
        errors.append(f"{name}: file is empty")
    return errors


def validate_uploads(
    jd_file: Optional[UploadedFile],
    resume_files: Optional[Sequence[UploadedFile]],
    options: Dict[str, Any],
) -> ValidationResult:
    allowed_ext = [e.lower() for e in options["allowed_extensions"]]
    max_bytes = int(options["max_file_bytes"])
    max_files = int(options["max_cv_files"])
    errors: List[str] = []

    if jd_file is None:
        errors.append("Job description file is required")
    else:
        errors.extend(_file_errors(jd_file, allowed_ext, max_bytes))

    resumes = list(resume_files or [])
    if not resumes:
        errors.append("At least 1 CV file is required")
    elif len(resumes) > max_files:
        errors.append(f"Maximum {max_files} CV files allowed")
    for f in resumes:
        errors.extend(_file_errors(f, allowed_ext, max_bytes))

    return ValidationResult(valid=not errors, errors=errors)


def load_text(f: UploadedFile, min_chars: int = 20) -> str:
    """Extract + normalize text; corrupt or near-empty documents raise ExtractionFailed."""
    try:
        raw = read_any_bytes(f.filename, f.content)
    except Exception as e:  # format libraries raise a zoo of exception types
        raise ExtractionFailed(f.filename, f"could not read document ({type(e).__name__}: {e})") from e
    text = normalize_text(raw)
    if len("".join(text.split())) < min_chars:
        raise ExtractionFailed(f.filename, "no readable text found")
    return text


__all__ = ["ValidationResult", "validate_uploads", "load_text", "ALLOWED_CONTENT_TYPES"]
