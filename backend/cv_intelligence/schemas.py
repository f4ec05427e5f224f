# backend/cv_intelligence/schemas.py
"""
Request / response models for the REST layer.

Output models are built from ORM rows inside the session that loaded them,
so nothing lazy-loads after the session is closed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .db.models import BatchStatus, CvBatch, CvCandidate


# --- requests ---------------------------------------------------------------

class CreateBatchRequest(BaseModel):
    name: str = Field(default="", validation_alias=AliasChoices("name", "batchName"))


class ScheduleInterviewRequest(BaseModel):
    reference: Optional[str] = Field(default=None, validation_alias=AliasChoices("reference", "interviewId"))


# --- responses ----------------------------------------------------------------

class PersonalOut(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None


class CandidateOut(BaseModel):
    id: str
    batch_id: str
    filename: str
    position: int
    personal: PersonalOut
    skills: List[str]
    skills_matched: List[str]
    skills_missing: List[str]
    experience: List[Dict[str, Any]]
    education: List[Dict[str, Any]]
    experience_years: float
    score: int
    rank: int
    recommendation: str
    fit_level: str
    strengths: List[str]
    concerns: List[str]
    score_breakdown: Dict[str, Any]
    analysis_key: str
    scheduled_interview: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_row(cls, c: CvCandidate) -> "CandidateOut":
        return cls(
            id=c.id,
            batch_id=c.batch_id,
            filename=c.filename,
            position=c.position,
            personal=PersonalOut(name=c.name, email=c.email, phone=c.phone, location=c.location),
            skills=list(c.skills or []),
            skills_matched=list(c.skills_matched or []),
            skills_missing=list(c.skills_missing or []),
            experience=list(c.experience or []),
            education=list(c.education or []),
            experience_years=float(c.experience_years or 0.0),
            score=c.score,
            rank=c.rank,
            recommendation=c.recommendation,
            fit_level=c.fit_level,
            strengths=list(c.strengths or []),
            concerns=list(c.concerns or []),
            score_breakdown=dict(c.score_breakdown or {}),
            analysis_key=c.analysis_key,
            scheduled_interview=c.scheduled_interview,
            created_at=c.created_at,
        )


class BatchOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    owner_id: str
    status: str
    cv_count: int
    candidate_count: int
    processing_time_ms: Optional[int] = None
    summary: Optional[Dict[str, Any]] = None
    failures: List[Dict[str, str]] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, b: CvBatch) -> "BatchOut":
        out = cls.model_validate(b)
        if out.status != BatchStatus.COMPLETED:
            out.summary = None
        out.failures = list(out.failures or [])
        return out


class BatchDetail(BaseModel):
    batch: BatchOut
    candidates: List[CandidateOut]


__all__ = [
    "CreateBatchRequest",
    "ScheduleInterviewRequest",
    "PersonalOut",
    "CandidateOut",
    "BatchOut",
    "BatchDetail",
]
