# backend/cv_intelligence/pipeline/state.py
"""
Typed payloads passed between pipeline stages.

Extracted fields that could not be found are `None` (scalars) or empty lists;
`None` is the only "not extracted" marker and it travels unchanged to the API.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class UploadedFile:
    """An uploaded document held in memory (bytes come from the blob/multipart layer)."""
    filename: str
    content: bytes = field(repr=False)
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)


class JobRequirements(BaseModel):
    """Requirements parsed once from the JD; used for scoring then discarded."""
    title: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    min_years: Optional[float] = None
    degree_level: Optional[str] = None


class PersonalInfo(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None

    def missing_fields(self) -> List[str]:
        return [k for k, v in self.model_dump().items() if v is None]


class ExperienceEntry(BaseModel):
    role: Optional[str] = None
    company: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    achievements: List[str] = Field(default_factory=list)


class EducationEntry(BaseModel):
    institution: Optional[str] = None
    degree: Optional[str] = None
    field: Optional[str] = None
    year: Optional[str] = None


class CandidateProfile(BaseModel):
    personal: PersonalInfo = Field(default_factory=PersonalInfo)
    skills: List[str] = Field(default_factory=list)
    experience: List[ExperienceEntry] = Field(default_factory=list)   # most recent first
    education: List[EducationEntry] = Field(default_factory=list)
    experience_years: float = 0.0


class ScoreResult(BaseModel):
    score: int
    recommendation: str
    fit_level: str
    skills_matched: List[str] = Field(default_factory=list)
    skills_missing: List[str] = Field(default_factory=list)
    breakdown: Dict[str, Any] = Field(default_factory=dict)
    strengths: List[str] = Field(default_factory=list)
    concerns: List[str] = Field(default_factory=list)


class CandidateAnalysis(BaseModel):
    """One successfully analyzed CV, before ranking."""
    filename: str
    position: int = 0               # submission order, used as the tie-break
    analysis_key: str
    profile: CandidateProfile
    result: ScoreResult

    @property
    def score(self) -> int:
        return self.result.score

    def to_record(self, rank: int) -> Dict[str, Any]:
        """Flatten into CvCandidate column values."""
        p = self.profile
        return {
            "filename": self.filename,
            "position": self.position,
            "name": p.personal.name,
            "email": p.personal.email,
            "phone": p.personal.phone,
            "location": p.personal.location,
            "skills": list(p.skills),
            "skills_matched": list(self.result.skills_matched),
            "skills_missing": list(self.result.skills_missing),
            "experience": [e.model_dump() for e in p.experience],
            "education": [e.model_dump() for e in p.education],
            "experience_years": p.experience_years,
            "score": self.result.score,
            "rank": rank,
            "recommendation": self.result.recommendation,
            "fit_level": self.result.fit_level,
            "strengths": list(self.result.strengths),
            "concerns": list(self.result.concerns),
            "score_breakdown": dict(self.result.breakdown),
            "analysis_key": self.analysis_key,
        }


class BatchSummary(BaseModel):
    total_processed: int
    average_score: int
    highly_recommended_count: int
    failed_count: int = 0


__all__ = [
    "UploadedFile",
    "JobRequirements",
    "PersonalInfo",
    "ExperienceEntry",
    "EducationEntry",
    "CandidateProfile",
    "ScoreResult",
    "CandidateAnalysis",
    "BatchSummary",
]
