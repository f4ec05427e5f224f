# backend/cv_intelligence/db/models.py
"""
SQLAlchemy ORM models.
- CvBatch: one named batch of CVs analyzed against a single job description.
- CvCandidate: the stored analysis of one CV, ranked within its batch.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import String, Integer, DateTime, Text, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .session import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BatchStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    ALL = (PENDING, PROCESSING, COMPLETED, FAILED)


class CvBatch(Base):
    __tablename__ = "cv_batches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=BatchStatus.PENDING)

    cv_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    candidate_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processing_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # set once, together with status=completed
    summary: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    failures: Mapped[List[Dict[str, str]]] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    candidates: Mapped[List["CvCandidate"]] = relationship(
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="CvCandidate.rank",
    )

    def __repr__(self) -> str:
        return f"<CvBatch id={self.id} owner={self.owner_id} status={self.status} cvs={self.cv_count}>"


class CvCandidate(Base):
    __tablename__ = "cv_candidates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    batch_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("cv_batches.id", ondelete="CASCADE"), index=True, nullable=False
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # personal info; NULL means "not extracted"
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    skills: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    skills_matched: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    skills_missing: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    experience: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    education: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    experience_years: Mapped[float] = mapped_column(nullable=False, default=0.0)

    # outcomes
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rank: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    recommendation: Mapped[str] = mapped_column(String(32), nullable=False)
    fit_level: Mapped[str] = mapped_column(String(16), nullable=False)
    strengths: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    concerns: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    score_breakdown: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    analysis_key: Mapped[str] = mapped_column(String(64), nullable=False)

    # written by the interview scheduling collaborator, nothing else changes after insert
    scheduled_interview: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    batch: Mapped[CvBatch] = relationship(back_populates="candidates")

    def __repr__(self) -> str:
        return f"<CvCandidate id={self.id} batch={self.batch_id} rank={self.rank} score={self.score}>"
