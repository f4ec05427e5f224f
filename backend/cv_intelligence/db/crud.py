# backend/cv_intelligence/db/crud.py
"""
Batch Store: CRUD helpers for CvBatch / CvCandidate.
Usage (with context manager):
    from .session import session_scope
    with session_scope() as s:
        batch = create_batch(s, owner_id, "Frontend Q1")

Every read and write is scoped to `owner_id`; a batch owned by someone else is
reported exactly like a missing one (NotFound). Status changes go through
conditional UPDATEs so concurrent callers cannot both win a transition.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update, desc, func
from sqlalchemy.orm import Session

from ..core.errors import AlreadyProcessing, InvalidInput, InvalidStateTransition, NotFound
from .models import BatchStatus, CvBatch, CvCandidate

# target status -> statuses it may be entered from
_ALLOWED_FROM = {
    BatchStatus.PROCESSING: (BatchStatus.PENDING,),
    BatchStatus.COMPLETED: (BatchStatus.PROCESSING,),
    BatchStatus.FAILED: (BatchStatus.PROCESSING,),
}

_BATCH_NOT_FOUND = "Batch not found"


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ----------------- Batches -----------------

def create_batch(session: Session, owner_id: str, name: str) -> CvBatch:
    clean = (name or "").strip()
    if not clean:
        raise InvalidInput("Batch name is required", {"errors": ["Batch name is required"]})
    if not owner_id:
        raise InvalidInput("Owner is required")
    batch = CvBatch(
        name=clean[:255],
        owner_id=owner_id,
        status=BatchStatus.PENDING,
        cv_count=0,
        candidate_count=0,
        failures=[],
    )
    session.add(batch)
    session.flush()
    return batch


def get_batch(session: Session, batch_id: str, owner_id: str) -> CvBatch:
    q = select(CvBatch).where(CvBatch.id == batch_id, CvBatch.owner_id == owner_id)
    batch = session.execute(q.execution_options(populate_existing=True)).scalars().first()
    if batch is None:
        raise NotFound(_BATCH_NOT_FOUND)
    return batch


def list_batches(session: Session, owner_id: str) -> List[CvBatch]:
    q = (
        select(CvBatch)
        .where(CvBatch.owner_id == owner_id)
        .order_by(desc(CvBatch.created_at))
    )
    return list(session.execute(q).scalars().all())


def ensure_pending(batch: CvBatch) -> CvBatch:
    """Raise AlreadyProcessing unless the batch can still accept files."""
    if batch.status == BatchStatus.PROCESSING:
        raise AlreadyProcessing("Batch is already being processed")
    if batch.status != BatchStatus.PENDING:
        raise AlreadyProcessing(f"Batch has already been processed (status: {batch.status})")
    return batch


def claim_batch(session: Session, batch_id: str, owner_id: str, cv_count: int) -> CvBatch:
    """
    pending -> processing, guarded by the expected prior status. Exactly one
    caller can win this; everybody else gets AlreadyProcessing.
    """
    res = session.execute(
        update(CvBatch)
        .where(
            CvBatch.id == batch_id,
            CvBatch.owner_id == owner_id,
            CvBatch.status == BatchStatus.PENDING,
        )
        .values(status=BatchStatus.PROCESSING, cv_count=cv_count, updated_at=_now())
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        ensure_pending(get_batch(session, batch_id, owner_id))
        raise AlreadyProcessing("Batch is already being processed")
    return get_batch(session, batch_id, owner_id)


def update_batch_status(
    session: Session,
    batch_id: str,
    status: str,
    summary: Optional[Dict[str, Any]] = None,
    *,
    candidate_count: Optional[int] = None,
    failures: Optional[List[Dict[str, str]]] = None,
    processing_time_ms: Optional[int] = None,
) -> CvBatch:
    """
    Forward-only transition: pending -> processing -> completed | failed.
    `summary` is accepted only (and required) with completed.
    """
    allowed_from = _ALLOWED_FROM.get(status)
    if allowed_from is None:
        raise InvalidStateTransition(f"Cannot move a batch to {status!r}")
    if (status == BatchStatus.COMPLETED) != (summary is not None):
        raise InvalidStateTransition("A summary is set exactly when a batch completes")

    current = session.get(CvBatch, batch_id, populate_existing=True)
    if current is None:
        raise NotFound(_BATCH_NOT_FOUND)
    if candidate_count is not None and candidate_count > current.cv_count:
        raise InvalidStateTransition(
            f"candidate_count {candidate_count} exceeds cv_count {current.cv_count}"
        )

    values: Dict[str, Any] = {"status": status, "updated_at": _now()}
    if summary is not None:
        values["summary"] = summary
    if candidate_count is not None:
        values["candidate_count"] = candidate_count
    if failures is not None:
        values["failures"] = failures
    if processing_time_ms is not None:
        values["processing_time_ms"] = processing_time_ms

    res = session.execute(
        update(CvBatch)
        .where(CvBatch.id == batch_id, CvBatch.status.in_(allowed_from))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        current = session.get(CvBatch, batch_id, populate_existing=True)
        if current is None:
            raise NotFound(_BATCH_NOT_FOUND)
        raise InvalidStateTransition(f"Cannot move batch from {current.status} to {status}")
    return session.get(CvBatch, batch_id, populate_existing=True)


def delete_batch(session: Session, batch_id: str, owner_id: str) -> None:
    """Delete a batch and (cascade) its candidates. Missing -> NotFound."""
    batch = get_batch(session, batch_id, owner_id)
    session.delete(batch)
    session.flush()


# ----------------- Candidates -----------------

def save_candidates(session: Session, batch_id: str, rows: Iterable[Dict[str, Any]]) -> List[CvCandidate]:
    """Insert analyzed candidates for a batch (called once, while it is processing)."""
    out: List[CvCandidate] = []
    for row in rows:
        cand = CvCandidate(batch_id=batch_id, **row)
        session.add(cand)
        out.append(cand)
    session.flush()
    return out


def list_candidates(session: Session, batch_id: str, owner_id: str) -> List[CvCandidate]:
    get_batch(session, batch_id, owner_id)
    q = select(CvCandidate).where(CvCandidate.batch_id == batch_id).order_by(CvCandidate.rank)
    return list(session.execute(q).scalars().all())


def get_candidate(session: Session, candidate_id: str, owner_id: str) -> CvCandidate:
    q = (
        select(CvCandidate)
        .join(CvBatch, CvBatch.id == CvCandidate.batch_id)
        .where(CvCandidate.id == candidate_id, CvBatch.owner_id == owner_id)
    )
    cand = session.execute(q).scalars().first()
    if cand is None:
        raise NotFound("Candidate not found")
    return cand


def set_scheduled_interview(session: Session, candidate_id: str, owner_id: str, reference: Optional[str]) -> CvCandidate:
    cand = get_candidate(session, candidate_id, owner_id)
    cand.scheduled_interview = (reference or "").strip() or None
    session.flush()
    return cand


# ----------------- Analytics -----------------

def owner_analytics(session: Session, owner_id: str, highly_recommended_label: str = "Highly Recommended") -> Dict[str, Any]:
    by_status = dict(
        session.execute(
            select(CvBatch.status, func.count(CvBatch.id))
            .where(CvBatch.owner_id == owner_id)
            .group_by(CvBatch.status)
        ).all()
    )
    total_candidates, avg_score = session.execute(
        select(func.count(CvCandidate.id), func.avg(CvCandidate.score))
        .join(CvBatch, CvBatch.id == CvCandidate.batch_id)
        .where(CvBatch.owner_id == owner_id)
    ).one()
    highly = session.execute(
        select(func.count(CvCandidate.id))
        .join(CvBatch, CvBatch.id == CvCandidate.batch_id)
        .where(CvBatch.owner_id == owner_id, CvCandidate.recommendation == highly_recommended_label)
    ).scalar_one()
    return {
        "total_batches": sum(by_status.values()),
        "batches_by_status": {s: int(by_status.get(s, 0)) for s in BatchStatus.ALL},
        "total_candidates": int(total_candidates or 0),
        "average_score": round(float(avg_score), 2) if avg_score is not None else None,
        "highly_recommended_count": int(highly or 0),
    }
