# backend/cv_intelligence/pipeline/service.py
"""
Batch lifecycle controller.

    pending -> processing -> completed | failed

submit_files() is the only operation that moves a batch forward:
  1) ownership check                -> NotFound
  2) upload validation              -> ValidationFailed (batch stays pending)
  3) JD read + parse                -> ValidationFailed (batch stays pending)
  4) claim (pending -> processing)  -> AlreadyProcessing for every other caller
  5) per-CV analysis on a bounded thread pool, each CV with its own timeout
  6) rank + persist candidates + complete, in one transaction
     (no CV analyzed -> failed + EmptyBatch)

Worker threads only run the analysis; every DB read/write happens on the
calling thread, each step in its own session.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, ContextManager, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..core.config import merge_options
from ..core.errors import (
    CVIntelligenceError, EmptyBatch, ExtractionFailed, ValidationFailed,
)
from ..core.llm import get_llm
from ..db import crud
from ..db.models import BatchStatus
from ..db.session import session_scope
from ..schemas import BatchDetail, BatchOut, CandidateOut
from .ingest import validate_uploads
from .orchestrator import analyze_resume, prepare_requirements
from .rank import rank_candidates
from .score import top_recommendation
from .state import CandidateAnalysis, JobRequirements, UploadedFile

log = logging.getLogger(__name__)

MAX_WORKERS_CAP = 10


@dataclass
class ProcessingOutcome:
    batch: BatchOut
    candidates: List[CandidateOut] = field(default_factory=list)
    failures: List[Dict[str, str]] = field(default_factory=list)


class BatchService:
    """
    Owns the batch state machine. `analyzer` and `session_factory` are seams
    for tests; production uses analyze_resume and session_scope.
    """

    def __init__(
        self,
        options: Optional[Dict[str, Any]] = None,
        analyzer: Optional[Callable[..., CandidateAnalysis]] = None,
        session_factory: Callable[[], ContextManager[Session]] = session_scope,
        llm: Any = None,
    ):
        self.options = merge_options(options)
        self.analyzer = analyzer or analyze_resume
        self.session_factory = session_factory
        self._llm = llm

    # ---------- batches ----------

    def create_batch(self, owner_id: str, name: str) -> BatchOut:
        with self.session_factory() as s:
            batch = crud.create_batch(s, owner_id, name)
            out = BatchOut.from_row(batch)
        log.info("[batch] %s created (%r)", out.id, out.name)
        return out

    def get_batch(self, batch_id: str, owner_id: str) -> BatchOut:
        with self.session_factory() as s:
            return BatchOut.from_row(crud.get_batch(s, batch_id, owner_id))

    def list_batches(self, owner_id: str) -> List[BatchOut]:
        with self.session_factory() as s:
            return [BatchOut.from_row(b) for b in crud.list_batches(s, owner_id)]

    def get_batch_detail(self, batch_id: str, owner_id: str) -> BatchDetail:
        with self.session_factory() as s:
            batch = crud.get_batch(s, batch_id, owner_id)
            candidates = crud.list_candidates(s, batch_id, owner_id)
            return BatchDetail(
                batch=BatchOut.from_row(batch),
                candidates=[CandidateOut.from_row(c) for c in candidates],
            )

    def delete_batch(self, batch_id: str, owner_id: str) -> None:
        with self.session_factory() as s:
            crud.delete_batch(s, batch_id, owner_id)
        log.info("[batch] %s deleted", batch_id)

    # ---------- candidates ----------

    def list_candidates(self, batch_id: str, owner_id: str) -> List[CandidateOut]:
        with self.session_factory() as s:
            return [CandidateOut.from_row(c) for c in crud.list_candidates(s, batch_id, owner_id)]

    def get_candidate(self, candidate_id: str, owner_id: str) -> CandidateOut:
        with self.session_factory() as s:
            return CandidateOut.from_row(crud.get_candidate(s, candidate_id, owner_id))

    def schedule_interview(self, candidate_id: str, owner_id: str, reference: Optional[str]) -> CandidateOut:
        with self.session_factory() as s:
            return CandidateOut.from_row(crud.set_scheduled_interview(s, candidate_id, owner_id, reference))

    def analytics(self, owner_id: str) -> Dict[str, Any]:
        with self.session_factory() as s:
            return crud.owner_analytics(s, owner_id, top_recommendation(self.options))

    # ---------- processing ----------

    def _get_llm(self) -> Any:
        if self.options.get("analysis_mode") != "llm":
            return None
        if self._llm is None:
            try:
                self._llm = get_llm(self.options["llm_model"])
            except RuntimeError as e:
                log.warning("[llm] unavailable, using pattern parser: %s", e)
                return None
        return self._llm

    def submit_files(
        self,
        batch_id: str,
        owner_id: str,
        jd_file: Optional[UploadedFile],
        resume_files: Optional[Sequence[UploadedFile]],
    ) -> ProcessingOutcome:
        with self.session_factory() as s:
            crud.ensure_pending(crud.get_batch(s, batch_id, owner_id))

        resumes = list(resume_files or [])
        result = validate_uploads(jd_file, resumes, self.options)
        if not result.valid:
            log.info("[batch] %s rejected: %s", batch_id, "; ".join(result.errors))
            raise ValidationFailed(result.errors)

        llm = self._get_llm()
        try:
            requirements = prepare_requirements(jd_file, self.options, llm=llm)
        except ExtractionFailed as e:
            raise ValidationFailed([f"Job description {e.message}"]) from e

        with self.session_factory() as s:
            crud.claim_batch(s, batch_id, owner_id, cv_count=len(resumes))
        log.info("[batch] %s processing %d CV(s)", batch_id, len(resumes))

        started = time.perf_counter()
        try:
            analyses, failures = self._analyze_all(resumes, requirements, llm)
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            try:
                ranked = rank_candidates(
                    analyses,
                    failed_count=len(failures),
                    highly_recommended_label=top_recommendation(self.options),
                )
            except EmptyBatch:
                with self.session_factory() as s:
                    batch = crud.update_batch_status(
                        s, batch_id, BatchStatus.FAILED, failures=failures, processing_time_ms=elapsed_ms,
                    )
                    out = BatchOut.from_row(batch)
                log.warning("[batch] %s failed: no CV could be analyzed", batch_id)
                raise EmptyBatch(failures, batch=out.model_dump(mode="json"))

            with self.session_factory() as s:
                rows = crud.save_candidates(s, batch_id, [a.to_record(rank) for rank, a in ranked.ranked])
                batch = crud.update_batch_status(
                    s,
                    batch_id,
                    BatchStatus.COMPLETED,
                    ranked.summary.model_dump(),
                    candidate_count=len(rows),
                    failures=failures,
                    processing_time_ms=elapsed_ms,
                )
                outcome = ProcessingOutcome(
                    batch=BatchOut.from_row(batch),
                    candidates=[CandidateOut.from_row(c) for c in rows],
                    failures=failures,
                )
        except EmptyBatch:
            raise
        except Exception:
            log.exception("[batch] %s crashed while processing; marking failed", batch_id)
            self._mark_failed(batch_id)
            raise

        log.info(
            "[batch] %s completed: %d ranked, %d failed, avg=%d (%d ms)",
            batch_id, len(outcome.candidates), len(failures),
            ranked.summary.average_score, elapsed_ms,
        )
        return outcome

    def _analyze_all(
        self,
        resumes: List[UploadedFile],
        requirements: JobRequirements,
        llm: Any,
    ) -> Tuple[List[CandidateAnalysis], List[Dict[str, str]]]:
        """
        Fan out one analysis per CV. Results come back in submission order.

        At most `workers` analyses hold a slot at once. A CV's timeout starts
        when it gets a slot, and a timed-out analysis gives its slot back even
        though its thread keeps running, so the next CV starts right away.
        """
        workers = max(1, min(int(self.options["max_workers"]), MAX_WORKERS_CAP, len(resumes)))
        timeout = float(self.options["analysis_timeout_seconds"])

        queued = deque(enumerate(resumes))
        running: Dict[Future, Tuple[int, UploadedFile, float]] = {}
        done_by_pos: Dict[int, CandidateAnalysis] = {}
        failed_by_pos: Dict[int, Dict[str, str]] = {}

        # one thread per CV: an abandoned analysis never blocks a queued one
        executor = ThreadPoolExecutor(max_workers=len(resumes), thread_name_prefix="cv-analyze")
        try:
            while queued or running:
                while queued and len(running) < workers:
                    i, f = queued.popleft()
                    fut = executor.submit(self.analyzer, f, requirements, self.options, llm=llm, position=i)
                    running[fut] = (i, f, time.monotonic() + timeout)

                next_deadline = min(d for _, _, d in running.values())
                finished, _ = wait(
                    list(running), timeout=max(0.0, next_deadline - time.monotonic()),
                    return_when=FIRST_COMPLETED,
                )
                for fut in finished:
                    i, f, _ = running.pop(fut)
                    try:
                        done_by_pos[i] = fut.result()
                    except ExtractionFailed as e:
                        log.info("[cv] %s: %s", e.filename, e.reason)
                        failed_by_pos[i] = e.as_failure()

                now = time.monotonic()
                for fut, (i, f, deadline) in list(running.items()):
                    if deadline <= now:
                        running.pop(fut)
                        fut.cancel()
                        log.warning("[cv] %s: analysis timed out after %gs", f.filename, timeout)
                        failed_by_pos[i] = {"filename": f.filename, "reason": f"analysis timed out after {timeout:g}s"}
        finally:
            # timed-out workers are abandoned, not joined
            executor.shutdown(wait=False, cancel_futures=True)

        analyses = [done_by_pos[i] for i in sorted(done_by_pos)]
        failures = [failed_by_pos[i] for i in sorted(failed_by_pos)]
        return analyses, failures

    def _mark_failed(self, batch_id: str) -> None:
        try:
            with self.session_factory() as s:
                crud.update_batch_status(s, batch_id, BatchStatus.FAILED)
        except CVIntelligenceError as e:
            log.error("[batch] %s could not be marked failed: %s", batch_id, e.message)


__all__ = ["BatchService", "ProcessingOutcome", "MAX_WORKERS_CAP"]
