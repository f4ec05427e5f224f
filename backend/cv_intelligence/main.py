# backend/cv_intelligence/main.py
"""
FastAPI entrypoint for the CV Intelligence batch service.
- Local friendly (uvicorn) and exports `app`.
- Recruiter flow: create a named batch, upload one JD + 1..10 CVs, poll for the ranked result.
- Every route is scoped to the caller (Authorization: Bearer <token> -> owner id).
- Responses use one envelope: {"success": bool, "data": ..., "message": ...}

Run locally:
  uvicorn cv_intelligence.main:app --reload --port 8000   (from ./backend)

Env (.env):
  DATABASE_URL=sqlite:///./cv_intelligence.db                    # optional, any SQLAlchemy URL
  ALLOWED_ORIGINS=http://localhost:5173,http://localhost:3000     # optional
  CV_ANALYSIS_MODE=heuristic|llm                                  # optional
  GEMINI_API_KEY=...                                              # only for llm mode
  LOG_LEVEL=INFO
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.auth import get_owner_id
from .core.config import get_allowed_origins, get_database_url, get_log_level, merge_options
from .core.errors import CVIntelligenceError
from .db.session import ensure_tables
from .pipeline.service import BatchService
from .pipeline.state import UploadedFile
from .schemas import CreateBatchRequest, ScheduleInterviewRequest

logging.basicConfig(
    level=get_log_level(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("cv_intelligence")

# --- CORS / app ---------------------------------------------------------------
origins = get_allowed_origins()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    ensure_tables()
    log.info("[app] tables ready")
    yield


app = FastAPI(title="CV Intelligence API", version="1.0.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Envelope -----------------------------------------------------------------

def ok(data: Any = None, message: Optional[str] = None, status_code: int = 200) -> JSONResponse:
    body = {"success": True, "data": jsonable_encoder(data)}
    if message:
        body["message"] = message
    return JSONResponse(status_code=status_code, content=body)


def fail(status_code: int, message: str, data: Any = None) -> JSONResponse:
    body = {"success": False, "message": message}
    if data:
        body["data"] = jsonable_encoder(data)
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(CVIntelligenceError)
async def _cv_error(_request: Request, exc: CVIntelligenceError):
    if exc.status_code >= 500:
        log.error("[api] %s: %s", exc.code, exc.message)
    return fail(exc.status_code, exc.message, exc.details)


@app.exception_handler(StarletteHTTPException)
async def _http_error(_request: Request, exc: StarletteHTTPException):
    return fail(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def _request_error(_request: Request, exc: RequestValidationError):
    errors = [
        f"{'.'.join(str(p) for p in e.get('loc', ()) if p != 'body')}: {e.get('msg')}"
        for e in exc.errors()
    ]
    return fail(400, "Invalid request", {"errors": errors})


@app.exception_handler(Exception)
async def _unexpected_error(request: Request, exc: Exception):
    log.exception("[api] unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return fail(500, "Internal server error")

# --- Service ------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_service() -> BatchService:
    return BatchService()


async def _to_uploaded(f: UploadFile) -> UploadedFile:
    return UploadedFile(filename=f.filename or "", content=await f.read(), content_type=f.content_type)

# --- Routes: CV Intelligence ----------------------------------------------------

router = APIRouter(prefix="/api/cv-intelligence", tags=["cv-intelligence"])


@router.post("/")
def create_batch(
    body: CreateBatchRequest,
    owner_id: str = Depends(get_owner_id),
    service: BatchService = Depends(get_service),
):
    batch = service.create_batch(owner_id, body.name)
    return ok({"batchId": batch.id, "batch": batch}, "Batch created", status_code=201)


@router.post("/batch/{batch_id}/process")
async def process_batch(
    batch_id: str,
    jdFile: Optional[UploadFile] = File(default=None),
    cvFiles: Optional[List[UploadFile]] = File(default=None),
    cv_files_brackets: Optional[List[UploadFile]] = File(default=None, alias="cvFiles[]"),
    owner_id: str = Depends(get_owner_id),
    service: BatchService = Depends(get_service),
):
    """
    Upload one JD + 1..10 CVs and run the analysis. Returns once the batch is
    completed; per-file failures are listed in `data.failures`.
    """
    jd = await _to_uploaded(jdFile) if jdFile is not None else None
    cvs = [await _to_uploaded(f) for f in [*(cvFiles or []), *(cv_files_brackets or [])]]
    # the analysis blocks; keep it off the event loop
    outcome = await run_in_threadpool(service.submit_files, batch_id, owner_id, jd, cvs)
    return ok(
        {"batch": outcome.batch, "candidates": outcome.candidates, "failures": outcome.failures},
        "Batch processed",
    )


@router.get("/batches")
def list_batches(owner_id: str = Depends(get_owner_id), service: BatchService = Depends(get_service)):
    return ok(service.list_batches(owner_id))


@router.get("/batch/{batch_id}")
def get_batch(batch_id: str, owner_id: str = Depends(get_owner_id), service: BatchService = Depends(get_service)):
    return ok(service.get_batch_detail(batch_id, owner_id))


@router.delete("/batch/{batch_id}")
def delete_batch(batch_id: str, owner_id: str = Depends(get_owner_id), service: BatchService = Depends(get_service)):
    service.delete_batch(batch_id, owner_id)
    return ok(None, "Batch deleted")


@router.get("/batch/{batch_id}/candidates")
def list_candidates(batch_id: str, owner_id: str = Depends(get_owner_id), service: BatchService = Depends(get_service)):
    return ok(service.list_candidates(batch_id, owner_id))


@router.get("/candidate/{candidate_id}")
def get_candidate(candidate_id: str, owner_id: str = Depends(get_owner_id), service: BatchService = Depends(get_service)):
    return ok(service.get_candidate(candidate_id, owner_id))


@router.put("/candidate/{candidate_id}/interview")
def schedule_interview(
    candidate_id: str,
    body: ScheduleInterviewRequest,
    owner_id: str = Depends(get_owner_id),
    service: BatchService = Depends(get_service),
):
    return ok(service.schedule_interview(candidate_id, owner_id, body.reference), "Interview reference saved")


@router.get("/analytics")
def analytics(owner_id: str = Depends(get_owner_id), service: BatchService = Depends(get_service)):
    return ok(service.analytics(owner_id))


app.include_router(router)

# --- Routes: service info -------------------------------------------------------

@app.get("/api/v1/health")
def health():
    return ok({
        "ok": True,
        "ts": datetime.now(timezone.utc).isoformat(),
        "origins": origins,
    })


@app.get("/api/v1/config")
def config_view():
    opts = merge_options()
    return ok({
        "database": get_database_url().split("://", 1)[0],
        "analysis_mode": opts["analysis_mode"],
        "max_cv_files": opts["max_cv_files"],
        "max_file_bytes": opts["max_file_bytes"],
        "allowed_extensions": opts["allowed_extensions"],
        "analysis_timeout_seconds": opts["analysis_timeout_seconds"],
        "weights": opts["weights"],
        "recommendation_bands": opts["recommendation_bands"],
    })

# For local dev convenience
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("cv_intelligence.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=True)
