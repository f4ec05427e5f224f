# backend/cv_intelligence/pipeline/orchestrator.py
"""
Glue for the per-CV analysis.

Stages:
  0) ingest.load_text                 -> normalized text (or ExtractionFailed)
  1) extract_align.extract_profile    -> CandidateProfile
  2) score.score_candidate            -> ScoreResult

Public entry:
  analyze_resume(resume_file, requirements, options=None) -> CandidateAnalysis
  prepare_requirements(jd_file, options=None)             -> JobRequirements

This module *only* orchestrates; it never touches the database, so it is safe
to run in worker threads.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..core.config import merge_options
from ..core.errors import ExtractionFailed
from .extract_align import analysis_key, extract_profile, parse_requirements
from .ingest import load_text
from .score import score_candidate
from .state import CandidateAnalysis, JobRequirements, UploadedFile

log = logging.getLogger(__name__)


def prepare_requirements(
    jd_file: UploadedFile,
    options: Optional[Dict[str, Any]] = None,
    llm: Any = None,
) -> JobRequirements:
    """Read + parse the JD once per submission. Unreadable JD -> ExtractionFailed."""
    opts = options if options is not None else merge_options()
    jd_text = load_text(jd_file, opts["min_text_chars"])
    reqs = parse_requirements(jd_text, opts, llm=llm)
    log.info("[jd] %s: title=%r skills=%d min_years=%s degree=%s",
             jd_file.filename, reqs.title, len(reqs.skills), reqs.min_years, reqs.degree_level)
    return reqs


def analyze_resume(
    resume_file: UploadedFile,
    requirements: JobRequirements,
    options: Optional[Dict[str, Any]] = None,
    llm: Any = None,
    position: int = 0,
) -> CandidateAnalysis:
    """
    Analyze one CV against parsed requirements.

    Raises:
        ExtractionFailed: the file could not be read, parsed or scored. Only this CV is affected.
    """
    opts = options if options is not None else merge_options()

    # Stage 0: text
    text = load_text(resume_file, opts["min_text_chars"])

    # Stage 1: structured profile
    key = analysis_key(text, opts, requirements.skills)
    try:
        profile = extract_profile(text, requirements, opts, llm=llm, key=key)
    except ExtractionFailed:
        raise
    except Exception as e:
        raise ExtractionFailed(resume_file.filename, f"could not parse CV ({type(e).__name__}: {e})") from e

    # Stage 2: score
    try:
        result = score_candidate(profile, requirements, opts)
    except Exception as e:
        raise ExtractionFailed(resume_file.filename, f"could not score CV ({type(e).__name__}: {e})") from e
    log.debug("[cv] %s: score=%d (%s)", resume_file.filename, result.score, result.recommendation)

    return CandidateAnalysis(
        filename=resume_file.filename,
        position=position,
        analysis_key=key,
        profile=profile,
        result=result,
    )


__all__ = ["analyze_resume", "prepare_requirements"]
