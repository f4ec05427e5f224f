# backend/cv_intelligence/core/config.py
"""
Central config & environment helpers.
- Loads env (.env) early
- Exposes GEMINI_API_KEY resolution and DB / CORS / logging settings
- Holds DEFAULT_OPTIONS used by the analysis pipeline and the batch service
"""

from __future__ import annotations

import copy
import json
import os
from typing import Dict, Any, List, Optional
from dotenv import load_dotenv

# Load .env once for the whole app
load_dotenv(override=False)

# --- API keys ---------------------------------------------------------------

def get_gemini_api_key() -> str:
    """
    Returns the Gemini API key.
    Raises RuntimeError if missing (only the LLM analysis mode needs it).
    """
    key = (
        os.getenv("GEMINI_API_KEY")
        or os.getenv("GOOGLE_API_KEY")
        or os.getenv("GEMINI_APIKEY")
        or ""
    ).strip()

    if not key:
        raise RuntimeError(
            "Missing Gemini key. Set GEMINI_API_KEY (or GOOGLE_API_KEY) in your environment."
        )

    # Ensure downstream libs see the same key
    os.environ["GOOGLE_API_KEY"] = key
    os.environ["GEMINI_API_KEY"] = key
    # Avoid ADC confusion in server envs
    os.environ.pop("GOOGLE_APPLICATION_CREDENTIALS", None)

    return key


# --- Service settings --------------------------------------------------------

def get_database_url() -> str:
    return (os.getenv("DATABASE_URL") or "sqlite:///./cv_intelligence.db").strip()


def get_allowed_origins() -> List[str]:
    defaults = {
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    }
    extra = {o.strip() for o in (os.getenv("ALLOWED_ORIGINS") or "").split(",") if o.strip()}
    return sorted(defaults | extra)


def get_log_level() -> str:
    return (os.getenv("LOG_LEVEL") or "INFO").strip().upper()


# --- Options ------------------------------------------------------------------

DEFAULT_OPTIONS: Dict[str, Any] = {
    # ingestion limits
    "max_cv_files": 10,
    "max_file_bytes": 10 * 1024 * 1024,
    "allowed_extensions": [".pdf", ".txt", ".doc", ".docx"],
    "min_text_chars": 20,

    # processing
    "max_workers": 10,
    "analysis_timeout_seconds": 60.0,
    "analysis_mode": "heuristic",   # heuristic | llm
    "llm_model": "gemini-2.0-flash",
    "llm_text_clip": 12000,

    # scoring weights (sum to 1.0)
    "weights": {
        "skill_coverage": 0.60,
        "experience_relevance": 0.25,
        "education_relevance": 0.15,
    },
    "default_min_years": 3,
    "no_skills_coverage": 0.5,

    # recommendation bands, checked top-down
    "recommendation_bands": [
        [85, "Highly Recommended"],
        [70, "Recommended"],
        [50, "Consider"],
        [0, "Not Recommended"],
    ],
    "fit_bands": [
        [85, "High"],
        [70, "Medium"],
        [0, "Low"],
    ],
}

# env var -> (option key, caster)
_ENV_OVERRIDES = {
    "CV_MAX_FILES": ("max_cv_files", int),
    "CV_MAX_FILE_BYTES": ("max_file_bytes", int),
    "CV_MAX_WORKERS": ("max_workers", int),
    "CV_ANALYSIS_TIMEOUT": ("analysis_timeout_seconds", float),
    "CV_ANALYSIS_MODE": ("analysis_mode", str),
    "CV_LLM_MODEL": ("llm_model", str),
}


def merge_options(user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Overlay env + user options on top of DEFAULT_OPTIONS (shallow, weights merged)."""
    base = copy.deepcopy(DEFAULT_OPTIONS)
    for env_key, (opt_key, cast) in _ENV_OVERRIDES.items():
        raw = os.getenv(env_key)
        if raw is not None and raw.strip():
            base[opt_key] = cast(raw.strip())
    raw_weights = os.getenv("CV_SCORE_WEIGHTS")
    if raw_weights:
        base["weights"].update(json.loads(raw_weights))

    for k, v in (user or {}).items():
        if k == "weights" and isinstance(v, dict):
            base["weights"].update(v)
        else:
            base[k] = v
    return base
