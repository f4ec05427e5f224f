# backend/cv_intelligence/pipeline/score.py
"""
Stage 2: scoring.

    score_candidate(profile, requirements, options) -> ScoreResult

score = round(100 * (w_skill * skill_coverage
                     + w_exp * experience_relevance
                     + w_edu * education_relevance)), clamped to 0..100

Pure and deterministic: the same profile + requirements + options always give
the same ScoreResult (no clock, no randomness, no LLM).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.utils import lex_keywords, round_half_up, term_pattern
from .extract_align import DEGREE_LEVELS, degree_level_of
from .state import CandidateProfile, JobRequirements, ScoreResult

# title words that say nothing about the kind of role
_GENERIC_TITLE_WORDS = {"senior", "junior", "sr", "jr", "lead", "principal", "staff", "intern", "remote", "hybrid", "full-time", "part-time"}


# --------- bands ----------

def _band(score: int, bands: Sequence[Sequence[Any]]) -> str:
    ordered = sorted(bands, key=lambda b: float(b[0]), reverse=True)
    for threshold, label in ordered:
        if score >= float(threshold):
            return str(label)
    return str(ordered[-1][1])


def recommendation_for(score: int, options: Dict[str, Any]) -> str:
    return _band(score, options["recommendation_bands"])


def fit_level_for(score: int, options: Dict[str, Any]) -> str:
    return _band(score, options["fit_bands"])


def top_recommendation(options: Dict[str, Any]) -> str:
    """Label of the highest band ("Highly Recommended" by default)."""
    return str(max(options["recommendation_bands"], key=lambda b: float(b[0]))[1])


# --------- components ----------

def match_skills(candidate_skills: List[str], required: List[str]) -> Tuple[List[str], List[str]]:
    """Case-insensitive split of JD skills into (matched, missing), both in JD order."""
    have = {s.strip().lower() for s in candidate_skills if s and s.strip()}
    matched: List[str] = []
    missing: List[str] = []
    seen = set()
    for s in required:
        k = (s or "").strip().lower()
        if not k or k in seen:
            continue
        seen.add(k)
        (matched if k in have else missing).append(k)
    return matched, missing


def _role_alignment(profile: CandidateProfile, title: Optional[str]) -> Optional[float]:
    keywords = [k for k in lex_keywords(title or "") if k not in _GENERIC_TITLE_WORDS]
    if not keywords:
        return None
    roles = " \n ".join(e.role or "" for e in profile.experience)
    if not roles.strip():
        return 0.0
    hits = sum(1 for k in keywords if term_pattern(k).search(roles))
    return hits / len(keywords)


def _education_relevance(profile: CandidateProfile, required_level: Optional[str]) -> Tuple[float, Optional[str]]:
    degrees = " ; ".join(" ".join(filter(None, [e.degree, e.field])) for e in profile.education)
    have = degree_level_of(degrees)
    if required_level not in DEGREE_LEVELS:
        return (1.0 if profile.education else 0.6), have
    if have is None:
        return 0.0, have
    return (1.0 if DEGREE_LEVELS[have] >= DEGREE_LEVELS[required_level] else 0.5), have


# --------- entry ----------

def score_candidate(
    profile: CandidateProfile,
    requirements: JobRequirements,
    options: Dict[str, Any],
) -> ScoreResult:
    weights = options["weights"]

    # ---------- 1) Skills ----------
    matched, missing = match_skills(profile.skills, requirements.skills)
    required_count = len(matched) + len(missing)
    skill_coverage = (len(matched) / required_count) if required_count else float(options["no_skills_coverage"])

    # ---------- 2) Experience ----------
    min_years = requirements.min_years if requirements.min_years is not None else float(options["default_min_years"])
    years = float(profile.experience_years or 0.0)
    years_fit = min(1.0, years / min_years) if min_years > 0 else 1.0
    role_alignment = _role_alignment(profile, requirements.title)
    if role_alignment is None:
        role_alignment = years_fit
    experience_relevance = 0.6 * years_fit + 0.4 * role_alignment

    # ---------- 3) Education ----------
    education_relevance, degree_have = _education_relevance(profile, requirements.degree_level)

    # ---------- 4) Weighted total ----------
    raw = (
        float(weights["skill_coverage"]) * skill_coverage
        + float(weights["experience_relevance"]) * experience_relevance
        + float(weights["education_relevance"]) * education_relevance
    )
    score = max(0, min(100, round_half_up(round(100.0 * raw, 6))))

    breakdown = {
        "skill_coverage": round(skill_coverage, 4),
        "experience_relevance": round(experience_relevance, 4),
        "education_relevance": round(education_relevance, 4),
        "years_fit": round(years_fit, 4),
        "role_alignment": round(role_alignment, 4),
        "required_years": min_years,
        "weights": {k: float(v) for k, v in weights.items()},
        "points": {
            "skill_coverage": round(100.0 * float(weights["skill_coverage"]) * skill_coverage, 2),
            "experience_relevance": round(100.0 * float(weights["experience_relevance"]) * experience_relevance, 2),
            "education_relevance": round(100.0 * float(weights["education_relevance"]) * education_relevance, 2),
        },
    }

    # ---------- 5) Strengths / concerns ----------
    strengths: List[str] = []
    concerns: List[str] = []

    if required_count:
        if skill_coverage >= 0.7:
            strengths.append(f"Strong skill match ({len(matched)}/{required_count} required skills)")
        elif matched:
            strengths.append("Matches: " + ", ".join(matched[:8]))
    if missing:
        concerns.append("Missing skills: " + ", ".join(missing[:8]))

    if years >= min_years:
        strengths.append(f"{years:g} years of experience (requirement: {min_years:g}+)")
    elif profile.experience:
        concerns.append(f"{years:g} years of experience vs {min_years:g} required")
    else:
        concerns.append("No dated work experience found")

    if role_alignment >= 0.5 and requirements.title and profile.experience:
        strengths.append(f"Previous roles align with {requirements.title}")

    if requirements.degree_level in DEGREE_LEVELS:
        if education_relevance >= 1.0:
            strengths.append(f"Meets the {requirements.degree_level} degree requirement")
        elif degree_have:
            concerns.append(f"Highest degree ({degree_have}) is below the required {requirements.degree_level}")
        else:
            concerns.append(f"No {requirements.degree_level} degree found")

    missing_contacts = [f for f in profile.personal.missing_fields() if f in ("email", "phone")]
    if missing_contacts:
        concerns.append("Contact details not found: " + ", ".join(missing_contacts))

    return ScoreResult(
        score=score,
        recommendation=recommendation_for(score, options),
        fit_level=fit_level_for(score, options),
        skills_matched=matched,
        skills_missing=missing,
        breakdown=breakdown,
        strengths=strengths,
        concerns=concerns,
    )


__all__ = [
    "score_candidate", "match_skills",
    "recommendation_for", "fit_level_for", "top_recommendation",
]
