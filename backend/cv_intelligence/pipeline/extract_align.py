# backend/cv_intelligence/pipeline/extract_align.py
"""
Stage 1: structured extraction.

- parse_requirements(jd_text)     -> JobRequirements (title, skills, min_years, degree_level)
- extract_profile(text, reqs)     -> CandidateProfile (personal, skills, experience, education)

Both have a deterministic pattern-based implementation. In "llm" mode the same
shapes are requested from Gemini (temperature 0) and the normalized result is
cached under the analysis key, so re-running a batch reproduces the extraction.
Any LLM failure falls back to the pattern parser.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from langchain_core.prompts import ChatPromptTemplate

from ..core.prompts import PROMPTS
from ..core.utils import (
    clip, json_loose, months_between, now_utc, parse_date_soft,
    section_text, smart_sections, term_pattern, uniq_preserve, SECTION_PAT,
)
from .state import (
    CandidateProfile, EducationEntry, ExperienceEntry, JobRequirements, PersonalInfo,
)

log = logging.getLogger(__name__)

__all__ = [
    "SKILL_VOCABULARY", "DEGREE_LEVELS",
    "analysis_key", "parse_requirements", "extract_profile",
    "parse_requirements_heuristic", "extract_profile_heuristic",
    "parse_requirements_llm", "extract_profile_llm", "degree_level_of",
    "clear_cache",
]

# ---------------- vocabulary + patterns ----------------

SKILL_VOCABULARY: List[str] = [
    # languages
    "python", "java", "javascript", "typescript", "c++", "c#", "golang", "rust", "ruby",
    "php", "kotlin", "swift", "scala", "sql", "html", "css", "bash",
    # frameworks / runtimes
    "react", "angular", "vue.js", "next.js", "node.js", "express.js", "django", "flask",
    "fastapi", "spring boot", "laravel", ".net", "ruby on rails", "tailwind",
    # data / ml
    "pandas", "numpy", "scikit-learn", "tensorflow", "pytorch", "keras", "spark", "hadoop",
    "machine learning", "deep learning", "nlp", "data analysis", "power bi", "tableau", "excel",
    # infra
    "aws", "azure", "gcp", "docker", "kubernetes", "terraform", "linux", "git", "ci/cd",
    "jenkins", "graphql", "rest api", "microservices",
    # stores
    "postgresql", "mysql", "mongodb", "redis", "elasticsearch",
    # process / business
    "agile", "scrum", "kanban", "jira", "project management", "stakeholder management",
    "sprint planning", "budgeting", "forecasting", "financial modeling", "accounting",
    "recruiting", "onboarding", "payroll", "salesforce", "crm", "negotiation", "b2b sales",
    "lead generation", "seo", "digital marketing",
    # soft skills
    "leadership", "communication", "teamwork", "problem solving",
]

DEGREE_LEVELS = {"associate": 1, "bachelor": 2, "master": 3, "phd": 4}

_DEGREE_PAT = re.compile(
    r"(?<![A-Za-z])(?<!scrum )("
    r"ph\.?\s?d\.?|doctorate|doctor of"
    r"|master(?:'s|s)?|m\.?sc\.?|m\.s\.|m\.?tech|mba"
    r"|bachelor(?:'s|s)?|b\.?sc\.?|b\.s\.|b\.?tech|b\.e\.|b\.a\."
    r"|associate(?:'s)? degree|diploma"
    r")(?![A-Za-z])",
    re.I,
)
_INSTITUTION_PAT = re.compile(r"\b(university|college|institute|school|academy|polytechnic)\b", re.I)
_YEAR_PAT = re.compile(r"\b(19\d{2}|20\d{2})\b")
_EMAIL_PAT = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
_PHONE_PAT = re.compile(r"(?<!\d)(\+?\d{1,3}[\s.-]?)?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}(?!\d)")
_LOCATION_LABEL = re.compile(r"^(?:location|address|based in|city)\s*[:\-]?\s*(.+)$", re.I)
_CITY_PAT = re.compile(r"^[A-Z][A-Za-z .'-]+,\s*[A-Z][A-Za-z .'-]+$")
_YEARS_PAT = re.compile(r"(\d{1,2})\s*(?:\+|(?:-|to)\s*\d{1,2})?\s*\+?\s*(?:years?|yrs?)\b", re.I)

_MONTH = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?"
_DATE = rf"(?:{_MONTH}\s+\d{{4}}|\d{{1,2}}/\d{{4}}|\d{{4}})"
_RANGE_PAT = re.compile(rf"({_DATE})\s*(?:-|to|until)\s*({_DATE}|present|current|now|today)", re.I)
_BULLET_PAT = re.compile(r"^[-*>]\s*")

_TITLE_LABEL = re.compile(r"^(?:job\s*title|position|role|title)\s*[:\-]\s*(.+)$", re.I)

# ---------------- cache ----------------

_CACHE: Dict[str, Any] = {}
_CACHE_LOCK = threading.Lock()


def clear_cache() -> None:
    with _CACHE_LOCK:
        _CACHE.clear()


def analysis_key(
    text: str,
    options: Dict[str, Any],
    skills: Optional[List[str]] = None,
    as_of: Optional[str] = None,
) -> str:
    """
    Reproducibility key: same mode/model/skill hints/text -> same key -> same extraction.
    `as_of` (YYYY-MM, default: current month) is the month "Present" resolves to.
    """
    mode = options.get("analysis_mode", "heuristic")
    model = options.get("llm_model", "") if mode == "llm" else ""
    month = as_of or now_utc().strftime("%Y-%m")
    payload = json.dumps([mode, model, month, sorted(s.lower() for s in (skills or [])), text], ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()

# ---------------- small helpers ----------------

def degree_level_of(text: Optional[str]) -> Optional[str]:
    """Highest degree level mentioned in `text` (None if no degree)."""
    levels = _degree_levels(text)
    return max(levels, key=DEGREE_LEVELS.__getitem__) if levels else None


def _degree_levels(text: Optional[str]) -> List[str]:
    out: List[str] = []
    for m in _DEGREE_PAT.finditer(text or ""):
        tok = m.group(1).lower().replace(" ", "")
        if tok.startswith(("ph", "doctor")):
            out.append("phd")
        elif tok.startswith(("master", "m", )):
            out.append("master")
        elif tok.startswith(("bachelor", "b")):
            out.append("bachelor")
        else:
            out.append("associate")
    return out


def _find_terms(text: str, terms: List[str]) -> List[str]:
    """Terms present in text, ordered by first occurrence."""
    hits: List[Tuple[int, str]] = []
    for t in uniq_preserve(terms):
        m = term_pattern(t).search(text)
        if m:
            hits.append((m.start(), t.lower()))
    hits.sort(key=lambda x: x[0])
    return [t for _, t in hits]


def _list_items(body: str) -> List[str]:
    """Short comma/bullet separated items from a skills-like section."""
    items: List[str] = []
    for line in body.splitlines():
        line = _BULLET_PAT.sub("", line.strip())
        if ":" in line:
            line = line.split(":", 1)[1]
        for part in re.split(r"[,;|]", line):
            part = part.strip(" .").lower()
            if part and len(part.split()) <= 4 and not _YEAR_PAT.search(part):
                items.append(part)
    return uniq_preserve(items)

# ---------------- JD requirements ----------------

def parse_requirements_heuristic(jd_text: str) -> JobRequirements:
    lines = [ln.strip() for ln in jd_text.splitlines() if ln.strip()]

    title: Optional[str] = None
    for ln in lines[:15]:
        m = _TITLE_LABEL.match(ln)
        if m:
            title = m.group(1).strip()
            break
    if title is None:
        title = next((ln for ln in lines if not SECTION_PAT.match(ln)), None)
    title = clip(title, 100) or None

    sections = smart_sections(jd_text)
    skills = _find_terms(jd_text, SKILL_VOCABULARY)
    skills = uniq_preserve(skills + _list_items(section_text(sections, "skill")))

    min_years: Optional[float] = None
    m = _YEARS_PAT.search(jd_text)
    if m:
        min_years = float(m.group(1))

    levels = _degree_levels(jd_text)
    degree_level = min(levels, key=DEGREE_LEVELS.__getitem__) if levels else None

    return JobRequirements(title=title, skills=skills, min_years=min_years, degree_level=degree_level)

# ---------------- resume profile ----------------

def _personal(text: str, sections: List[Tuple[str, str]]) -> PersonalInfo:
    head_body = sections[0][1] if sections and sections[0][0] == "unlabeled" else text
    head = [ln.strip() for ln in head_body.splitlines() if ln.strip()][:8]

    name = None
    for ln in head[:5]:
        cand = ln.split("|")[0].strip()
        words = cand.split()
        if (
            2 <= len(words) <= 4
            and re.fullmatch(r"[A-Za-z][A-Za-z .'\-]+", cand)
            and not re.search(r"resume|curriculum|vitae", cand, re.I)
        ):
            name = cand
            break

    email_m = _EMAIL_PAT.search(text)
    phone_m = _PHONE_PAT.search(text)

    location = None
    for ln in head:
        for part in re.split(r"\s*[|·]\s*", ln):
            part = part.strip()
            lm = _LOCATION_LABEL.match(part)
            if lm:
                location = lm.group(1).strip()
            elif _CITY_PAT.match(part) and not _EMAIL_PAT.search(part):
                location = part
            if location:
                break
        if location:
            break

    return PersonalInfo(
        name=name,
        email=email_m.group(0) if email_m else None,
        phone=phone_m.group(0).strip() if phone_m else None,
        location=location,
    )


def _split_role_company(head: str) -> Tuple[Optional[str], Optional[str]]:
    head = head.strip(" -|,()")
    if not head:
        return None, None
    parts = re.split(r"\s+at\s+|\s+@\s+", head, maxsplit=1)
    if len(parts) == 1:
        parts = re.split(r"\s*[|,]\s*|\s+-\s+", head, maxsplit=1)
    role = parts[0].strip(" -|,") or None
    company = parts[1].strip(" -|,") if len(parts) > 1 else None
    return role, (company or None)


def _experience(body: str) -> Tuple[List[ExperienceEntry], float]:
    lines = [ln.strip() for ln in body.splitlines() if ln.strip()]
    entries: List[Tuple[ExperienceEntry, Optional[datetime], Optional[datetime]]] = []
    current: Optional[ExperienceEntry] = None
    prev_plain: Optional[str] = None
    for ln in lines:
        m = _RANGE_PAT.search(ln)
        if m:
            head = (ln[: m.start()] + " " + ln[m.end():]).strip()
            if not head.strip(" -|,()") and prev_plain:
                head = prev_plain
            role, company = _split_role_company(head)
            current = ExperienceEntry(role=role, company=company, start_date=m.group(1), end_date=m.group(2))
            entries.append((current, parse_date_soft(m.group(1)), parse_date_soft(m.group(2))))
            prev_plain = None
        elif _BULLET_PAT.match(ln):
            if current is not None:
                current.achievements.append(_BULLET_PAT.sub("", ln))
        else:
            prev_plain = ln

    # most recent first; undated ends sort last, input order kept on ties
    entries.sort(key=lambda e: -(e[2].timestamp()) if e[2] else float("inf"))

    spans = sorted((s, e) for _, s, e in entries if s and e and e >= s)
    months = 0
    cur_s: Optional[datetime] = None
    cur_e: Optional[datetime] = None
    for s, e in spans:
        if cur_e is None or s > cur_e:
            if cur_e is not None:
                months += months_between(cur_s, cur_e)
            cur_s, cur_e = s, e
        elif e > cur_e:
            cur_e = e
    if cur_e is not None:
        months += months_between(cur_s, cur_e)

    return [e for e, _, _ in entries], round(months / 12.0, 1)


def _education(body: str) -> List[EducationEntry]:
    lines = [ln.strip() for ln in body.splitlines() if ln.strip()]
    out: List[EducationEntry] = []
    for i, ln in enumerate(lines):
        dm = _DEGREE_PAT.search(ln)
        if not dm:
            continue
        parts = [p.strip() for p in re.split(r"\s*[|,]\s*|\s+-\s+", ln) if p.strip()]
        degree_part = next((p for p in parts if _DEGREE_PAT.search(p)), ln)
        degree_part = _YEAR_PAT.sub("", degree_part).strip(" -()")

        field = None
        fm = re.search(r"\bin\s+([A-Z][A-Za-z&' ]+)", degree_part) or re.search(
            r"\bof\s+([A-Z][A-Za-z&' ]+)", degree_part
        )
        if fm:
            field = fm.group(1).strip()

        institution = next((p for p in parts if _INSTITUTION_PAT.search(p)), None)
        if institution is None:
            for j in (i + 1, i - 1):
                if 0 <= j < len(lines) and _INSTITUTION_PAT.search(lines[j]) and not _DEGREE_PAT.search(lines[j]):
                    institution = _YEAR_PAT.sub("", lines[j]).strip(" -|,()")
                    break
        else:
            institution = _YEAR_PAT.sub("", institution).strip(" -()")

        years = _YEAR_PAT.findall(ln) or (_YEAR_PAT.findall(lines[i + 1]) if i + 1 < len(lines) else [])
        out.append(EducationEntry(
            institution=institution or None,
            degree=degree_part or None,
            field=field,
            year=years[-1] if years else None,
        ))
    return out


def extract_profile_heuristic(text: str, requirements: Optional[JobRequirements] = None) -> CandidateProfile:
    sections = smart_sections(text)

    skills = _find_terms(text, SKILL_VOCABULARY + list((requirements.skills if requirements else []) or []))
    skills = uniq_preserve(skills + _list_items(section_text(sections, "skill")))

    exp_body = section_text(sections, "experience", "employment", "internship")
    if not exp_body:
        exp_body = "\n".join(b for t, b in sections if "education" not in t)
    experience, years = _experience(exp_body)

    edu_body = section_text(sections, "education") or text
    education = _education(edu_body)

    return CandidateProfile(
        personal=_personal(text, sections),
        skills=[s.lower() for s in skills],
        experience=experience,
        education=education,
        experience_years=years,
    )

# ---------------- LLM variants ----------------

def _opt_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return None if not s or s.lower() in {"null", "none", "n/a", "not found", "not specified", "unknown"} else s


def _invoke(prompt_key: str, llm: Any, variables: Dict[str, Any]) -> Dict[str, Any]:
    chain = ChatPromptTemplate.from_template(PROMPTS[prompt_key]) | llm
    raw = chain.invoke(variables)
    obj = json_loose(getattr(raw, "content", str(raw)) or "{}")
    if not isinstance(obj, dict):
        raise ValueError(f"{prompt_key}: expected a JSON object, got {type(obj).__name__}")
    return obj


def parse_requirements_llm(jd_text: str, llm: Any, text_clip: int = 12000) -> JobRequirements:
    obj = _invoke("jd_requirements", llm, {"jd_text": clip(jd_text, text_clip)})
    try:
        min_years = float(obj["min_years"]) if obj.get("min_years") is not None else None
    except (TypeError, ValueError):
        min_years = None
    level = _opt_str(obj.get("degree_level"))
    return JobRequirements(
        title=_opt_str(obj.get("title")),
        skills=[s.lower() for s in uniq_preserve([str(x) for x in obj.get("skills") or [] if x])],
        min_years=min_years,
        degree_level=level.lower() if level and level.lower() in DEGREE_LEVELS else None,
    )


def extract_profile_llm(text: str, requirements: Optional[JobRequirements], llm: Any, text_clip: int = 12000) -> CandidateProfile:
    hints = ", ".join((requirements.skills if requirements else [])[:40]) or "(none)"
    obj = _invoke("resume_profile", llm, {"skill_hints": hints, "resume_text": clip(text, text_clip)})

    pers = obj.get("personal") or {}
    personal = PersonalInfo(**{k: _opt_str(pers.get(k)) for k in ("name", "email", "phone", "location")})

    experience: List[ExperienceEntry] = []
    for ex in obj.get("experience") or []:
        if isinstance(ex, dict):
            experience.append(ExperienceEntry(
                role=_opt_str(ex.get("role")),
                company=_opt_str(ex.get("company")),
                start_date=_opt_str(ex.get("start_date")),
                end_date=_opt_str(ex.get("end_date")),
                achievements=[str(a) for a in ex.get("achievements") or [] if a],
            ))
    education = [
        EducationEntry(**{k: _opt_str(ed.get(k)) for k in ("institution", "degree", "field", "year")})
        for ed in obj.get("education") or [] if isinstance(ed, dict)
    ]

    # durations are recomputed locally so years do not depend on model arithmetic
    dated = "\n".join(f"{e.start_date} - {e.end_date}" for e in experience if e.start_date and e.end_date)
    _, years = _experience(dated)

    return CandidateProfile(
        personal=personal,
        skills=[s.lower() for s in uniq_preserve([str(x) for x in obj.get("skills") or [] if x])],
        experience=experience,
        education=education,
        experience_years=years,
    )

# ---------------- public entry points ----------------

def _cached(key: str, build):
    with _CACHE_LOCK:
        if key in _CACHE:
            return _CACHE[key]
    value = build()
    with _CACHE_LOCK:
        _CACHE.setdefault(key, value)
        return _CACHE[key]


def parse_requirements(jd_text: str, options: Dict[str, Any], llm: Any = None) -> JobRequirements:
    if options.get("analysis_mode") == "llm":
        key = "jd:" + analysis_key(jd_text, options)
        try:
            return _cached(key, lambda: parse_requirements_llm(jd_text, llm, options.get("llm_text_clip", 12000)))
        except Exception as e:
            log.warning("[llm] JD parsing failed, using pattern parser: %s", e)
    return parse_requirements_heuristic(jd_text)


def extract_profile(
    text: str,
    requirements: Optional[JobRequirements],
    options: Dict[str, Any],
    llm: Any = None,
    key: Optional[str] = None,
) -> CandidateProfile:
    if options.get("analysis_mode") == "llm":
        key = key or analysis_key(text, options, requirements.skills if requirements else None)
        try:
            return _cached(
                "cv:" + key,
                lambda: extract_profile_llm(text, requirements, llm, options.get("llm_text_clip", 12000)),
            )
        except Exception as e:
            log.warning("[llm] CV extraction failed, using pattern parser: %s", e)
    return extract_profile_heuristic(text, requirements)
