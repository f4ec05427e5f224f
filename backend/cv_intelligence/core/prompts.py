# backend/cv_intelligence/core/prompts.py
"""
Prompt templates used by the LLM analysis mode.
- Keys: jd_requirements, resume_profile
- These are LangChain-friendly templates (use with ChatPromptTemplate.from_template)
"""

from __future__ import annotations

from typing import Dict, List

def _escape_braces_keep_vars(template: str, keep_vars: List[str]) -> str:
    esc = template.replace("{", "{{").replace("}", "}}")
    for v in keep_vars:
        esc = esc.replace("{{" + v + "}}", "{" + v + "}")
    return esc

PROMPTS: Dict[str, str] = {}

# 1) JD -> requirements (strict, evidence-bound)
PROMPTS["jd_requirements"] = _escape_braces_keep_vars(r"""
You are a strict parser for an Applicant Tracking System. Read the Job Description and
extract the requirements used for automated candidate matching.

Rules:
- Only include items that appear EXPLICITLY in the JD text (no invention).
- Skills are atomic and lowercase (e.g., "python", "sprint planning", "excel").
- Include technical tools, methodologies, certifications and named soft skills.
- "min_years" is the minimum years of experience asked for, or null.
- "degree_level" is one of: null, "associate", "bachelor", "master", "phd".

Return STRICT JSON only:
{
  "title": "<short role title>",
  "skills": ["skill", "..."],
  "min_years": null,
  "degree_level": null
}

JD:
---
{jd_text}
---
""", ["jd_text"])

# 2) Resume -> structured profile (strict)
PROMPTS["resume_profile"] = _escape_braces_keep_vars(r"""
Extract structured information from this resume. Use null for anything that is not
present in the text. Do NOT infer beyond the text.

Return STRICT JSON only:
{
  "personal": { "name": null, "email": null, "phone": null, "location": null },
  "skills": ["string"],
  "experience": [
    { "role": null, "company": null, "start_date": null, "end_date": null, "achievements": ["string"] }
  ],
  "education": [
    { "institution": null, "degree": null, "field": null, "year": null }
  ]
}

Skills worth checking for (only list them if present): {skill_hints}

Resume:
---
{resume_text}
---
""", ["skill_hints", "resume_text"])
