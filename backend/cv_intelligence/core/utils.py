# backend/cv_intelligence/core/utils.py
"""
Generic helpers used across the pipeline.

Includes:
- file readers (pdf/docx/doc/txt) working on in-memory bytes
- section detection/splitting for resumes
- safe JSON extraction for LLM output
- date parsing / time math
- lexical tokenizer and misc string utils
"""

from __future__ import annotations

import io
import json
import math
import re
import zipfile
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional, Tuple

import fitz  # PyMuPDF
from dateutil import parser as date_parser

# -------- File readers (bytes in, text out) ----------------------------------

def read_pdf_bytes(content: bytes) -> str:
    """PDF text via PyMuPDF. Raises on broken documents."""
    with fitz.open(stream=content, filetype="pdf") as doc:
        return "\n".join(page.get_text("text") for page in doc)

def read_docx_bytes(content: bytes) -> str:
    """WordprocessingML paragraphs, one per line (no python-docx needed)."""
    w = "{http://schemas.openxmlformats.org/wordprocessingml/2006/main}"
    with zipfile.ZipFile(io.BytesIO(content)) as z:
        root = ET.fromstring(z.read("word/document.xml"))
    paras = ("".join(t.text or "" for t in p.iter(w + "t")).strip() for p in root.iter(w + "p"))
    return "\n".join(p for p in paras if p)

_DOC_RUN = re.compile(rb"[\x20-\x7e\t\r\n]{4,}")

def read_doc_bytes(content: bytes) -> str:
    """
    Legacy Word (.doc) best effort: collect printable ASCII runs from the
    binary, plus UTF-16LE runs (Word 97+ stores text that way).
    """
    runs = [m.group(0).decode("ascii", errors="ignore") for m in _DOC_RUN.finditer(content)]
    try:
        utf16 = content.decode("utf-16-le", errors="ignore")
        runs.extend(re.findall(r"[\x20-\x7e\t\r\n]{4,}", utf16))
    except UnicodeDecodeError:
        pass
    return "\n".join(r.strip() for r in runs if r.strip())

def read_text_bytes(content: bytes) -> str:
    return content.decode("utf-8", errors="replace")

def read_any_bytes(filename: str, content: bytes) -> str:
    """Dispatch on file extension; unknown extensions are read as text."""
    ext = Path(filename or "").suffix.lower()
    if ext == ".pdf":
        return read_pdf_bytes(content)
    if ext == ".docx":
        return read_docx_bytes(content)
    if ext == ".doc":
        return read_doc_bytes(content)
    return read_text_bytes(content)

# -------- Text cleanup + sectioning -----------------------------------------

def normalize_text(text: str) -> str:
    """Unify bullets/whitespace and drop NULs that some extractors leave behind."""
    text = (text or "").replace("\x00", "").replace("\r\n", "\n").replace("\r", "\n")
    text = text.replace("•", "-").replace("●", "-").replace("–", "-").replace("—", "-")
    lines = [re.sub(r"[ \t]+", " ", ln).strip() for ln in text.split("\n")]
    return "\n".join(lines).strip()

SECTION_PAT = re.compile(
    r"^\s*(summary|profile|objective|experience|work experience|professional experience|employment|employment history|projects|internships?|education|(?:required |preferred |key |technical |core )?skills|certifications?|awards?|publications?|achievements?|volunteer|activities|requirements|qualifications|responsibilities)\s*:?\s*$",
    re.I,
)

def smart_sections(text: str) -> List[Tuple[str, str]]:
    """
    Cut text at recognised headings into (title, body) pairs, in document order.
    Whatever precedes the first heading is titled "unlabeled"; empty bodies are dropped.
    """
    title = "unlabeled"
    pending: List[str] = []
    pairs: List[Tuple[str, str]] = []

    def _close() -> None:
        body = "\n".join(pending).strip()
        if body:
            pairs.append((title, body))

    for raw in text.splitlines():
        line = raw.strip()
        if SECTION_PAT.match(line):
            _close()
            title = line.rstrip(":").strip().lower()
            pending = []
        else:
            pending.append(raw)
    _close()
    return pairs

def section_text(sections: List[Tuple[str, str]], *keywords: str) -> str:
    """Concatenate the bodies of every section whose title contains one of `keywords`."""
    return "\n".join(body for title, body in sections if any(k in title for k in keywords))

# -------- Lexical tokenizer --------------------------------------------------

STOPWORDS = {
    "and", "or", "the", "of", "for", "in", "to", "a", "an", "with", "at", "on",
    "job", "title", "position", "role", "we", "are", "is", "our", "you",
}

def lex_keywords(s: str) -> List[str]:
    """
    Lowercase word tokens in first-seen order. Keeps +, #, ., /, - inside tokens
    (c++, c#, node.js, ci/cd); drops stop-words and one-letter tokens.
    """
    cleaned = re.sub(r"[^a-z0-9+#.\-/ ]+", " ", (s or "").lower())
    tokens = (t.strip(".-/") for t in cleaned.split())
    return uniq_preserve([t for t in tokens if len(t) > 1 and t not in STOPWORDS])

def term_pattern(term: str) -> re.Pattern:
    """Case-insensitive whole-term matcher that copes with c++, c#, node.js."""
    return re.compile(r"(?<![A-Za-z0-9+#.])" + re.escape(term) + r"(?![A-Za-z0-9+#])", re.I)

def uniq_preserve(xs: List[str]) -> List[str]:
    seen: set[str] = set()
    out: List[str] = []
    for x in xs or []:
        k = str(x).strip().lower()
        if k and k not in seen:
            seen.add(k)
            out.append(str(x).strip())
    return out

# -------- JSON + strings -----------------------------------------------------

_JSON_OBJECT_RE = re.compile(r"\{.*\}|\[.*\]", re.S)

def json_loose(s: str) -> Any:
    """
    Parse a possibly noisy LLM response and return the first valid JSON object/array.
    Strips ``` fences and trailing commas.
    """
    text = (s or "").strip()
    if text.startswith("```"):
        text = re.sub(r"^```[\w-]*\s*", "", text)
        text = re.sub(r"\s*```$", "", text).strip()
    try:
        return json.loads(text)
    except ValueError:
        m = _JSON_OBJECT_RE.search(text)
        if not m:
            raise
        return json.loads(re.sub(r",(\s*[}\]])", r"\1", m.group(0)))

def clip(s: Optional[str], n: int = 1200) -> str:
    if not s:
        return ""
    s = str(s)
    return s if len(s) <= n else s[:n]

# -------- Time + dates -------------------------------------------------------

def now_utc() -> datetime:
    return datetime.now(timezone.utc)

_PRESENT = ("present", "current", "now", "today")

def parse_date_soft(s: Optional[str]) -> Optional[datetime]:
    """Best-effort parse for resume dates; supports 'Present/Current'."""
    if not s:
        return None
    tl = str(s).strip().lower()
    if any(k in tl for k in _PRESENT):
        now = now_utc()
        return datetime(now.year, now.month, 1)
    m = re.fullmatch(r"(\d{1,2})\s*/\s*(\d{4})", tl)
    if m and 1 <= int(m.group(1)) <= 12:
        return datetime(int(m.group(2)), int(m.group(1)), 1)
    try:
        dt = date_parser.parse(tl, default=datetime(2000, 1, 1), fuzzy=True)
        if 1900 <= dt.year <= 2100:
            return datetime(dt.year, dt.month, 1)
    except (ValueError, OverflowError):
        pass
    m = re.search(r"(20\d{2}|19\d{2})", tl)
    if m:
        return datetime(int(m.group(1)), 1, 1)
    return None

def months_between(a: Optional[datetime], b: Optional[datetime]) -> int:
    if not a or not b:
        return 0
    return max(0, (b.year - a.year) * 12 + (b.month - a.month))

def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


__all__ = [
    # readers
    "read_any_bytes", "read_pdf_bytes", "read_docx_bytes", "read_doc_bytes", "read_text_bytes",
    # cleanup/sections
    "normalize_text", "smart_sections", "section_text", "SECTION_PAT",
    # lexical
    "lex_keywords", "term_pattern", "uniq_preserve", "STOPWORDS",
    # json/string utils
    "json_loose", "clip",
    # time/dates/math
    "now_utc", "parse_date_soft", "months_between", "round_half_up",
]
