"""
Pytest configuration.
Provides a temp SQLite database per test, PDF/TXT upload builders, sample
JD/CV texts and a TestClient wired to the same database.
"""

from typing import Callable, Iterator, List

import fitz  # PyMuPDF
import pytest
from fastapi.testclient import TestClient

from cv_intelligence.db import session as db_session
from cv_intelligence.db.session import ensure_tables, init_engine
from cv_intelligence.pipeline import extract_align
from cv_intelligence.pipeline.service import BatchService
from cv_intelligence.pipeline.state import UploadedFile

OWNER = "user-alice"
OTHER_OWNER = "user-bob"


# ==================== Sample documents ====================

JD_TEXT = """Job Title: Senior Frontend Developer

Requirements
- 3+ years of experience building web applications
- Strong skills in React, TypeScript and JavaScript
- Experience with CSS and HTML
- Familiarity with Git is a plus
- Bachelor's degree in Computer Science or related field
"""

CV_STRONG = """Alice Johnson
alice.johnson@example.com | +1 415 555 0100 | San Francisco, CA

Experience
Senior Frontend Developer at Acme Corp | Jan 2019 - Present
- Built React and TypeScript dashboards used by 40 teams
- Led the migration to modern JavaScript modules
Frontend Engineer, Webify | Jun 2016 - Dec 2018
- Maintained the CSS and HTML component library

Education
B.Sc. in Computer Science, Stanford University, 2016

Skills
React, TypeScript, JavaScript, CSS, HTML, Git
"""

CV_MEDIUM = """Bob Smith
bob.smith@example.com

Experience
Web Developer at Startly | Mar 2023 - Present
- Built marketing pages with HTML and CSS
- Added small JavaScript widgets

Education
Associate Degree in Web Design, City College, 2022
"""

CV_WEAK = """Carol White

Experience
Barista at Coffee House | 2020 - 2021
- Served customers and handled the register
"""


# ==================== Environment ====================

@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Options must come from DEFAULT_OPTIONS only, never from the developer's shell."""
    for key in (
        "CV_MAX_FILES", "CV_MAX_FILE_BYTES", "CV_MAX_WORKERS", "CV_ANALYSIS_TIMEOUT",
        "CV_ANALYSIS_MODE", "CV_LLM_MODEL", "CV_SCORE_WEIGHTS",
    ):
        monkeypatch.delenv(key, raising=False)
    extract_align.clear_cache()
    yield
    extract_align.clear_cache()


# ==================== Database Fixtures ====================

@pytest.fixture(scope="function")
def db(tmp_path) -> Iterator[None]:
    """
    Fresh file-backed SQLite database for every test (worker threads and the
    test thread share it, which an in-memory database cannot do).
    """
    engine = init_engine(f"sqlite:///{tmp_path / 'cv_intelligence_test.db'}")
    ensure_tables()
    yield
    engine.dispose()
    db_session.engine = None
    db_session.SessionLocal = None


@pytest.fixture
def session(db):
    with db_session.session_scope() as s:
        yield s


@pytest.fixture
def service(db) -> BatchService:
    return BatchService()


# ==================== Upload builders ====================

def build_pdf(text: str) -> bytes:
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), text, fontsize=10)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def make_pdf() -> Callable[[str, str], UploadedFile]:
    def _make(filename: str, text: str) -> UploadedFile:
        return UploadedFile(filename=filename, content=build_pdf(text), content_type="application/pdf")
    return _make


@pytest.fixture
def make_txt() -> Callable[[str, str], UploadedFile]:
    def _make(filename: str, text: str) -> UploadedFile:
        return UploadedFile(filename=filename, content=text.encode("utf-8"), content_type="text/plain")
    return _make


@pytest.fixture
def jd_upload(make_txt) -> UploadedFile:
    return make_txt("frontend_jd.txt", JD_TEXT)


@pytest.fixture
def resume_uploads(make_txt) -> List[UploadedFile]:
    # weakest first so ranking has to reorder
    return [
        make_txt("carol.txt", CV_WEAK),
        make_txt("alice.txt", CV_STRONG),
        make_txt("bob.txt", CV_MEDIUM),
    ]


# ==================== API Fixtures ====================

@pytest.fixture
def client(db, service) -> Iterator[TestClient]:
    from cv_intelligence.main import app, get_service

    app.dependency_overrides[get_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth() -> dict:
    return {"Authorization": f"Bearer {OWNER}"}


@pytest.fixture
def other_auth() -> dict:
    return {"Authorization": f"Bearer {OTHER_OWNER}"}
