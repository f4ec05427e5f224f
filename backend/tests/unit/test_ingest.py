"""
Upload validation and text loading tests.
"""

import io
import zipfile

import pytest

from cv_intelligence.core.config import merge_options
from cv_intelligence.core.errors import ExtractionFailed
from cv_intelligence.pipeline.ingest import load_text, validate_uploads
from cv_intelligence.pipeline.state import UploadedFile

from conftest import CV_STRONG, JD_TEXT, build_pdf


def _txt(name, text="some readable text for the file", ctype="text/plain"):
    return UploadedFile(filename=name, content=text.encode("utf-8"), content_type=ctype)


def _docx(text: str) -> bytes:
    body = "".join(f"<w:p><w:r><w:t>{line}</w:t></w:r></w:p>" for line in text.splitlines() if line.strip())
    xml = (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
        f"<w:body>{body}</w:body></w:document>"
    )
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as z:
        z.writestr("word/document.xml", xml)
    return buf.getvalue()


@pytest.fixture
def options():
    return merge_options()


class TestValidateUploads:
    """validate_uploads collects every violation"""

    def test_valid_submission(self, options):
        result = validate_uploads(_txt("jd.txt"), [_txt("a.txt"), _txt("b.txt")], options)
        assert result.valid is True
        assert result.errors == []

    def test_missing_jd_and_resumes(self, options):
        result = validate_uploads(None, [], options)
        assert result.valid is False
        assert result.errors == ["Job description file is required", "At least 1 CV file is required"]

    def test_too_many_resumes(self, options):
        files = [_txt(f"cv{i}.txt") for i in range(11)]
        result = validate_uploads(_txt("jd.txt"), files, options)
        assert not result.valid
        assert "Maximum 10 CV files allowed" in result.errors

    def test_ten_resumes_is_the_limit(self, options):
        files = [_txt(f"cv{i}.txt") for i in range(10)]
        assert validate_uploads(_txt("jd.txt"), files, options).valid

    def test_collects_all_per_file_errors(self, options):
        big = UploadedFile("huge.pdf", b"x" * (10 * 1024 * 1024 + 1), "application/pdf")
        empty = UploadedFile("empty.txt", b"", "text/plain")
        image = UploadedFile("photo.png", b"\x89PNG....", "image/png")
        result = validate_uploads(_txt("jd.txt"), [big, empty, image], options)
        assert result.errors == [
            "huge.pdf: file exceeds 10MB limit",
            "empty.txt: file is empty",
            "photo.png: unsupported file type (allowed: PDF, TXT, DOC, DOCX)",
        ]

    def test_exactly_ten_megabytes_is_accepted(self, options):
        ok = UploadedFile("max.pdf", b"x" * (10 * 1024 * 1024), "application/pdf")
        assert validate_uploads(_txt("jd.txt"), [ok], options).valid

    def test_jd_is_checked_too(self, options):
        result = validate_uploads(_txt("jd.exe", ctype="application/octet-stream"), [_txt("a.txt")], options)
        assert result.errors == ["jd.exe: unsupported file type (allowed: PDF, TXT, DOC, DOCX)"]

    def test_declared_type_must_be_allowed(self, options):
        result = validate_uploads(_txt("jd.txt"), [_txt("cv.pdf", ctype="text/html")], options)
        assert result.errors == ["cv.pdf: unsupported file type (allowed: PDF, TXT, DOC, DOCX)"]

    def test_generic_content_type_falls_back_to_extension(self, options):
        cv = UploadedFile("cv.docx", b"PK..", "application/octet-stream")
        assert validate_uploads(_txt("jd.txt"), [cv], options).valid

    def test_limit_follows_options(self):
        opts = merge_options({"max_cv_files": 2})
        result = validate_uploads(_txt("jd.txt"), [_txt("a.txt")] * 3, opts)
        assert result.errors == ["Maximum 2 CV files allowed"]

    def test_is_pure(self, options):
        files = [_txt("a.txt")]
        first = validate_uploads(_txt("jd.txt"), files, options)
        second = validate_uploads(_txt("jd.txt"), files, options)
        assert first == second
        assert files == [_txt("a.txt")]


class TestLoadText:
    """load_text extracts text per format or raises ExtractionFailed"""

    def test_txt(self):
        text = load_text(_txt("jd.txt", JD_TEXT))
        assert text.startswith("Job Title: Senior Frontend Developer")

    def test_pdf(self):
        f = UploadedFile("cv.pdf", build_pdf(CV_STRONG), "application/pdf")
        text = load_text(f)
        assert "Alice Johnson" in text
        assert "alice.johnson@example.com" in text

    def test_docx(self):
        f = UploadedFile("cv.docx", _docx(CV_STRONG), None)
        text = load_text(f)
        assert text.splitlines()[0] == "Alice Johnson"
        assert "Stanford University" in text

    def test_doc_best_effort(self):
        blob = b"\xd0\xcf\x11\xe0\x00\x00" + CV_STRONG.encode("ascii") + b"\x00\x01\x02"
        text = load_text(UploadedFile("cv.doc", blob, "application/msword"))
        assert "Alice Johnson" in text

    def test_corrupt_pdf(self):
        with pytest.raises(ExtractionFailed) as exc:
            load_text(UploadedFile("broken.pdf", b"%PDF-1.4 garbage", "application/pdf"))
        assert exc.value.filename == "broken.pdf"
        assert exc.value.as_failure()["filename"] == "broken.pdf"

    def test_near_empty_text(self):
        with pytest.raises(ExtractionFailed) as exc:
            load_text(_txt("blank.txt", "   \n  hi \n"))
        assert exc.value.reason == "no readable text found"

    def test_normalizes_bullets_and_whitespace(self):
        text = load_text(_txt("cv.txt", "Jane   Doe\r\n• Built   things with Python\r\n"))
        assert text == "Jane Doe\n- Built things with Python"
