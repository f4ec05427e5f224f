"""
REST layer tests: envelope, status codes and routes.
"""

from conftest import CV_MEDIUM, CV_STRONG, CV_WEAK, JD_TEXT

BASE = "/api/cv-intelligence"


def _files(cvs, jd=("jd.txt", JD_TEXT)):
    parts = [("jdFile", (jd[0], jd[1].encode("utf-8"), "text/plain"))]
    parts += [("cvFiles", (name, text.encode("utf-8"), "text/plain")) for name, text in cvs]
    return parts


def _create(client, auth, name="Frontend Q1") -> str:
    res = client.post(f"{BASE}/", json={"name": name}, headers=auth)
    assert res.status_code == 201
    return res.json()["data"]["batchId"]


class TestEnvelope:
    def test_health(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        body = res.json()
        assert body["success"] is True
        assert body["data"]["ok"] is True

    def test_config(self, client):
        data = client.get("/api/v1/config").json()["data"]
        assert data["max_cv_files"] == 10
        assert data["analysis_mode"] == "heuristic"

    def test_missing_token(self, client):
        res = client.get(f"{BASE}/batches")
        assert res.status_code == 401
        assert res.json() == {"success": False, "message": "Missing bearer token"}

    def test_blank_name(self, client, auth):
        res = client.post(f"{BASE}/", json={"name": "   "}, headers=auth)
        assert res.status_code == 400
        body = res.json()
        assert body["success"] is False
        assert body["message"] == "Batch name is required"
        assert body["data"]["errors"] == ["Batch name is required"]

    def test_unexpected_error_uses_envelope(self, db, auth):
        from fastapi.testclient import TestClient

        from cv_intelligence.main import app, get_service
        from cv_intelligence.pipeline.service import BatchService

        class BrokenService(BatchService):
            def list_batches(self, owner_id):
                raise RuntimeError("database went away")

        app.dependency_overrides[get_service] = lambda: BrokenService()
        try:
            res = TestClient(app, raise_server_exceptions=False).get(f"{BASE}/batches", headers=auth)
        finally:
            app.dependency_overrides.clear()
        assert res.status_code == 500
        assert res.headers["content-type"].startswith("application/json")
        assert res.json() == {"success": False, "message": "Internal server error"}

    def test_batch_name_alias(self, client, auth):
        res = client.post(f"{BASE}/", json={"batchName": "Backend Q2"}, headers=auth)
        assert res.status_code == 201
        assert res.json()["data"]["batch"]["name"] == "Backend Q2"


class TestBatchRoutes:
    def test_full_flow(self, client, auth):
        res = client.post(f"{BASE}/", json={"name": "Frontend Q1"}, headers=auth)
        body = res.json()
        assert body["success"] is True
        batch_id = body["data"]["batchId"]
        assert body["data"]["batch"]["status"] == "pending"
        assert body["data"]["batch"]["summary"] is None

        res = client.post(
            f"{BASE}/batch/{batch_id}/process",
            files=_files([("carol.txt", CV_WEAK), ("alice.txt", CV_STRONG), ("bob.txt", CV_MEDIUM)]),
            headers=auth,
        )
        assert res.status_code == 200, res.text
        data = res.json()["data"]
        assert data["batch"]["status"] == "completed"
        assert data["batch"]["summary"]["total_processed"] == 3
        assert data["failures"] == []

        detail = client.get(f"{BASE}/batch/{batch_id}", headers=auth).json()["data"]
        assert [c["rank"] for c in detail["candidates"]] == [1, 2, 3]
        assert detail["candidates"][0]["filename"] == "alice.txt"
        assert detail["candidates"][0]["personal"]["email"] == "alice.johnson@example.com"
        assert detail["candidates"][2]["personal"]["email"] is None

        listed = client.get(f"{BASE}/batches", headers=auth).json()["data"]
        assert [b["id"] for b in listed] == [batch_id]

        cands = client.get(f"{BASE}/batch/{batch_id}/candidates", headers=auth).json()["data"]
        top_id = cands[0]["id"]
        one = client.get(f"{BASE}/candidate/{top_id}", headers=auth).json()["data"]
        assert one["rank"] == 1

        res = client.put(f"{BASE}/candidate/{top_id}/interview", json={"reference": "evt-1"}, headers=auth)
        assert res.json()["data"]["scheduled_interview"] == "evt-1"

        stats = client.get(f"{BASE}/analytics", headers=auth).json()["data"]
        assert stats["total_candidates"] == 3

        res = client.delete(f"{BASE}/batch/{batch_id}", headers=auth)
        assert res.status_code == 200
        assert res.json()["success"] is True
        res = client.get(f"{BASE}/batch/{batch_id}", headers=auth)
        assert res.status_code == 404
        assert res.json()["message"] == "Batch not found"

    def test_too_many_files(self, client, auth):
        batch_id = _create(client, auth)
        cvs = [(f"cv{i}.txt", CV_MEDIUM) for i in range(11)]
        res = client.post(f"{BASE}/batch/{batch_id}/process", files=_files(cvs), headers=auth)
        assert res.status_code == 400
        assert "Maximum 10 CV files allowed" in res.json()["data"]["errors"]
        status = client.get(f"{BASE}/batch/{batch_id}", headers=auth).json()["data"]["batch"]["status"]
        assert status == "pending"

    def test_missing_jd(self, client, auth):
        batch_id = _create(client, auth)
        files = [("cvFiles", ("a.txt", CV_STRONG.encode("utf-8"), "text/plain"))]
        res = client.post(f"{BASE}/batch/{batch_id}/process", files=files, headers=auth)
        assert res.status_code == 400
        assert res.json()["data"]["errors"] == ["Job description file is required"]

    def test_bracketed_field_name(self, client, auth):
        batch_id = _create(client, auth)
        files = [
            ("jdFile", ("jd.txt", JD_TEXT.encode("utf-8"), "text/plain")),
            ("cvFiles[]", ("alice.txt", CV_STRONG.encode("utf-8"), "text/plain")),
        ]
        res = client.post(f"{BASE}/batch/{batch_id}/process", files=files, headers=auth)
        assert res.status_code == 200, res.text
        assert res.json()["data"]["batch"]["candidate_count"] == 1

    def test_resubmission_conflict(self, client, auth):
        batch_id = _create(client, auth)
        files = _files([("alice.txt", CV_STRONG)])
        assert client.post(f"{BASE}/batch/{batch_id}/process", files=files, headers=auth).status_code == 200
        res = client.post(f"{BASE}/batch/{batch_id}/process", files=files, headers=auth)
        assert res.status_code == 409
        assert res.json()["success"] is False

    def test_empty_batch(self, client, auth):
        batch_id = _create(client, auth)
        files = _files([("a.txt", "hi"), ("b.txt", "  ok ")])
        res = client.post(f"{BASE}/batch/{batch_id}/process", files=files, headers=auth)
        assert res.status_code == 422
        body = res.json()
        assert [f["filename"] for f in body["data"]["failures"]] == ["a.txt", "b.txt"]
        assert body["data"]["batch"]["status"] == "failed"

    def test_cross_owner_is_not_found(self, client, auth, other_auth):
        batch_id = _create(client, auth)
        for method, path in [
            ("get", f"{BASE}/batch/{batch_id}"),
            ("get", f"{BASE}/batch/{batch_id}/candidates"),
            ("delete", f"{BASE}/batch/{batch_id}"),
        ]:
            res = getattr(client, method)(path, headers=other_auth)
            assert res.status_code == 404
            assert res.json() == {"success": False, "message": "Batch not found"}
        assert client.get(f"{BASE}/batches", headers=other_auth).json()["data"] == []
