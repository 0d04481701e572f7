"""
API tests through FastAPI's TestClient.

The app is built with an injected store and the scripted generator, so no
database file or API key is needed. The local backend needs no login; the
SQL backend tests log in against in-memory SQLite.
"""

import json
import time

import pytest
from fastapi.testclient import TestClient

from app.auth.utils import get_password_hash
from app.database import get_db
from app.main import create_app
from app.models import User
from app.services.local_store import LocalRecordStore
from app.services.record_store import SqlRecordStore

DAY = "2024-03-15"


def wait_for_summary(client, date, timeout=3.0):
    """Poll the status endpoint the way the editor does."""
    deadline = time.monotonic() + timeout
    body = client.get(f"/api/records/{date}/status").json()
    while body["summary_status"] == "polling" and time.monotonic() < deadline:
        time.sleep(0.02)
        body = client.get(f"/api/records/{date}/status").json()
    return body


@pytest.fixture
def client(tmp_path, generator):
    app = create_app(
        store=LocalRecordStore(str(tmp_path / "journal.json")),
        generator=generator,
        store_backend="local",
        poll_interval=0.01,
    )
    with TestClient(app) as client:
        yield client


@pytest.fixture
def sql_client(sql_session_factory, generator):
    db = sql_session_factory()
    db.add(User(id=3, email="writer@example.com", password_hash=get_password_hash("s3cret!"), full_name="Writer"))
    db.commit()
    db.close()

    def override_get_db():
        db = sql_session_factory()
        try:
            yield db
        finally:
            db.close()

    app = create_app(
        store=SqlRecordStore(sql_session_factory),
        generator=generator,
        store_backend="sql",
        poll_interval=0.01,
    )
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client


class TestRecordEndpoints:
    """Editor and calendar endpoints on the local backend."""

    def test_today(self, client):
        assert len(client.get("/api/today").json()["date"]) == 10

    def test_save_then_summary_arrives(self, client):
        content = "学习了 TypeScript\n\n完成了项目部署"
        response = client.put(f"/api/records/{DAY}", json={"content": content})

        assert response.status_code == 200
        body = response.json()
        assert body["deleted"] is False
        assert body["record"]["content"] == content
        assert body["summary_status"] == "polling"

        status = wait_for_summary(client, DAY)
        assert status["summary_status"] == "complete"
        assert status["record"]["summary"] == f"summary of: {content}"

        record = client.get(f"/api/records/{DAY}").json()["record"]
        assert record["summary"] == f"summary of: {content}"

    def test_missing_record(self, client):
        response = client.get(f"/api/records/{DAY}")
        assert response.status_code == 200
        assert response.json()["record"] is None

    def test_punctuation_save_deletes(self, client):
        client.put(f"/api/records/{DAY}", json={"content": "went running"})
        body = client.put(f"/api/records/{DAY}", json={"content": "。。。"}).json()

        assert body["deleted"] is True
        assert client.get(f"/api/records/{DAY}").json()["record"] is None

    def test_delete_endpoint(self, client):
        client.put(f"/api/records/{DAY}", json={"content": "went running"})
        assert client.delete(f"/api/records/{DAY}").json() == {"ok": True}
        assert client.get(f"/api/records/{DAY}").json()["record"] is None

    def test_invalid_date(self, client):
        assert client.put("/api/records/2024-3-15", json={"content": "x"}).status_code == 400
        assert client.get("/api/months/2024/13").status_code == 400

    def test_manual_summary(self, client):
        client.put(f"/api/records/{DAY}", json={"content": "went running"})
        response = client.put(f"/api/records/{DAY}/summary", json={"summary": "5k run"})

        assert response.status_code == 200
        assert response.json()["record"]["summary"] == "5k run"

    def test_manual_summary_missing_record(self, client):
        response = client.put(f"/api/records/{DAY}/summary", json={"summary": "orphan"})
        assert response.status_code == 404

    def test_month_listing(self, client):
        client.put("/api/records/2024-03-20", json={"content": "later"})
        client.put("/api/records/2024-03-02", json={"content": "earlier"})
        client.put("/api/records/2024-04-01", json={"content": "next month"})

        body = client.get("/api/months/2024/3").json()

        assert body["month"] == "2024-03"
        assert [r["date"] for r in body["records"]] == ["2024-03-02", "2024-03-20"]

    def test_corrupt_store_is_503(self, tmp_path, generator):
        path = tmp_path / "journal.json"
        path.write_text("{broken", encoding="utf-8")
        app = create_app(store=LocalRecordStore(str(path)), generator=generator, store_backend="local")
        with TestClient(app) as client:
            response = client.get(f"/api/records/{DAY}")
        assert response.status_code == 503

    def test_non_object_store_is_503(self, tmp_path, generator):
        path = tmp_path / "journal.json"
        path.write_text("[1, 2]", encoding="utf-8")
        app = create_app(store=LocalRecordStore(str(path)), generator=generator, store_backend="local")
        with TestClient(app) as client:
            response = client.get(f"/api/records/{DAY}")
        assert response.status_code == 503


class TestReviewEndpoints:
    """Monthly review and year calendar."""

    def test_generate_then_cached(self, client, generator):
        client.put("/api/records/2024-03-02", json={"content": "first"})
        wait_for_summary(client, "2024-03-02")

        first = client.post("/api/review/2024/3/generate")
        second = client.post("/api/review/2024/3/generate")

        assert first.status_code == 200
        assert first.json()["cached"] is False
        assert first.json()["overview"] == "A productive month"
        assert second.json()["cached"] is True
        assert len(generator.monthly_calls) == 1

    def test_review_page_shows_cached_summary(self, client):
        client.put("/api/records/2024-03-02", json={"content": "first"})
        wait_for_summary(client, "2024-03-02")
        assert client.get("/api/review/2024/3").json()["summary"] is None

        client.post("/api/review/2024/3/generate")
        body = client.get("/api/review/2024/3").json()

        assert body["summary"]["overview"] == "A productive month"
        assert [r["date"] for r in body["records"]] == ["2024-03-02"]

    def test_empty_month_is_404(self, client):
        assert client.post("/api/review/2024/3/generate").status_code == 404

    def test_generation_failure_is_502(self, client, generator):
        client.put("/api/records/2024-03-02", json={"content": "first"})
        generator.fail = True
        assert client.post("/api/review/2024/3/generate").status_code == 502

    def test_keywords(self, client):
        client.put("/api/records/2024-03-02", json={"content": "docker"})
        wait_for_summary(client, "2024-03-02")
        body = client.get("/api/review/2024/3/keywords").json()
        assert body["keywords"] == [{"word": "TypeScript", "count": 3}]

    def test_year(self, client):
        client.put("/api/records/2024-01-05", json={"content": "a"})
        client.put("/api/records/2024-03-02", json={"content": "b"})
        body = client.get("/api/review/2024").json()
        assert body["total_days"] == 2
        assert body["months"]["2024-01"] == 1


class TestSettingsEndpoints:
    """Export, import and wipe."""

    def test_export(self, client):
        client.put(f"/api/records/{DAY}", json={"content": "went running"})
        response = client.get("/api/settings/export")

        assert response.status_code == 200
        assert "attachment" in response.headers["content-disposition"]
        assert response.json()["records"][0]["content"] == "went running"

    def test_import_over_existing_date(self, client):
        client.put(f"/api/records/{DAY}", json={"content": "old"})
        client.get("/api/months/2024/3")

        response = client.post("/api/settings/import", json={
            "records": [{"date": DAY, "content": "imported"}],
        })

        assert response.status_code == 200
        assert response.json()["imported"] == 1
        assert [r["content"] for r in client.get("/api/months/2024/3").json()["records"]] == ["imported"]

    def test_import_file(self, client):
        document = {"records": [{"date": DAY, "content": "from file"}], "summaries": {}}
        response = client.post(
            "/api/settings/import-file",
            files={"file": ("export.json", json.dumps(document), "application/json")},
        )
        assert response.json()["imported"] == 1

    def test_import_drops_empty_rows(self, client):
        client.put(f"/api/records/{DAY}", json={"content": "went running"})
        response = client.post("/api/settings/import", json={
            "records": [{"date": DAY, "content": "   "}],
        })

        assert response.json()["removed"] == 1
        assert response.json()["imported"] == 0
        assert client.get(f"/api/records/{DAY}").json()["record"] is None

    def test_import_not_an_object(self, client):
        assert client.post("/api/settings/import", json=[1, 2]).status_code == 400

    def test_import_not_json(self, client):
        response = client.post(
            "/api/settings/import-file",
            files={"file": ("export.json", "not json", "application/json")},
        )
        assert response.status_code == 400

    def test_clear(self, client):
        client.put(f"/api/records/{DAY}", json={"content": "went running"})
        assert client.delete("/api/settings/data").json() == {"ok": True}
        assert client.get("/api/settings/export").json()["records"] == []


class TestSessionAuth:
    """SQL backend: every journal route needs a session."""

    def test_requires_login(self, sql_client):
        response = sql_client.get(f"/api/records/{DAY}")
        assert response.status_code == 401
        assert response.json()["detail"] == "Not logged in, please log in first"

    def test_bad_password(self, sql_client):
        response = sql_client.post("/login", json={"email": "writer@example.com", "password": "nope"})
        assert response.status_code == 401

    def test_login_save_logout(self, sql_client):
        login = sql_client.post("/login", json={"email": "writer@example.com", "password": "s3cret!"})
        assert login.status_code == 200
        assert sql_client.get("/me").json()["email"] == "writer@example.com"

        saved = sql_client.put(f"/api/records/{DAY}", json={"content": "went running"})
        assert saved.status_code == 200
        assert saved.json()["record"]["owner"] == 3

        sql_client.post("/logout")
        assert sql_client.get(f"/api/records/{DAY}").status_code == 401

    def test_email_is_case_insensitive(self, sql_client):
        response = sql_client.post("/login", json={"email": " Writer@Example.com ", "password": "s3cret!"})
        assert response.status_code == 200

    def test_me_requires_session(self, sql_client):
        assert sql_client.get("/me").status_code == 401

    def test_deactivated_user_loses_journal_access(self, sql_client, sql_session_factory):
        """Deactivating the account locks the journal for an existing session."""
        sql_client.post("/login", json={"email": "writer@example.com", "password": "s3cret!"})
        assert sql_client.get(f"/api/records/{DAY}").status_code == 200

        db = sql_session_factory()
        db.query(User).filter(User.id == 3).update({"is_active": False})
        db.commit()
        db.close()

        response = sql_client.get(f"/api/records/{DAY}")
        assert response.status_code == 401
        assert response.json()["detail"] == "Session expired, please log in again"
