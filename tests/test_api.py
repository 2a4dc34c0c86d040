import logging

from conftest import make_csv, make_xlsx
from verifier.config import settings
from verifier.middleware import log_level_for
from verifier.models import CandidateProfile, RunStatus

ROWS = [
    ("John Doe", "john@x.com", "Acme", "Engineer"),
    ("Jane Roe", "jane@x.com", "Globex", "Manager"),
    ("Bob Stone", "bob@x.com", "Initech", "Analyst"),
]


def upload(client, content, filename="staff.csv"):
    return client.post("/upload", files={"file": (filename, content, "application/octet-stream")})


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "version": settings.version}


def test_root_lists_endpoints(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "upload" in r.json()["endpoints"]


def test_upload_returns_count_and_warnings(client, store):
    content = make_csv(ROWS + [("No Email", "", "Acme", "Engineer")])
    r = upload(client, content)

    assert r.status_code == 201
    body = r.json()
    assert body["record_count"] == 3
    assert body["total_rows"] == 4
    assert body["column_map"]["email"] == "Email"
    assert body["warnings"] == [
        {"row_number": 5, "reason": "Missing required value(s): email", "missing_fields": ["email"]},
    ]
    assert len(store.list()) == 3
    assert store.run.status == RunStatus.PENDING


def test_upload_xlsx(client):
    r = upload(client, make_xlsx(ROWS), "staff.xlsx")
    assert r.status_code == 201
    assert r.json()["record_count"] == 3


def test_upload_unsupported_format(client):
    r = upload(client, b"hello", "staff.txt")
    assert r.status_code == 400
    assert r.json()["error"] == "unsupported_format"


def test_upload_missing_columns(client):
    r = upload(client, make_csv([("John", "Acme")], header=("Name", "Company")))
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "missing_required_columns"
    assert "email" in body["detail"]
    assert "position" in body["detail"]


def test_upload_too_large(client, monkeypatch):
    monkeypatch.setattr(settings.upload, "max_size_bytes", 10)
    r = upload(client, make_csv(ROWS))
    assert r.status_code == 413
    assert r.json()["error"] == "file_too_large"


def test_upload_rejected_while_running(client, store):
    upload(client, make_csv(ROWS))
    store.update_run_status(RunStatus.RUNNING)

    r = upload(client, make_csv(ROWS[:1]))

    assert r.status_code == 409
    assert len(store.list()) == 3


def test_full_analysis_flow(client, store):
    upload(client, make_csv(ROWS))

    r = client.post("/analysis/start")
    assert r.status_code == 202
    assert r.json()["total"] == 3

    # TestClient runs background tasks before returning
    status = client.get("/analysis/status").json()
    assert status["status"] == "complete"
    assert status["processed"] == status["total"] == 3

    records = client.get("/records", params={"tier": "exact"}).json()
    assert records["count"] == 3
    assert records["records"][0]["result"]["agreement_count"] == 4

    summary = client.get("/records/summary").json()
    assert summary["exact"] == 3
    assert summary["pending"] == 0
    assert summary["run"]["status"] == "complete"


def test_partial_match_example(client, store, lookup_client):
    async def lookup(name, email, company, position):
        return CandidateProfile(name=name, email=email, company="Other Co", position=position)

    lookup_client.lookup = lookup
    upload(client, make_csv(ROWS[:1]))
    client.post("/analysis/start")

    record = client.get("/records").json()["records"][0]
    assert record["tier"] == "partial"
    assert record["result"]["agreement_count"] == 3
    assert record["result"]["company_match"] is False
    assert record["result"]["candidate"]["company"] == "Other Co"


def test_start_conflict_when_running(client, store):
    upload(client, make_csv(ROWS))
    store.update_run_status(RunStatus.RUNNING, processed=1)
    run_id = store.run.run_id

    r = client.post("/analysis/start")

    assert r.status_code == 409
    assert r.json()["error"] == "conflict"
    assert store.run.run_id == run_id
    assert store.run.processed == 1


def test_start_without_upload_conflicts(client):
    r = client.post("/analysis/start")
    assert r.status_code == 409


def test_cancel_when_idle_conflicts(client):
    r = client.post("/analysis/cancel")
    assert r.status_code == 409


def test_records_search_and_invalid_tier(client):
    upload(client, make_csv(ROWS))

    r = client.get("/records", params={"q": "GLOBEX"})
    assert [rec["email"] for rec in r.json()["records"]] == ["jane@x.com"]
    assert r.json()["records"][0]["tier"] == "pending"

    r = client.get("/records", params={"tier": "gold"})
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_filter"


def test_record_detail(client, store):
    upload(client, make_csv(ROWS))
    record = store.list()[1]

    r = client.get(f"/records/{record.id}")
    assert r.status_code == 200
    assert r.json()["email"] == "jane@x.com"
    assert r.json()["result"] is None

    assert client.get("/records/nonexistent").status_code == 404


def test_export_download(client):
    upload(client, make_csv(ROWS))
    client.post("/analysis/start")

    r = client.get("/export", params={"tier": "exact"})

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert r.headers["content-disposition"].startswith('attachment; filename="employee_verification_exact_')
    lines = r.text.strip().split("\n")
    assert len(lines) == 1 + len(ROWS)


def test_export_invalid_tier(client):
    r = client.get("/export", params={"tier": "gold"})
    assert r.status_code == 400


def test_records_all_tier_lists_everything(client):
    upload(client, make_csv(ROWS))
    r = client.get("/records", params={"tier": "all"})
    assert r.status_code == 200
    assert r.json()["count"] == len(ROWS)


def test_request_id_is_generated_or_echoed(client):
    generated = client.get("/health").headers["X-Request-ID"]
    assert len(generated) == 32

    r = client.get("/health", headers={"X-Request-ID": "dashboard-42"})
    assert r.headers["X-Request-ID"] == "dashboard-42"


def test_status_polls_log_below_info(client, caplog):
    with caplog.at_level(logging.DEBUG, logger="verifier.middleware"):
        client.get("/analysis/status")
        client.post("/analysis/cancel")

    levels = {rec.getMessage().split(" ")[1]: rec.levelno for rec in caplog.records if rec.name == "verifier.middleware"}
    assert levels["/analysis/status"] == logging.DEBUG
    assert levels["/analysis/cancel"] == logging.WARNING


def test_slow_request_threshold_is_configurable():
    assert log_level_for("GET", "/records", 200, 10.0) == logging.INFO
    assert log_level_for("GET", "/records", 200, settings.logging.slow_request_ms + 1) == logging.WARNING
    assert log_level_for("GET", "/analysis/status", 200, 10.0) == logging.DEBUG
    assert log_level_for("GET", "/analysis/status", 500, 10.0) == logging.ERROR
