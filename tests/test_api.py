import uuid
import zipfile

from tests.fakes import JPEG_BYTES, PDF_BYTES, wait_for_terminal


def _add(client, job_id, href):
    return client.post(f"/jobs/{job_id}", json={"href": href})


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_end_to_end_flow(client, remote):
    urls = [
        remote.serve("http://files.test/page.html", b"<html></html>", content_type="text/html"),
        remote.serve("http://files.test/huge.pdf", PDF_BYTES, declared_size=50 * 1024 * 1024),
        remote.serve("http://files.test/photo.jpg", JPEG_BYTES, content_type="image/jpeg"),
    ]

    create_resp = client.post("/jobs")
    assert create_resp.status_code == 201, create_resp.text
    job_id = create_resp.json()["id"]
    assert create_resp.json()["status"] == "pending"

    pending = client.get(f"/jobs/{job_id}")
    assert pending.status_code == 200
    assert "archive_path" not in pending.json()
    assert "error_messages" not in pending.json()

    statuses = []
    for url in urls:
        resp = _add(client, job_id, url)
        assert resp.status_code == 201, resp.text
        statuses.append(resp.json()["status"])
    assert statuses == ["pending", "pending", "ready"]

    body = wait_for_terminal(client, job_id)
    assert body["status"] == "completed_with_errors"
    assert body["file_count"] == 3
    assert len(body["error_messages"]) == 2
    with zipfile.ZipFile(body["archive_path"]) as archive:
        assert len(archive.namelist()) == 1


def test_all_failed_job_reports_errors_without_archive(client, remote):
    job_id = client.post("/jobs").json()["id"]
    for i in range(3):
        _add(client, job_id, remote.break_link(f"http://down.test/{i}.pdf"))

    body = wait_for_terminal(client, job_id)
    assert body["status"] == "failed"
    assert "archive_path" not in body
    assert len(body["error_messages"]) == 3


def test_link_cap_returns_conflict(client, remote):
    job_id = client.post("/jobs").json()["id"]
    for i in range(3):
        assert _add(client, job_id, remote.serve(f"http://files.test/{i}.pdf", PDF_BYTES)).status_code == 201
    resp = _add(client, job_id, "http://files.test/extra.pdf")
    assert resp.status_code == 409
    wait_for_terminal(client, job_id)


def test_busy_when_all_slots_reserved(client):
    assert client.post("/jobs").status_code == 201
    assert client.post("/jobs").status_code == 201
    resp = client.post("/jobs")
    assert resp.status_code == 503
    assert resp.json()["detail"] == "server is busy"


def test_unknown_job_returns_not_found(client):
    missing = uuid.uuid4()
    assert client.get(f"/jobs/{missing}").status_code == 404
    assert _add(client, missing, "http://files.test/a.pdf").status_code == 404


def test_malformed_requests_return_bad_request(client):
    assert client.get("/jobs/not-a-uuid").status_code == 400
    assert _add(client, "not-a-uuid", "http://files.test/a.pdf").status_code == 400

    job_id = client.post("/jobs").json()["id"]
    assert client.post(f"/jobs/{job_id}", json={}).status_code == 400
    assert _add(client, job_id, "ftp://files.test/a.pdf").status_code == 400
    assert _add(client, job_id, "not a url").status_code == 400
    assert client.get(f"/jobs/{job_id}").json()["file_count"] == 0


def test_links_are_stored_as_sent(client):
    job_id = client.post("/jobs").json()["id"]
    assert _add(client, job_id, "http://files.test").status_code == 201
    assert _add(client, job_id, "http://bücher.test/Report.PDF").status_code == 201

    job = client.app.state.orchestrator.get_job(uuid.UUID(job_id))
    assert job.links == ["http://files.test", "http://bücher.test/Report.PDF"]
