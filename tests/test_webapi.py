from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from conftest import FailingRenderer, FakeRenderer
from pdf_converter import webapi
from pdf_converter.conversion import Strategy

DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


@pytest.fixture
def renderers():
    return [FailingRenderer(Strategy.LIBREOFFICE, "soffice missing"), FakeRenderer(Strategy.BROWSER)]


@pytest.fixture
def serve(tmp_path, monkeypatch):
    monkeypatch.setattr(webapi, "BASE_DIR", tmp_path)

    def _serve(chain):
        monkeypatch.setattr(webapi, "_build_renderers", lambda scratch_dir: chain)
        return TestClient(webapi.app, raise_server_exceptions=False)

    return _serve


@pytest.fixture
def client(serve, renderers):
    with serve(renderers) as c:
        yield c


def _files(tmp_path, sub):
    return sorted(p.name for p in (tmp_path / sub).iterdir())


def test_startup_creates_storage_directories(client, tmp_path):
    assert {"uploads", "temp", "output"} <= {p.name for p in tmp_path.iterdir()}


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["service"] == "Libre PDF Converter"
    assert body["version"] == webapi.VERSION
    assert body["timestamp"].endswith("Z")
    assert "Batch processing" in body["features"]


def test_convert_success(client, tmp_path):
    resp = client.post("/convert-docx-to-pdf", files={"file": ("letter.docx", b"PK..", DOCX)})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["originalName"] == "letter.docx"
    assert body["downloadUrl"] == f"/download/{body['convertedName']}"
    assert body["fileSize"] == (tmp_path / "output" / body["convertedName"]).stat().st_size
    assert _files(tmp_path, "uploads") == []


def test_convert_failure_returns_500_and_cleans_up(serve, tmp_path):
    chain = [FailingRenderer(Strategy.LIBREOFFICE), FailingRenderer(Strategy.BROWSER, "chromium crashed")]

    with serve(chain) as client:
        resp = client.post("/convert-docx-to-pdf", files={"file": ("letter.docx", b"PK..", DOCX)})

    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "chromium crashed"}
    assert _files(tmp_path, "uploads") == []
    assert _files(tmp_path, "output") == []


def test_convert_without_file(client):
    resp = client.post("/convert-docx-to-pdf")
    assert resp.status_code == 400
    assert resp.json()["error"] == "No file uploaded"


def test_unsupported_mime_is_rejected_before_pipeline(client, tmp_path, renderers):
    resp = client.post("/convert-docx-to-pdf", files={"file": ("run.exe", b"MZ", "application/x-msdownload")})

    assert resp.status_code == 415
    assert resp.json() == {"success": False, "error": "Unsupported file type"}
    assert _files(tmp_path, "uploads") == []
    assert all(r.calls == [] for r in renderers)


def test_oversize_upload_is_rejected(client, tmp_path, monkeypatch):
    monkeypatch.setattr(webapi, "MAX_UPLOAD_MB", 0)

    resp = client.post("/convert-docx-to-pdf", files={"file": ("a.txt", b"hello", "text/plain")})

    assert resp.status_code == 413
    assert resp.json()["success"] is False
    assert _files(tmp_path, "uploads") == []


def test_batch_reports_each_item(serve, tmp_path):
    class PickyRenderer(FakeRenderer):
        def render(self, input_path, output_path):
            if input_path.endswith("broken.txt"):
                raise RuntimeError("unreadable")
            super().render(input_path, output_path)

    files = [
        ("files", ("a.txt", b"a", "text/plain")),
        ("files", ("broken.txt", b"b", "text/plain")),
        ("files", ("c.html", b"<p>c</p>", "text/html")),
    ]

    with serve([PickyRenderer(Strategy.MINIMAL)]) as client:
        resp = client.post("/convert-batch", files=files)

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "Processed 3 files"
    assert [r["success"] for r in body["results"]] == [True, False, True]
    assert body["results"][1] == {"originalName": "broken.txt", "success": False, "error": "unreadable"}
    assert body["results"][2]["convertedName"].startswith("batch-")
    assert _files(tmp_path, "uploads") == []


def test_batch_discards_received_uploads_when_a_later_upload_breaks(client, tmp_path, monkeypatch):
    real_receive = webapi._receive
    seen = []

    async def receive(upload, *, output_prefix):
        if seen:
            raise OSError("client went away")
        job = await real_receive(upload, output_prefix=output_prefix)
        seen.append(job)
        return job

    monkeypatch.setattr(webapi, "_receive", receive)
    files = [("files", ("a.txt", b"a", "text/plain")), ("files", ("b.txt", b"b", "text/plain"))]

    resp = client.post("/convert-batch", files=files)

    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "client went away"}
    assert len(seen) == 1
    assert _files(tmp_path, "uploads") == []


def test_batch_limits(client, monkeypatch):
    assert client.post("/convert-batch").status_code == 400

    monkeypatch.setattr(webapi, "MAX_BATCH_FILES", 1)
    files = [("files", ("a.txt", b"a", "text/plain")), ("files", ("b.txt", b"b", "text/plain"))]
    assert client.post("/convert-batch", files=files).status_code == 400


def test_download_streams_and_schedules_purge(client, tmp_path):
    converted = client.post("/convert-docx-to-pdf", files={"file": ("a.txt", b"hi", "text/plain")}).json()
    webapi.SERVICE.lifecycle.schedule_removal = Mock()

    resp = client.get(converted["downloadUrl"])

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.content == b"%PDF-1.4 rendered by browser"
    expected = tmp_path.resolve() / "output" / converted["convertedName"]
    webapi.SERVICE.lifecycle.schedule_removal.assert_called_once_with(expected)


def test_download_missing_file(client):
    resp = client.get("/download/converted-nope.pdf")
    assert resp.status_code == 404
    assert resp.json() == {"error": "File not found"}


def test_download_of_file_deleted_after_lookup(client, tmp_path, monkeypatch):
    vanished = tmp_path / "output" / "converted-swept.pdf"
    monkeypatch.setattr(webapi.SERVICE, "resolve_download", lambda filename: vanished)

    resp = client.get("/download/converted-swept.pdf")

    assert resp.status_code == 404
    assert resp.json() == {"error": "File not found"}


def test_unknown_endpoint(client):
    resp = client.get("/nope")
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "error": "Endpoint not found"}


def test_unexpected_error_is_json(client, monkeypatch):
    async def explode(job):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(webapi.SERVICE, "run_job", explode)

    resp = client.post("/convert-docx-to-pdf", files={"file": ("a.txt", b"hi", "text/plain")})

    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "disk on fire"}
