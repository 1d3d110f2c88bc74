"""
Integration tests for API endpoints (api/main.py)
"""
import pytest
import io
import zipfile
from pathlib import Path

from starlette.websockets import WebSocketDisconnect

from api import main as api_main
from migrator.batch import BatchResult, JobRegistry


ORACLE_BUNDLE = {
    "file1.sql": "select 1 from dual;",
    "file2.sql": "select 2 from dual;",
    "bad.sql": "select broken",
    "notes.txt": "ignored",
}


class TestAPIBasics:
    """Test basic API functionality."""

    def test_health_check(self, client):
        """Health reports version and job count."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["jobs"] == 0
        assert "version" in data

    def test_list_kinds(self, client):
        response = client.get("/api/kinds")
        assert response.status_code == 200
        names = [k["name"] for k in response.json()]
        assert names == ["oracle-to-snowflake", "batch-to-idmc", "batch-to-summary", "summary-to-json"]


class TestConversionEndpoint:
    """Test POST /api/conversions."""

    def test_conversion_runs_to_completion(self, client, make_bundle, converter):
        """Background job converts the bundle; snapshot shows the result."""
        bundle = make_bundle(ORACLE_BUNDLE)

        response = client.post(
            "/api/conversions",
            json={"bundle_path": str(bundle), "kind": "oracle-to-snowflake"},
        )
        assert response.status_code == 202
        accepted = response.json()
        assert accepted["kind"] == "oracle-to-snowflake"
        assert accepted["status"] == "pending"

        # TestClient finishes background tasks before returning
        job = client.get(f"/api/jobs/{accepted['job_id']}").json()
        assert job["status"] == "completed"
        assert job["overall_progress"] == 100
        result = job["result"]
        assert result["total_files"] == 3
        assert result["processed_files"] == 2
        assert result["failed_files"] == 1
        assert result["success_rate"] == 67
        assert [r["original"] for r in result["results"]] == ["bad.sql", "file1.sql", "file2.sql"]
        assert "content" not in result["results"][0]
        assert sorted(name for name, _ in converter.calls) == ["bad.sql", "file1.sql", "file2.sql"]

    def test_include_content(self, client, make_bundle):
        bundle = make_bundle({"file1.sql": "select 1;"})
        job_id = client.post(
            "/api/conversions",
            json={"bundle_path": str(bundle), "kind": "oracle-to-snowflake"},
        ).json()["job_id"]

        job = client.get(f"/api/jobs/{job_id}", params={"include_content": True}).json()

        assert job["result"]["results"][0]["content"] == "SELECT 1;"

    def test_download_bundle(self, client, make_bundle):
        bundle = make_bundle({"file1.sql": "select 1;", "pkg/file2.sql": "select 2;"})
        job_id = client.post(
            "/api/conversions",
            json={"bundle_path": str(bundle), "kind": "oracle-to-snowflake"},
        ).json()["job_id"]

        response = client.get(f"/api/jobs/{job_id}/download")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        with zipfile.ZipFile(io.BytesIO(response.content)) as zf:
            assert sorted(zf.namelist()) == ["file1__sf.sql", "pkg/file2__sf.sql"]
            assert zf.read("file1__sf.sql").decode() == "SELECT 1;"

    def test_corrupt_bundle_fails_job(self, client, temp_dir):
        bundle = temp_dir / "broken.zip"
        bundle.write_bytes(b"not a zip")

        job_id = client.post(
            "/api/conversions",
            json={"bundle_path": str(bundle), "kind": "oracle-to-snowflake"},
        ).json()["job_id"]

        job = client.get(f"/api/jobs/{job_id}").json()
        assert job["status"] == "failed"
        assert "Invalid zip file" in job["error"]
        assert job["result"] is None

    def test_unknown_kind(self, client, make_bundle):
        bundle = make_bundle({"a.sql": "x"})
        response = client.post(
            "/api/conversions",
            json={"bundle_path": str(bundle), "kind": "cobol-to-rust"},
        )
        assert response.status_code == 400
        assert "Unknown conversion kind" in response.json()["detail"]

    def test_path_outside_allowed_roots(self, client):
        response = client.post(
            "/api/conversions",
            json={"bundle_path": "/etc/passwd", "kind": "oracle-to-snowflake"},
        )
        assert response.status_code == 400

    def test_missing_bundle(self, client, temp_dir):
        response = client.post(
            "/api/conversions",
            json={"bundle_path": str(temp_dir / "missing.zip"), "kind": "oracle-to-snowflake"},
        )
        assert response.status_code == 404

    def test_converter_unavailable(self, client, make_bundle):
        def no_key(profile):
            raise ValueError("OPENAI_API_KEY is not set")

        api_main.app.dependency_overrides[api_main.get_converter_factory] = lambda: no_key
        bundle = make_bundle({"a.sql": "x"})

        response = client.post(
            "/api/conversions",
            json={"bundle_path": str(bundle), "kind": "oracle-to-snowflake"},
        )

        assert response.status_code == 503

    @pytest.mark.parametrize("field,value", [
        ("max_concurrency", 0),
        ("item_timeout", -1),
        ("deadline", 0),
    ])
    def test_invalid_overrides(self, client, make_bundle, field, value):
        bundle = make_bundle({"a.sql": "x"})
        response = client.post(
            "/api/conversions",
            json={"bundle_path": str(bundle), "kind": "oracle-to-snowflake", field: value},
        )
        assert response.status_code == 422


def zip_bytes(files):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for member, content in files.items():
            zf.writestr(member, content)
    return buffer.getvalue()


class TestUploadEndpoint:
    """Test POST /api/uploads."""

    def test_upload_then_convert(self, client, temp_dir):
        data = zip_bytes({"load_IDMC_Summary.md": "## IDMC Mapping Summary", "run.sh": "echo"})

        response = client.post(
            "/api/uploads",
            files={"file": ("summaries.zip", data, "application/zip")},
        )
        assert response.status_code == 201
        uploaded = response.json()
        assert uploaded["filename"] == "summaries.zip"
        assert uploaded["size"] == len(data)
        saved = Path(uploaded["bundle_path"])
        assert saved.parent == temp_dir / "uploads"
        assert saved.read_bytes() == data

        job_id = client.post(
            "/api/conversions",
            json={"bundle_path": uploaded["bundle_path"], "kind": "summary-to-json"},
        ).json()["job_id"]

        job = client.get(f"/api/jobs/{job_id}").json()
        assert job["status"] == "completed"
        assert [r["converted"] for r in job["result"]["results"]] == [
            "load_IDMC_Summary_IDMC_Mapping.bin",
        ]
        download = client.get(f"/api/jobs/{job_id}/download")
        with zipfile.ZipFile(io.BytesIO(download.content)) as zf:
            assert zf.namelist() == ["load_IDMC_Summary_IDMC_Mapping.bin"]

    def test_repeated_uploads_do_not_overwrite(self, client):
        first = client.post("/api/uploads", files={"file": ("a.zip", zip_bytes({"a.sql": "1"}))}).json()
        second = client.post("/api/uploads", files={"file": ("a.zip", zip_bytes({"a.sql": "2"}))}).json()

        assert first["bundle_path"] != second["bundle_path"]

    def test_client_directories_are_dropped(self, client, temp_dir):
        response = client.post(
            "/api/uploads",
            files={"file": ("../../escape.zip", zip_bytes({"a.sql": "x"}))},
        )

        assert response.status_code == 201
        saved = response.json()["bundle_path"]
        assert saved.startswith(str(temp_dir / "uploads"))
        assert saved.endswith("_escape.zip")

    def test_non_zip_rejected(self, client, temp_dir):
        response = client.post("/api/uploads", files={"file": ("query.sql", b"select 1;")})

        assert response.status_code == 400
        assert "Invalid file type" in response.json()["detail"]
        assert not (temp_dir / "uploads").exists() or list((temp_dir / "uploads").iterdir()) == []

    def test_too_large(self, client):
        api_main.app.dependency_overrides[api_main.get_max_upload_bytes] = lambda: 10

        response = client.post("/api/uploads", files={"file": ("big.zip", zip_bytes({"a.sql": "x" * 100}))})

        assert response.status_code == 413


class TestJobsEndpoints:
    """Test /api/jobs endpoints."""

    def test_get_unknown_job(self, client):
        response = client.get("/api/jobs/nope")
        assert response.status_code == 404

    def test_list_jobs_filters_by_status(self, client, api_registry):
        api_registry.create("pending-job")
        api_registry.create("failed-job")
        api_registry.fail("failed-job", "boom")

        all_jobs = client.get("/api/jobs").json()
        failed = client.get("/api/jobs", params={"status": "failed"}).json()

        assert {j["id"] for j in all_jobs} == {"pending-job", "failed-job"}
        assert [j["id"] for j in failed] == ["failed-job"]
        assert failed[0]["error"] == "boom"

    def test_delete_job(self, client, api_registry):
        api_registry.create("job-1")

        assert client.delete("/api/jobs/job-1").status_code == 200
        assert client.get("/api/jobs/job-1").status_code == 404
        assert client.delete("/api/jobs/job-1").status_code == 404

    def test_download_without_bundle(self, client, api_registry):
        api_registry.create("job-1")
        response = client.get("/api/jobs/job-1/download")
        assert response.status_code == 409


class TestWebSockets:
    """Test WebSocket endpoints."""

    def test_global_channel_greets(self, client):
        with client.websocket_connect("/ws") as websocket:
            message = websocket.receive_json()
            assert message["event"] == "connected"

    def test_job_channel_sends_snapshot_of_finished_job(self, client, api_registry):
        api_registry.create("job-1")
        api_registry.fail("job-1", "Batch timed out")

        with client.websocket_connect("/ws/jobs/job-1") as websocket:
            message = websocket.receive_json()

        assert message["event"] == "snapshot"
        assert message["job_id"] == "job-1"
        assert message["status"] == "failed"
        assert message["error"] == "Batch timed out"

    def test_job_channel_closes_after_terminal_snapshot(self, client, api_registry, api_broadcaster):
        api_registry.create("job-1")
        api_registry.complete("job-1", BatchResult(total_files=0, processed_files=0, failed_files=0, success_rate=0))

        with client.websocket_connect("/ws/jobs/job-1") as websocket:
            assert websocket.receive_json()["status"] == "completed"
            with pytest.raises(WebSocketDisconnect):
                websocket.receive_json()

        assert api_broadcaster.subscriber_count("job-1") == 0

    def test_job_finishing_while_snapshot_is_taken(self, client, api_broadcaster):
        """The terminal event of a job that ends right after the snapshot still arrives."""
        class FinishingRegistry(JobRegistry):
            def get(self, job_id):
                snapshot = super().get(job_id)
                if snapshot is not None and not snapshot.is_terminal:
                    self.fail(job_id, "Batch timed out")
                return snapshot

        registry = FinishingRegistry(broadcaster=api_broadcaster)
        registry.create("job-1")
        api_main.app.dependency_overrides[api_main.get_registry] = lambda: registry

        with client.websocket_connect("/ws/jobs/job-1") as websocket:
            snapshot = websocket.receive_json()
            update = websocket.receive_json()
            with pytest.raises(WebSocketDisconnect):
                websocket.receive_json()

        assert snapshot["event"] == "snapshot"
        assert snapshot["status"] == "pending"
        assert update["event"] == "progress"
        assert update["status"] == "failed"
        assert update["error"] == "Batch timed out"
        assert api_broadcaster.subscriber_count("job-1") == 0

    def test_job_channel_unknown_job(self, client):
        with client.websocket_connect("/ws/jobs/missing") as websocket:
            message = websocket.receive_json()
            assert message["event"] == "error"
            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_json()

        assert exc_info.value.code == 4404
