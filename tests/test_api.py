"""API tests using the FastAPI TestClient with a fake Engine."""

from __future__ import annotations

import json
from collections.abc import Iterator
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from api.config import get_settings
from api.main import app
from api.middleware import limiter
from api.shared import get_engine, get_tracker
from core.exceptions import EngineError, ImageConflictError, ImageNotFoundError
from core.tracker import PullTracker
from tests.conftest import EXPIRY_SECONDS, FakeEngine, ManualScheduler, json_line


@pytest.fixture
def docker_engine() -> MagicMock:
    """Provide a mocked DockerEngine for the image endpoints."""
    return MagicMock()


@pytest.fixture
def client(tracker: PullTracker, docker_engine: MagicMock) -> Iterator[TestClient]:
    """TestClient wired to the test tracker and mocked engine."""
    app.dependency_overrides[get_tracker] = lambda: tracker
    app.dependency_overrides[get_engine] = lambda: docker_engine
    limiter.reset()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


class TestMeta:
    """Tests for the root and health endpoints."""

    def test_root(self, client: TestClient) -> None:
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["apiEndpoint"] == "/api"

    def test_health(self, client: TestClient, docker_engine: MagicMock) -> None:
        docker_engine.ping.return_value = True

        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["engine"] == "reachable"
        assert "timestamp" in data

    def test_health_engine_down(self, client: TestClient, docker_engine: MagicMock) -> None:
        """The API reports itself up while the Engine is unreachable."""
        docker_engine.ping.return_value = False

        data = client.get("/health").json()

        assert data["status"] == "ok"
        assert data["engine"] == "unreachable"

    def test_security_headers(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"


class TestPullEndpoints:
    """Tests for starting, polling and cancelling pulls over HTTP."""

    def test_start_and_poll(self, client: TestClient, engine: FakeEngine) -> None:
        """A started pull can be polled to completion."""
        engine.script(
            "nginx:latest",
            [
                json_line(status="Pulling from library/nginx", id="latest"),
                json_line(status="Downloading", progressDetail={"current": 50, "total": 100}, id="a1"),
            ],
        )

        response = client.post("/api/images/pull", json={"imageReference": "nginx:latest"})
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["id"] == data["progressId"] == "pull-1"

        progress = client.get("/api/images/pull/progress/pull-1").json()
        assert progress["status"] == "completed"
        assert progress["progress"] == 100
        assert progress["terminal"] is True
        assert progress["id"] == "a1"
        assert progress["imageReference"] == "nginx:latest"
        assert progress["progressDetail"] == {"current": 50, "total": 100}
        assert [entry["status"] for entry in progress["logs"]] == ["Pulling from library/nginx", "Downloading"]
        assert progress["logCount"] == 2
        assert "error" not in progress

    def test_progress_log_is_capped(
        self,
        client: TestClient,
        engine: FakeEngine,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Reads return the most recent log entries and the total count."""
        monkeypatch.setattr(get_settings(), "progress_log_limit", 2)
        engine.script("nginx:latest", [json_line(status=f"Layer {n}: Pull complete") for n in range(5)])

        client.post("/api/images/pull", json={"imageReference": "nginx:latest"})
        progress = client.get("/api/images/pull/progress/pull-1").json()

        assert progress["logCount"] == 5
        assert [entry["status"] for entry in progress["logs"]] == ["Layer 3: Pull complete", "Layer 4: Pull complete"]

    def test_image_name_alias(self, client: TestClient, engine: FakeEngine) -> None:
        """The dashboard's ``imageName`` field is accepted."""
        response = client.post("/api/images/pull", json={"imageName": "  redis:7  "})
        assert response.status_code == 200
        assert engine.pulled == ["redis:7"]

    @pytest.mark.parametrize("body", [{"imageReference": ""}, {"imageReference": "   "}, {}])
    def test_missing_image_reference(self, client: TestClient, body: dict) -> None:
        """An empty or missing reference is a 400."""
        response = client.post("/api/images/pull", json=body)
        assert response.status_code == 400
        assert "error" in response.json()

    def test_empty_reference_message(self, client: TestClient) -> None:
        response = client.post("/api/images/pull", json={"imageReference": ""})
        assert response.json() == {"error": "Image name is required"}

    def test_setup_failure_reported_on_record(self, client: TestClient, engine: FakeEngine) -> None:
        """The start call succeeds; the failure shows up when polling."""
        engine.script("private/app:1", EngineError("pull access denied"))

        response = client.post("/api/images/pull", json={"imageReference": "private/app:1"})
        assert response.status_code == 200

        progress = client.get(f"/api/images/pull/progress/{response.json()['id']}").json()
        assert progress["status"] == "error"
        assert progress["error"] == "pull access denied"

    def test_progress_unknown(self, client: TestClient) -> None:
        response = client.get("/api/images/pull/progress/never-created")
        assert response.status_code == 404
        assert response.json() == {"error": "Progress not found"}

    def test_progress_after_expiry(self, client: TestClient, scheduler: ManualScheduler) -> None:
        """Finished pulls are 404 once the grace window has passed."""
        pull_id = client.post("/api/images/pull", json={"imageReference": "nginx:latest"}).json()["id"]
        assert client.get(f"/api/images/pull/progress/{pull_id}").status_code == 200

        scheduler.advance(EXPIRY_SECONDS)
        assert client.get(f"/api/images/pull/progress/{pull_id}").status_code == 404

    def test_cancel_running_pull(self, client: TestClient, engine: FakeEngine, scheduler: ManualScheduler) -> None:
        """Cancelling before the stream delivers data leaves the record cancelled."""
        workers: list = []
        held = PullTracker(
            engine,
            scheduler=scheduler,
            runner=lambda target, name: workers.append(target),  # noqa: ARG005
            id_factory=lambda: "pull-9",
        )
        app.dependency_overrides[get_tracker] = lambda: held
        engine.script("myapp:dev", [json_line(status="Downloading")])

        client.post("/api/images/pull", json={"imageReference": "myapp:dev"})
        assert client.get("/api/images/pull/progress/pull-9").json()["status"] == "starting"

        response = client.post("/api/images/pull/cancel/pull-9")
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Pull cancelled successfully"}

        workers[0]()

        progress = client.get("/api/images/pull/progress/pull-9").json()
        assert progress["status"] == "cancelled"
        assert progress["error"] == "cancelled by request"
        assert progress["progress"] == 0
        assert progress["logs"] == []

    def test_cancel_finished_pull(self, client: TestClient) -> None:
        """Cancelling a finished pull is an idempotent success."""
        client.post("/api/images/pull", json={"imageReference": "nginx:latest"})

        response = client.post("/api/images/pull/cancel/pull-1")
        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_cancel_unknown(self, client: TestClient) -> None:
        response = client.post("/api/images/pull/cancel/never-created")
        assert response.status_code == 404

    def test_list_pulls(self, client: TestClient) -> None:
        client.post("/api/images/pull", json={"imageReference": "a:1"})
        client.post("/api/images/pull", json={"imageReference": "b:1"})

        data = client.get("/api/images/pull").json()
        assert data["count"] == 2
        assert [p["imageReference"] for p in data["pulls"]] == ["a:1", "b:1"]

    def test_progress_stream(self, client: TestClient) -> None:
        """The SSE endpoint emits the terminal snapshot and closes."""
        client.post("/api/images/pull", json={"imageReference": "nginx:latest"})

        response = client.get("/api/images/pull/progress/pull-1/stream")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")

        events = [json.loads(line.removeprefix("data: ")) for line in response.text.splitlines() if line]
        assert events[-1]["status"] == "completed"

    def test_progress_stream_unknown(self, client: TestClient) -> None:
        assert client.get("/api/images/pull/progress/never-created/stream").status_code == 404


class TestImageEndpoints:
    """Tests for listing and removing images."""

    def test_list_images(self, client: TestClient, docker_engine: MagicMock) -> None:
        docker_engine.list_images.return_value = [
            {
                "id": "sha256:abc",
                "tags": ["nginx:latest"],
                "size": 1024,
                "created": 1700000000,
                "parent_id": None,
                "repo_digests": ["nginx@sha256:def"],
            },
        ]

        data = client.get("/api/images").json()

        assert data["count"] == 1
        assert data["images"][0]["tags"] == ["nginx:latest"]
        assert data["images"][0]["repoDigests"] == ["nginx@sha256:def"]

    def test_list_images_engine_down(self, client: TestClient, docker_engine: MagicMock) -> None:
        docker_engine.list_images.side_effect = EngineError("Cannot connect to the Docker daemon")

        response = client.get("/api/images")

        assert response.status_code == 502
        assert "Docker daemon" in response.json()["error"]

    def test_delete_image(self, client: TestClient, docker_engine: MagicMock) -> None:
        response = client.delete("/api/images/sha256:abc")
        assert response.status_code == 200
        assert response.json()["success"] is True
        docker_engine.remove_image.assert_called_once_with("sha256:abc")

    def test_delete_image_with_repository_path(self, client: TestClient, docker_engine: MagicMock) -> None:
        client.delete("/api/images/library/nginx:latest")
        docker_engine.remove_image.assert_called_once_with("library/nginx:latest")

    def test_delete_missing_image(self, client: TestClient, docker_engine: MagicMock) -> None:
        docker_engine.remove_image.side_effect = ImageNotFoundError("No such image: nope")
        assert client.delete("/api/images/nope").status_code == 404

    def test_delete_image_in_use(self, client: TestClient, docker_engine: MagicMock) -> None:
        docker_engine.remove_image.side_effect = ImageConflictError("image is being used by running container")
        assert client.delete("/api/images/sha256:abc").status_code == 409
