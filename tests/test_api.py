"""
API endpoint tests.
"""
from unittest.mock import AsyncMock, patch

from ciserver.core.result import BuildResult


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    def test_health_returns_ok(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_root_links_to_builds(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "/builds" in response.text

    def test_request_id_header(self, client):
        response = client.get("/health")
        assert response.headers.get("X-Request-Id")


class TestWebhook:
    """Tests for POST /webhook."""

    def test_ping_acknowledged_without_build(self, client):
        with patch("ciserver.api.webhook.run_ci_job", new_callable=AsyncMock) as mock_job:
            response = client.post(
                "/webhook",
                content=b"{}",
                headers={"X-GitHub-Event": "ping"},
            )

        assert response.status_code == 200
        mock_job.assert_not_called()

    def test_ping_with_garbage_body_still_succeeds(self, client):
        with patch("ciserver.api.webhook.run_ci_job", new_callable=AsyncMock) as mock_job:
            response = client.post(
                "/webhook",
                content=b"not json at all",
                headers={"X-GitHub-Event": "ping"},
            )

        assert response.status_code == 200
        mock_job.assert_not_called()

    def test_event_header_matched_case_insensitively(self, client):
        with patch("ciserver.api.webhook.run_ci_job", new_callable=AsyncMock) as mock_job:
            response = client.post(
                "/webhook",
                content=b"{}",
                headers={"x-github-event": "Ping"},
            )

        assert response.status_code == 200
        assert response.text == "Ping received"
        mock_job.assert_not_called()

    def test_push_starts_build(self, client, push_payload):
        with patch("ciserver.api.webhook.run_ci_job", new_callable=AsyncMock) as mock_job:
            response = client.post(
                "/webhook",
                json=push_payload,
                headers={"X-GitHub-Event": "push"},
            )

        assert response.status_code == 200
        assert response.text == "Build started for main @ heylol123"
        mock_job.assert_called_once()
        event = mock_job.call_args.args[0]
        assert event.branch == "main"
        assert event.commit_sha == "heylol123"
        assert event.repo_full_name == "owner/repo"
        assert event.clone_url == "https://github.com/owner/repo.git"

    def test_push_without_event_header_is_parsed(self, client, push_payload):
        with patch("ciserver.api.webhook.run_ci_job", new_callable=AsyncMock) as mock_job:
            response = client.post("/webhook", json=push_payload)

        assert response.status_code == 200
        mock_job.assert_called_once()

    def test_malformed_json_returns_400(self, client):
        with patch("ciserver.api.webhook.run_ci_job", new_callable=AsyncMock) as mock_job:
            response = client.post(
                "/webhook",
                content=b"{broken",
                headers={"X-GitHub-Event": "push", "Content-Type": "application/json"},
            )

        assert response.status_code == 400
        assert response.text.startswith("Invalid payload:")
        mock_job.assert_not_called()

    def test_missing_fields_return_400(self, client, push_payload):
        del push_payload["after"]
        with patch("ciserver.api.webhook.run_ci_job", new_callable=AsyncMock) as mock_job:
            response = client.post("/webhook", json=push_payload, headers={"X-GitHub-Event": "push"})

        assert response.status_code == 400
        assert "after" in response.text
        mock_job.assert_not_called()

    def test_response_does_not_wait_for_build_outcome(self, client, push_payload):
        """A failing build still gets a 200 acknowledgement."""
        failed = BuildResult("heylol123", "main", error_message="Git clone failed with exit code: 128")
        with patch("ciserver.api.webhook.run_ci_job", new_callable=AsyncMock, return_value=failed):
            response = client.post("/webhook", json=push_payload, headers={"X-GitHub-Event": "push"})

        assert response.status_code == 200

    def test_get_not_allowed(self, client):
        response = client.get("/webhook")
        assert response.status_code == 405


class TestBuildsPage:
    """Tests for GET /builds."""

    def test_empty_listing(self, client, shared_store):
        response = client.get("/builds")
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "No builds yet" in response.text

    def test_listing_shows_builds(self, client, shared_store):
        path = shared_store.persist(BuildResult("listed-sha", "main"))

        response = client.get("/builds")

        assert response.status_code == 200
        assert path.name in response.text
        assert f"/builds?file={path.name}" in response.text

    def test_detail_shows_content(self, client, shared_store):
        result = BuildResult("detail-sha", "feature/x", build_successful=True, tests_successful=True)
        result.append_build_log("<b>escaped</b>")
        path = shared_store.persist(result)

        response = client.get("/builds", params={"file": path.name})

        assert response.status_code == 200
        assert "detail-sha" in response.text
        assert "feature/x" in response.text
        assert "&lt;b&gt;escaped&lt;/b&gt;" in response.text
        assert "<b>escaped</b>" not in response.text

    def test_unknown_file_shows_error(self, client, shared_store):
        response = client.get("/builds", params={"file": "build_missing_1.json"})
        assert response.status_code == 404
        assert "Could not read build file" in response.text

    def test_traversal_rejected(self, client, shared_store):
        response = client.get("/builds", params={"file": "../main.py"})
        assert response.status_code == 404

    def test_nul_byte_in_name_shows_error(self, client, shared_store):
        response = client.get("/builds", params={"file": "a\x00b.json"})
        assert response.status_code == 404
        assert "Could not read build file" in response.text


class TestMetricsEndpoint:
    """Tests for metrics endpoint."""

    def test_metrics_returns_prometheus_format(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        assert "ci_webhooks_received_total" in response.text
        assert "ci_builds_started_total" in response.text

    def test_rejected_webhook_counted(self, client):
        before = client.get("/metrics").text
        client.post("/webhook", content=b"nope")
        after = client.get("/metrics").text

        def value(text):
            for line in text.splitlines():
                if line.startswith("ci_webhooks_rejected_total "):
                    return int(line.split()[1])
            return None

        assert value(after) == value(before) + 1
