"""HTTP tests for the flow builder routes."""

from flowcraft.core import config
from flowcraft.services import set_meta_flow_client

from tests.helpers import SCOPE_HEADERS, lead_flow_payload


def create_flow(client, **overrides):
    response = client.post("/api/flows/", json=lead_flow_payload(**overrides), headers=SCOPE_HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


class TestFlowRoutes:
    """Tests for /api/flows."""

    def test_healthz(self, client) -> None:
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json()["database_ok"] is True

    def test_create_and_get(self, client) -> None:
        created = create_flow(client)
        assert created["template_key"] == "lead_capture"
        assert created["tenant_id"] == "tenant_a"
        assert created["version"]["version_number"] == 1

        response = client.get(f"/api/flows/{created['external_id']}", headers=SCOPE_HEADERS)
        assert response.status_code == 200
        assert [s["screen_key"] for s in response.json()["version"]["screens"]] == ["details", "confirm"]

    def test_scope_headers_are_required(self, client, monkeypatch) -> None:
        monkeypatch.setattr(config, "BUSINESS_ACCOUNT_ID", "")
        monkeypatch.setattr(config, "APP_ID", None)
        response = client.get("/api/flows/", headers={"X-Tenant-Id": "tenant_a"})
        assert response.status_code == 400

    def test_payload_errors_are_422(self, client) -> None:
        payload = lead_flow_payload()
        payload["screens"][0]["components"][2]["options"] = []
        response = client.post("/api/flows/", json=payload, headers=SCOPE_HEADERS)
        assert response.status_code == 422

    def test_graph_errors_use_error_body(self, client) -> None:
        payload = lead_flow_payload()
        payload["screens"][0]["actions"][0]["target_screen_key"] = "nowhere"
        response = client.post("/api/flows/", json=payload, headers=SCOPE_HEADERS)

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "FLOW_VALIDATION_FAILED"
        assert "Action 'next' references missing target_screen_key 'nowhere'" in body["details"]

    def test_duplicate_is_409(self, client) -> None:
        create_flow(client)
        response = client.post("/api/flows/", json=lead_flow_payload(), headers=SCOPE_HEADERS)
        assert response.status_code == 409
        assert response.json()["code"] == "FLOW_CONFLICT"

    def test_unknown_flow_is_404(self, client) -> None:
        response = client.get("/api/flows/does-not-exist", headers=SCOPE_HEADERS)
        assert response.status_code == 404
        assert response.json()["code"] == "FLOW_NOT_FOUND"

    def test_list(self, client) -> None:
        create_flow(client)
        response = client.get("/api/flows/", params={"limit": 5}, headers=SCOPE_HEADERS)
        body = response.json()
        assert body["total"] == 1
        assert body["limit"] == 5
        assert body["flows"][0]["current_draft_version"] == 1

    def test_update_publish_clone_deprecate_delete(self, client) -> None:
        flow_id = create_flow(client)["external_id"]

        updated = client.put(
            f"/api/flows/{flow_id}", json=lead_flow_payload(description="v2"), headers=SCOPE_HEADERS
        )
        assert updated.status_code == 200
        assert updated.json()["current_draft_version"] == 2

        published = client.post(f"/api/flows/{flow_id}/publish", json={"notes": "ship it"}, headers=SCOPE_HEADERS)
        assert published.status_code == 200
        assert published.json()["current_published_version"] == 2
        assert published.json()["current_draft_version"] == 3
        assert published.json()["version"]["approved_by"] == "user_1"

        cloned = client.post(f"/api/flows/{flow_id}/clone", json={"name": "Copy"}, headers=SCOPE_HEADERS)
        assert cloned.status_code == 201
        assert cloned.json()["name"] == "Copy"

        deprecated = client.post(f"/api/flows/{flow_id}/deprecate", headers=SCOPE_HEADERS)
        assert deprecated.status_code == 200
        assert deprecated.json()["current_published_version"] is None

        deleted = client.delete(f"/api/flows/{flow_id}", headers=SCOPE_HEADERS)
        assert deleted.json() == {"flow_id": flow_id, "deleted": True}
        assert client.get(f"/api/flows/{flow_id}", headers=SCOPE_HEADERS).status_code == 404

    def test_publish_without_body(self, client) -> None:
        flow_id = create_flow(client)["external_id"]
        response = client.post(f"/api/flows/{flow_id}/publish", headers=SCOPE_HEADERS)
        assert response.status_code == 200
        assert response.json()["version"]["status"] == "PUBLISHED"

    def test_flow_json_preview(self, client) -> None:
        flow_id = create_flow(client)["external_id"]
        response = client.get(f"/api/flows/{flow_id}/flow-json", headers=SCOPE_HEADERS)
        assert response.status_code == 200
        assert response.json()["routing_model"] == {"DETAILS": ["CONFIRM"], "CONFIRM": []}

    def test_status_sync_requires_meta_client(self, client) -> None:
        flow_id = create_flow(client)["external_id"]
        response = client.post(f"/api/flows/{flow_id}/status/sync", headers=SCOPE_HEADERS)
        assert response.status_code == 503

    def test_status_sync(self, client, meta) -> None:
        set_meta_flow_client(meta)
        created = create_flow(client)
        meta.remote_status[created["meta_flow_id"]] = "PUBLISHED"

        response = client.post(f"/api/flows/{created['external_id']}/status/sync", headers=SCOPE_HEADERS)
        assert response.json() == {"checked": 1, "updated": 1, "unchanged": 0, "failed": 0}

        flow = client.get(f"/api/flows/{created['external_id']}", headers=SCOPE_HEADERS).json()
        assert flow["meta_status"] == "PUBLISHED"

        bulk = client.post("/api/flows/status/sync", headers=SCOPE_HEADERS)
        assert bulk.json() == {"checked": 1, "updated": 0, "unchanged": 1, "failed": 0}


class TestFlowWebhookRoutes:
    """Tests for /api/flow-webhooks."""

    def submission(self, flow_id, **overrides):
        body = {
            "flow_id": flow_id,
            "tenant_id": SCOPE_HEADERS["X-Tenant-Id"],
            "business_account_id": SCOPE_HEADERS["X-Business-Account-Id"],
            "app_id": SCOPE_HEADERS["X-App-Id"],
            "user_phone": "+919876543210",
            "answers": {"full_name": "Ada", "interest": "Sales"},
        }
        body.update(overrides)
        return body

    def test_submission_round_trip(self, client) -> None:
        flow_id = create_flow(client)["external_id"]

        response = client.post("/api/flow-webhooks/submissions", json=self.submission(flow_id))
        assert response.status_code == 201
        assert response.json()["mapped_response"]["lead"]["interest"] == "Sales"

        listed = client.get(f"/api/flows/{flow_id}/submissions", headers=SCOPE_HEADERS)
        assert [item["external_id"] for item in listed.json()] == [response.json()["external_id"]]

    def test_submission_missing_answers(self, client) -> None:
        flow_id = create_flow(client)["external_id"]
        response = client.post("/api/flow-webhooks/submissions", json=self.submission(flow_id, answers={}))
        assert response.status_code == 422
        assert response.json()["code"] == "FLOW_SUBMISSION_VALIDATION_FAILED"

    def test_webhook_secret(self, client, monkeypatch) -> None:
        monkeypatch.setattr(config, "FLOW_WEBHOOK_SECRET", "s3cret")
        flow_id = create_flow(client)["external_id"]

        denied = client.post("/api/flow-webhooks/submissions", json=self.submission(flow_id))
        assert denied.status_code == 401

        allowed = client.post(
            "/api/flow-webhooks/submissions",
            json=self.submission(flow_id),
            headers={"X-Flow-Webhook-Secret": "s3cret"},
        )
        assert allowed.status_code == 201

    def test_status_event(self, client, meta) -> None:
        set_meta_flow_client(meta)
        created = create_flow(client)

        response = client.post(
            "/api/flow-webhooks/status",
            json={"flow_id": created["meta_flow_id"], "flow_status": "blocked"},
        )
        assert response.status_code == 200
        assert response.json() == {
            "matched": True,
            "updated": True,
            "meta_flow_id": created["meta_flow_id"],
            "status": "BLOCKED",
        }

    def test_status_events_are_ordered_by_event_time(self, client, meta) -> None:
        set_meta_flow_client(meta)
        created = create_flow(client)
        meta_flow_id = created["meta_flow_id"]

        client.post(
            "/api/flow-webhooks/status",
            json={"flow_id": meta_flow_id, "status": "BLOCKED", "timestamp": 1700000200},
        )
        late = client.post(
            "/api/flow-webhooks/status",
            json={"flow_id": meta_flow_id, "status": "PUBLISHED", "timestamp": 1700000100},
        )
        assert late.json()["updated"] is False

        flow = client.get(f"/api/flows/{created['external_id']}", headers=SCOPE_HEADERS).json()
        assert flow["meta_status"] == "BLOCKED"
