import time
from pathlib import Path

from fastapi.testclient import TestClient

API_KEY = "test-api-key-123"
HEADERS = {"X-API-Key": API_KEY}


def _write_config(tmp_path: Path, *, auto_start: bool = False, interval_seconds: int = 999) -> Path:
    config_dir = tmp_path / "config"
    config_dir.mkdir(parents=True, exist_ok=True)

    (config_dir / "thresholds.yaml").write_text(
        """
overfill_level: 90
overfill_recency_minutes: 60
offline_after_hours: 2
low_confidence: 60
classification_window_hours: 24
dashboard_full_level: 80
""".strip()
        + "\n",
        encoding="utf-8",
    )

    (config_dir / "server.yaml").write_text(
        f"""
database:
  path: {str((tmp_path / "test.db").resolve())}
commands:
  max_retries: 3
  pending_batch_size: 10
iot:
  api_key: {API_KEY}
sweep:
  interval_seconds: {interval_seconds}
  auto_start: {str(auto_start).lower()}
""".strip()
        + "\n",
        encoding="utf-8",
    )

    return config_dir


def _client(monkeypatch, tmp_path: Path, **sweep) -> TestClient:
    config_dir = _write_config(tmp_path, **sweep)
    monkeypatch.setenv("BINWATCH_CONFIG_DIR", str(config_dir))
    monkeypatch.delenv("BINWATCH_IOT_API_KEY", raising=False)

    from binwatch.main import app

    return TestClient(app)


def _create_bin(client: TestClient, bin_id: str = "BIN-001") -> dict:
    response = client.post(
        "/api/bins",
        json={
            "bin_id": bin_id,
            "category": "metal",
            "location": {"latitude": 40.44, "longitude": -79.94, "address": "Zone A"},
        },
    )
    assert response.status_code == 201
    return response.json()


def test_health_endpoint(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


def test_device_update_requires_api_key(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        created = _create_bin(client)
        body = {"bin_id": "BIN-001", "fill_level": 40, "sensor_status": "OK"}

        assert client.post("/api/iot/update", json=body).status_code == 401
        assert (
            client.post("/api/iot/update", json=body, headers={"X-API-Key": "wrong"}).status_code
            == 401
        )

        response = client.post("/api/iot/update", json=body, headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["fill_level"] == 40

        per_bin = client.post(
            "/api/iot/update", json=body, headers={"X-API-Key": created["api_key"]}
        )
        assert per_bin.status_code == 200


def test_device_update_validation(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        _create_bin(client)

        too_full = client.post(
            "/api/iot/update",
            json={"bin_id": "BIN-001", "fill_level": 150, "sensor_status": "OK"},
            headers=HEADERS,
        )
        assert too_full.status_code == 400

        unknown = client.post(
            "/api/iot/update",
            json={"bin_id": "BIN-404", "fill_level": 10, "sensor_status": "OK"},
            headers=HEADERS,
        )
        assert unknown.status_code == 404

        assert client.get("/api/bins/BIN-001").json()["fill_level"] == 0


def test_repeated_overfill_reports_raise_one_alert(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        _create_bin(client)
        for level in (95, 98):
            response = client.post(
                "/api/iot/update",
                json={"bin_id": "BIN-001", "fill_level": level, "sensor_status": "OK"},
                headers=HEADERS,
            )
            assert response.status_code == 200

        alerts = client.get(
            "/api/alerts", params={"alert_type": "overfilled", "is_resolved": "false"}
        ).json()
        assert alerts["pagination"]["total"] == 1

        alert_id = alerts["items"][0]["id"]
        resolved = client.patch(
            f"/api/alerts/{alert_id}/resolve", json={"resolved_by": "admin-1"}
        )
        assert resolved.status_code == 200
        assert resolved.json()["is_resolved"] is True

        again = client.patch(f"/api/alerts/{alert_id}/resolve", json={"resolved_by": "admin-1"})
        assert again.status_code == 400


def test_command_round_trip_with_retries(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        _create_bin(client)
        created = client.post(
            "/api/commands",
            json={"bin_id": "BIN-001", "command_type": "calibrate", "issued_by": "admin-1"},
        )
        assert created.status_code == 201
        command_id = created.json()["id"]

        polled = client.get("/api/iot/commands/BIN-001", headers=HEADERS).json()
        assert [item["id"] for item in polled["commands"]] == [command_id]

        statuses = []
        for _ in range(3):
            ack = client.patch(
                f"/api/iot/commands/{command_id}/ack",
                json={"status": "failed", "failure_reason": "motor jammed"},
                headers=HEADERS,
            )
            assert ack.status_code == 200
            statuses.append((ack.json()["status"], ack.json()["retry_count"]))

        assert statuses == [("pending", 1), ("pending", 2), ("failed", 3)]
        assert client.get("/api/iot/commands/BIN-001", headers=HEADERS).json()["commands"] == []

        stored = client.get(f"/api/commands/{command_id}").json()
        assert stored["failure_reason"] == "motor jammed"


def test_command_ack_success(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        _create_bin(client)
        command_id = client.post(
            "/api/commands",
            json={"bin_id": "BIN-001", "command_type": "empty", "issued_by": "admin-1"},
        ).json()["id"]

        ack = client.patch(
            f"/api/iot/commands/{command_id}/ack",
            json={"status": "executed"},
            headers=HEADERS,
        )
        assert ack.status_code == 200
        assert ack.json()["status"] == "executed"
        assert ack.json()["executed_at"] is not None


def test_command_errors(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        unknown_ack = client.patch(
            "/api/iot/commands/missing/ack", json={"status": "executed"}, headers=HEADERS
        )
        assert unknown_ack.status_code == 404

        assert client.get("/api/iot/commands/BIN-404", headers=HEADERS).status_code == 404

        unknown_bin = client.post(
            "/api/commands",
            json={"bin_id": "BIN-404", "command_type": "empty", "issued_by": "admin-1"},
        )
        assert unknown_bin.status_code == 404


def test_sweep_endpoint(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        _create_bin(client)
        client.patch("/api/bins/BIN-001", json={"fill_level": 97})

        response = client.post("/api/anomalies/sweep")
        assert response.status_code == 200
        payload = response.json()
        assert payload["raised"]["overfilled"] == 1
        assert payload["failed_checks"] == []
        assert payload["total_raised"] == 1

        assert client.post("/api/anomalies/sweep").json()["total_raised"] == 0


def test_worker_maintenance_flow(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        _create_bin(client)
        worker = client.post(
            "/api/workers",
            json={
                "name": "Jo Rivera",
                "email": "jo@example.com",
                "phone": "4125550100",
                "role": "maintenance",
            },
        )
        assert worker.status_code == 201
        worker_id = worker.json()["id"]

        assigned = client.patch(
            f"/api/workers/{worker_id}/assign-bins", json={"bin_ids": ["BIN-001"]}
        )
        assert assigned.json()["assigned_bins"] == ["BIN-001"]
        missing = client.patch(
            f"/api/workers/{worker_id}/assign-bins", json={"bin_ids": ["BIN-404"]}
        )
        assert missing.status_code == 404

        log = client.post(
            "/api/maintenance",
            json={
                "bin_id": "BIN-001",
                "maintenance_type": "cleaning",
                "description": "Wash interior",
                "worker_id": worker_id,
                "cost": 25,
            },
        )
        assert log.status_code == 201
        completed = client.patch(
            f"/api/maintenance/{log.json()['id']}", json={"status": "completed"}
        )
        assert completed.json()["completion_date"] is not None

        stats = client.get(f"/api/workers/{worker_id}/stats").json()
        assert stats["maintenance"]["completed"] == 1
        assert stats["costs"]["total_cost"] == 25.0

        schedule = client.get("/api/bins/BIN-001").json()["maintenance_schedule"]
        assert schedule["last_maintenance_date"] is not None


def test_dashboard_summary(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        _create_bin(client, "BIN-001")
        _create_bin(client, "BIN-002")
        client.post(
            "/api/iot/update",
            json={
                "bin_id": "BIN-001",
                "fill_level": 85,
                "sensor_status": "OK",
                "image_url": "https://images.example.invalid/bin-001.jpg",
            },
            headers=HEADERS,
        )
        client.post(
            "/api/commands",
            json={"bin_id": "BIN-002", "command_type": "test", "issued_by": "admin-1"},
        )

        summary = client.get("/api/analytics/dashboard/summary").json()
        assert summary["bins"]["total"] == 2
        assert summary["bins"]["full"] == 1
        assert summary["images"] == {"total": 1, "unverified": 1}
        assert summary["commands"]["pending"] == 1

        overview = client.get("/api/analytics/bin-status").json()
        assert sum(bucket["count"] for bucket in overview["fill_level_distribution"]) == 2


def test_bin_key_is_scoped_to_its_own_bin(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        own = _create_bin(client, "BIN-001")
        _create_bin(client, "BIN-002")
        own_headers = {"X-API-Key": own["api_key"]}
        command_id = client.post(
            "/api/commands",
            json={"bin_id": "BIN-002", "command_type": "empty", "issued_by": "admin-1"},
        ).json()["id"]

        spoofed = client.post(
            "/api/iot/update",
            json={"bin_id": "BIN-002", "fill_level": 99, "sensor_status": "OK"},
            headers=own_headers,
        )
        assert spoofed.status_code == 403
        assert client.get("/api/bins/BIN-002").json()["fill_level"] == 0

        assert client.get("/api/iot/commands/BIN-002", headers=own_headers).status_code == 403
        foreign_ack = client.patch(
            f"/api/iot/commands/{command_id}/ack", json={"status": "executed"}, headers=own_headers
        )
        assert foreign_ack.status_code == 403
        assert client.get(f"/api/commands/{command_id}").json()["status"] == "pending"

        assert client.get("/api/iot/commands/BIN-001", headers=own_headers).status_code == 200
        assert client.get("/api/iot/commands/BIN-002", headers=HEADERS).status_code == 200


def test_device_routes_are_rate_limited_per_key(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        own = _create_bin(client)

        for _ in range(60):
            assert client.get("/api/iot/commands/BIN-001", headers=HEADERS).status_code == 200

        assert client.get("/api/iot/commands/BIN-001", headers=HEADERS).status_code == 429
        throttled = client.post(
            "/api/iot/update",
            json={"bin_id": "BIN-001", "fill_level": 10, "sensor_status": "OK"},
            headers=HEADERS,
        )
        assert throttled.status_code == 429

        other_key = client.get("/api/iot/commands/BIN-001", headers={"X-API-Key": own["api_key"]})
        assert other_key.status_code == 200


def test_sweeper_runs_on_startup_when_enabled(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path, auto_start=True, interval_seconds=60) as client:
        sweeper = client.app.state.sweeper
        for _ in range(50):
            if sweeper.last_report is not None:
                break
            time.sleep(0.05)

        assert sweeper.last_report is not None
        assert sweeper.last_report.failed_checks == []
        task = client.app.state.sweeper_task

    assert task.done()


def test_alert_pushed_to_websocket_subscribers(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        _create_bin(client)

        with client.websocket_connect("/ws/alerts") as websocket:
            assert websocket.receive_json() == {"type": "connected"}

            response = client.post(
                "/api/iot/update",
                json={"bin_id": "BIN-001", "fill_level": 95, "sensor_status": "OK"},
                headers=HEADERS,
            )
            assert response.status_code == 200

            received = [websocket.receive_json(), websocket.receive_json()]

        messages = {message["type"]: message for message in received}

        assert set(messages) == {"alert", "bin"}
        assert messages["alert"]["data"]["alert_type"] == "overfilled"
        assert messages["alert"]["data"]["bin_id"] == "BIN-001"
        assert messages["bin"]["data"]["fill_level"] == 95


def test_image_delete(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        _create_bin(client)
        client.post(
            "/api/iot/update",
            json={
                "bin_id": "BIN-001",
                "fill_level": 30,
                "sensor_status": "OK",
                "image_url": "https://images.example.invalid/bin-001.jpg",
            },
            headers=HEADERS,
        )
        record_id = client.get("/api/images").json()[0]["id"]

        assert client.delete(f"/api/images/{record_id}").status_code == 200
        assert client.get("/api/images").json() == []
        assert client.delete(f"/api/images/{record_id}").status_code == 404


def test_feedback_endpoints(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        submitted = client.post(
            "/api/feedback",
            json={
                "email": "resident@example.com",
                "subject": "Missed pickup",
                "message": "The organics bin on Craig St was not emptied this week.",
                "rating": 2,
                "category": "complaint",
            },
        )
        assert submitted.status_code == 201
        assert submitted.json()["status"] == "new"
        feedback_id = submitted.json()["feedback_id"]

        too_short = client.post(
            "/api/feedback",
            json={"email": "resident@example.com", "subject": "Hi", "message": "short"},
        )
        assert too_short.status_code == 422

        listed = client.get("/api/feedback", params={"status": "new"}).json()
        assert listed["pagination"]["total"] == 1

        reviewed = client.patch(
            f"/api/feedback/{feedback_id}",
            json={"status": "reviewed", "reviewed_by": "admin-1", "review_notes": "Route updated"},
        )
        assert reviewed.status_code == 200
        assert reviewed.json()["status"] == "reviewed"

        stats = client.get("/api/feedback/stats").json()
        assert stats["overall"] == {"total_feedback": 1, "avg_rating": 2.0}
        assert stats["by_status"] == [{"status": "reviewed", "count": 1}]

        assert client.delete(f"/api/feedback/{feedback_id}").status_code == 200
        assert client.delete(f"/api/feedback/{feedback_id}").status_code == 404
        missing = client.patch(
            "/api/feedback/missing", json={"status": "resolved", "reviewed_by": "admin-1"}
        )
        assert missing.status_code == 404


def test_waste_count_and_trends(monkeypatch, tmp_path: Path) -> None:
    with _client(monkeypatch, tmp_path) as client:
        _create_bin(client)
        for index in range(2):
            client.post(
                "/api/iot/update",
                json={
                    "bin_id": "BIN-001",
                    "fill_level": 20 + index,
                    "sensor_status": "OK",
                    "image_url": f"https://images.example.invalid/bin-001-{index}.jpg",
                },
                headers=HEADERS,
            )
        records = client.get("/api/images").json()
        client.patch(
            f"/api/images/{records[0]['id']}/verify",
            json={"actual_category": "others", "verified_by": "admin-1"},
        )

        waste = client.get("/api/analytics/waste-count", params={"period": "week"}).json()
        assert waste == {
            "period": "week",
            "categories": [{"category": "others", "count": 1, "avg_confidence": 85}],
        }
        assert client.get("/api/analytics/waste-count", params={"period": "year"}).status_code == 422

        trends = client.get("/api/analytics/trends", params={"days": 7}).json()
        assert trends["days"] == 7
        assert len(trends["trends"]) == 7
        assert [row["count"] for row in trends["trends"]] == [0, 0, 0, 0, 0, 0, 1]
