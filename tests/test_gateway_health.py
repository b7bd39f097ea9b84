from wagateway.api import KNOWN_ROUTES


def test_health_counts(gateway):
    gw = gateway(MAX_SESSIONS=3)
    gw.make_ready("t1")
    gw.client.get("/session/t2/qr")
    gw.wait_status("t2", "qr")

    response = gw.client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["ok"] is True
    assert payload["sessions"] == 2
    assert payload["max_sessions"] == 3
    assert payload["by_status"]["ready"] == 1
    assert payload["by_status"]["qr"] == 1


def test_health_handles_stats_failure(gateway, monkeypatch):
    gw = gateway(MAX_SESSIONS=7)

    def _broken():
        raise RuntimeError("stats error")

    monkeypatch.setattr(gw.manager, "stats_snapshot", _broken)

    response = gw.client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "ok": True,
        "sessions": 0,
        "max_sessions": 7,
        "by_status": {},
    }


def test_service_info(gateway):
    gw = gateway(MAX_SESSIONS=4, SESSION_IDLE_TIMEOUT_MS=120000)

    payload = gw.client.get("/info").json()

    assert payload["name"] == "wa-session-gateway"
    assert payload["adapter"] == "loopback"
    assert payload["max_sessions"] == 4
    assert payload["idle_timeout_ms"] == 120000
    assert payload["routes"] == KNOWN_ROUTES


def test_metrics_exposition(gateway):
    gw = gateway()
    gw.make_ready("t1")

    response = gw.client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    text = response.text
    assert 'wagateway_sessions{status="ready"} 1.0' in text
    assert "wagateway_adapter_events_total" in text
