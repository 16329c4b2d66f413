import logging

from finance_tracker.logging import JsonFormatter
from finance_tracker.utils.request_ctx import request_id


def test_healthz_and_ready(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.json()["env"] == "test"
    r = client.get("/ready")
    assert r.status_code == 200
    assert r.json()["db"]["ok"] is True


def test_request_id_propagated(client):
    r = client.get("/healthz", headers={"X-Request-ID": "abc-123"})
    assert r.headers["X-Request-ID"] == "abc-123"
    assert client.get("/healthz").headers.get("X-Request-ID")


def test_request_log_line(client, caplog):
    with caplog.at_level(logging.INFO, logger="req"):
        client.get("/healthz", headers={"X-Request-ID": "log-me"})
    lines = [r.getMessage() for r in caplog.records if r.name == "req"]
    assert any('"rid": "log-me"' in line and '"path": "/healthz"' in line for line in lines)


def test_metrics_exposes_ledger_counters(client, user, food, auth_headers):
    client.post(
        "/api/transactions",
        json={"amount": "0", "description": "x", "type": "expense", "category_id": food.id},
        headers=auth_headers(user),
    )
    r = client.get("/metrics")
    assert r.status_code == 200
    text = r.text
    assert "ledger_operations_total" in text
    assert 'domain_errors_total{code="validation_error"}' in text


def test_json_formatter_includes_request_id():
    token = request_id.set("rid-1")
    try:
        rec = logging.LogRecord("x", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        out = JsonFormatter().format(rec)
    finally:
        request_id.reset(token)
    assert '"msg": "hello world"' in out
    assert '"rid": "rid-1"' in out
