import sqlite3
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from finance_tracker.services import ledger


@pytest.fixture
def api(client, user, auth_headers):
    headers = auth_headers(user)

    class _Api:
        def get(self, path, **kw):
            return client.get(path, headers=headers, **kw)

        def post(self, path, json=None):
            return client.post(path, json=json, headers=headers)

        def put(self, path, json=None):
            return client.put(path, json=json, headers=headers)

        def delete(self, path):
            return client.delete(path, headers=headers)

    return _Api()


def _payload(category_id, amount="10.00", type_="expense", **extra):
    return {"amount": amount, "description": "coffee", "type": type_, "category_id": category_id, **extra}


def test_create_returns_transaction_and_balance(api, salary):
    r = api.post("/api/transactions", _payload(salary.id, "2500.00", "income", tags=["pay"]))
    assert r.status_code == 201, r.text
    body = r.json()
    assert Decimal(body["balance"]) == Decimal("2500.00")
    txn = body["transaction"]
    assert Decimal(txn["amount"]) == Decimal("2500.00")
    assert txn["category"]["name"] == "Salary"
    assert txn["tags"] == ["pay"]

    me = api.get("/api/auth/me").json()
    assert Decimal(me["total_balance"]) == Decimal("2500.00")


@pytest.mark.parametrize("amount", [0, -5, "0.001", True, False])
def test_invalid_amount_is_400(api, food, amount):
    r = api.post("/api/transactions", _payload(food.id, amount))
    assert r.status_code == 400
    assert r.json()["error"] == "validation_error"
    assert api.get("/api/transactions").json()["pagination"]["total"] == 0


def test_create_lock_contention_is_409_and_writes_nothing(api, food, monkeypatch):
    def _locked(db, user_id, delta):
        raise OperationalError("UPDATE users", {}, sqlite3.OperationalError("database is locked"))

    monkeypatch.setattr(ledger, "_apply_delta", _locked)
    r = api.post("/api/transactions", _payload(food.id))
    assert r.status_code == 409
    assert r.json() == {"detail": "Concurrent update in progress, retry the request", "error": "conflict"}

    monkeypatch.undo()
    assert api.get("/api/transactions").json()["pagination"]["total"] == 0
    assert Decimal(api.get("/api/auth/me").json()["total_balance"]) == Decimal("0.00")


def test_returned_dates_are_utc(api, food):
    r = api.post("/api/transactions", _payload(food.id, date="2025-03-01T12:30:00+02:00"))
    assert r.status_code == 201, r.text
    when = datetime.fromisoformat(r.json()["transaction"]["date"].replace("Z", "+00:00"))
    assert when.utcoffset() == timedelta(0)
    assert when.replace(tzinfo=None) == datetime(2025, 3, 1, 10, 30)

    listed = api.get("/api/transactions").json()["items"][0]["date"]
    assert datetime.fromisoformat(listed.replace("Z", "+00:00")).utcoffset() == timedelta(0)


def test_numeric_cent_amount_accepted(api, food):
    r = api.post("/api/transactions", _payload(food.id, 0.01))
    assert r.status_code == 201
    assert Decimal(r.json()["balance"]) == Decimal("-0.01")


def test_foreign_category_is_invalid_category(api, make_user, make_category):
    bob = make_user(username="bob", email="bob@test.local")
    cat = make_category(bob.id, "Bob Food")
    r = api.post("/api/transactions", _payload(cat.id))
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_category"


def test_update_flip_and_delete_roundtrip(api, food):
    created = api.post("/api/transactions", _payload(food.id, "100.00")).json()
    tid = created["transaction"]["id"]
    assert Decimal(created["balance"]) == Decimal("-100.00")

    r = api.put(f"/api/transactions/{tid}", {"type": "income"})
    assert r.status_code == 200
    assert Decimal(r.json()["balance"]) == Decimal("100.00")

    r = api.delete(f"/api/transactions/{tid}")
    assert r.status_code == 200
    assert r.json() == {"ok": True, "id": tid, "balance": "0.00"}
    assert api.get(f"/api/transactions/{tid}").status_code == 404


def test_missing_transaction_is_404(api):
    r = api.put("/api/transactions/999", {"amount": "1"})
    assert r.status_code == 404
    assert r.json() == {"detail": "Transaction not found", "error": "not_found"}


def test_list_filters_and_pagination(api, salary, food):
    api.post("/api/transactions", _payload(salary.id, "100", "income", date="2025-01-05T00:00:00Z"))
    for day in (10, 11, 12):
        api.post("/api/transactions", _payload(food.id, "5", date=f"2025-02-{day}T09:00:00Z"))

    r = api.get("/api/transactions", params={"limit": 2})
    body = r.json()
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 4, "pages": 2}
    # newest first
    assert body["items"][0]["date"].startswith("2025-02-12")

    r = api.get("/api/transactions", params={"type": "income"}).json()
    assert [i["type"] for i in r["items"]] == ["income"]

    r = api.get("/api/transactions", params={"category_id": food.id, "start_date": "2025-02-11T00:00:00"}).json()
    assert r["pagination"]["total"] == 2

    assert api.get("/api/transactions", params={"type": "gift"}).status_code == 422


def test_users_do_not_see_each_others_transactions(api, client, make_user, make_category, auth_headers, food):
    created = api.post("/api/transactions", _payload(food.id)).json()
    bob = make_user(username="bob", email="bob@test.local")
    r = client.get(f"/api/transactions/{created['transaction']['id']}", headers=auth_headers(bob))
    assert r.status_code == 404
    r = client.get("/api/transactions", headers=auth_headers(bob))
    assert r.json()["pagination"]["total"] == 0


def test_stats_endpoint(api, salary, food):
    api.post("/api/transactions", _payload(salary.id, "300", "income"))
    api.post("/api/transactions", _payload(food.id, "20"))
    api.post("/api/transactions", _payload(food.id, "10"))
    r = api.get("/api/transactions/stats", params={"period": "month"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["period"] == "month"
    overview = {t["type"]: t for t in body["overview"]}
    assert Decimal(overview["expense"]["total"]) == Decimal("30")
    assert Decimal(overview["expense"]["avg_amount"]) == Decimal("15.00")
    assert [c["name"] for c in body["categoryBreakdown"]] == ["Salary", "Food"]


def test_stats_empty_and_bad_period(api):
    body = api.get("/api/transactions/stats").json()
    assert body["overview"] == [] and body["categoryBreakdown"] == []
    r = api.get("/api/transactions/stats", params={"period": "decade"})
    assert r.status_code == 400
