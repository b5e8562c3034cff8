import inspect
import io
import logging

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth import ExternalIdentity, IdentityError
from database import Base
from main import app, get_db, get_identity_verifier


class FakeVerifier:
    def verify(self, id_token: str) -> ExternalIdentity:
        if id_token != "good-token":
            raise IdentityError("Invalid Google token")
        return ExternalIdentity(subject="google-1", email="asha@example.com", name="Asha")


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_identity_verifier] = lambda: FakeVerifier()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers(client):
    response = client.post("/api/auth/google", json={"id_token": "good-token"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


def test_health(client) -> None:
    assert client.get("/api/health").json() == {"status": "ok"}


def test_app_leaves_logging_setup_to_the_host() -> None:
    import main

    assert "basicConfig" not in inspect.getsource(main)
    assert main.logger.name == "main"


def test_rejected_sign_in_is_logged(client, caplog) -> None:
    with caplog.at_level(logging.INFO, logger="main"):
        assert client.post("/api/auth/google", json={"id_token": "bad"}).status_code == 401

    assert any(record.name == "main" for record in caplog.records)


def test_login_and_profile(client, auth_headers) -> None:
    assert client.post("/api/auth/google", json={"id_token": "bad"}).status_code == 401
    assert client.get("/api/user/profile").status_code == 401
    assert client.get("/api/user/profile", headers={"Authorization": "Bearer junk"}).status_code == 401

    profile = client.get("/api/user/profile", headers=auth_headers).json()
    assert profile["name"] == "Asha"


def test_transaction_lifecycle(client, auth_headers) -> None:
    created = client.post(
        "/api/transactions",
        json={
            "date": "2025-03-02",
            "type": "pay",
            "amount": "12.50",
            "category": "Food",
            "description": "Lunch",
            "debit_account": "cash",
        },
        headers=auth_headers,
    )
    assert created.status_code == 201
    txn_id = created.json()["id"]
    assert created.json()["amount_cents"] == 1250

    invalid = client.post(
        "/api/transactions",
        json={"date": "2025-03-02", "type": "pay", "amount": "1", "category": "Food"},
        headers=auth_headers,
    )
    assert invalid.status_code == 422

    updated = client.put(
        f"/api/transactions/{txn_id}", json={"category": "Bills"}, headers=auth_headers
    )
    assert updated.json()["category"] == "Bills"
    assert updated.json()["description"] == "Lunch"

    items = client.get("/api/transactions", headers=auth_headers).json()["items"]
    assert [item["id"] for item in items] == [txn_id]

    assert client.delete(f"/api/transactions/{txn_id}", headers=auth_headers).status_code == 204
    assert client.delete(f"/api/transactions/{txn_id}", headers=auth_headers).status_code == 404


def test_bulk_and_legacy_import(client, auth_headers) -> None:
    bulk = client.post(
        "/api/transactions/bulk",
        json={"transactions": [{"date": "2025-01-01", "amount": 5, "debit_account": "cash"}]},
        headers=auth_headers,
    )
    assert bulk.json() == {"imported": 1}
    assert client.post("/api/transactions/bulk", json={"transactions": []}, headers=auth_headers).status_code == 400

    legacy = client.post(
        "/api/transactions/import-legacy",
        content='[{"date": "2024-12-01", "category": "Tea", "amount": 2}]',
        headers=auth_headers,
    )
    assert legacy.json() == {"imported": 1}
    broken = client.post("/api/transactions/import-legacy", content="{oops", headers=auth_headers)
    assert broken.json() == {"imported": 0}

    balances = client.get("/api/balances", headers=auth_headers).json()["items"]
    cash = next(row for row in balances if row["account_id"] == "cash")
    assert cash["balance_cents"] == -700
    assert client.get("/api/net-worth", headers=auth_headers).json() == {"net_worth_cents": -700}


def test_bulk_accepts_camel_case_keys(client, auth_headers) -> None:
    bulk = client.post(
        "/api/transactions/bulk",
        json={
            "transactions": [
                {"type": "pay", "amount": 5, "debitAccount": "cash", "date": "2025-01-01"},
                {"transactionType": "receive", "amount": 3, "creditAccount": "bank1", "date": "2025-01-02"},
            ]
        },
        headers=auth_headers,
    )
    assert bulk.json() == {"imported": 2}

    items = client.get("/api/transactions", headers=auth_headers).json()["items"]
    by_type = {item["type"]: item for item in items}
    assert by_type["pay"]["debit_account"] == "cash"
    assert by_type["receive"]["credit_account"] == "bank1"

    balances = client.get("/api/balances", headers=auth_headers).json()["items"]
    cash = next(row for row in balances if row["account_id"] == "cash")
    assert cash["balance_cents"] == -500


def test_csv_import_and_export(client, auth_headers) -> None:
    content = (
        "Date,Type,Category,Description,Amount,From,To\n"
        "2025-01-05,pay,Food,Lunch,12.50,cash,\n"
        "bad,pay,Food,Lunch,1,cash,\n"
    )
    response = client.post(
        "/api/transactions/import",
        files={"file": ("ledger.csv", io.BytesIO(content.encode("utf-8")), "text/csv")},
        headers=auth_headers,
    )
    assert response.json()["imported"] == 1
    assert len(response.json()["errors"]) == 1

    exported = client.get("/api/transactions/export.csv", headers=auth_headers)
    assert exported.headers["content-type"].startswith("text/csv")
    assert "2025-01-05,pay,Food,Lunch,12.50,cash," in exported.text


def test_account_routes(client, auth_headers) -> None:
    created = client.post("/api/accounts", json={"name": "Wallet"}, headers=auth_headers)
    assert created.status_code == 201
    account_id = created.json()["id"]

    assert client.post("/api/accounts", json={"name": " "}, headers=auth_headers).status_code == 400
    assert client.delete("/api/accounts/cash", headers=auth_headers).status_code == 403
    assert client.delete("/api/accounts/missing", headers=auth_headers).status_code == 404

    renamed = client.patch(f"/api/accounts/{account_id}", json={"name": "Purse"}, headers=auth_headers)
    assert renamed.json()["name"] == "Purse"
    assert client.patch("/api/accounts/missing", json={"name": "X"}, headers=auth_headers).status_code == 404

    reordered = client.post(
        "/api/accounts/reorder",
        json={"dragged_id": account_id, "target_id": "bank1"},
        headers=auth_headers,
    ).json()["items"]
    assert reordered[0]["id"] == account_id

    assert client.delete(f"/api/accounts/{account_id}", headers=auth_headers).status_code == 204
    items = client.get("/api/accounts", headers=auth_headers).json()["items"]
    assert [item["order"] for item in items] == list(range(len(items)))


def test_category_routes(client, auth_headers) -> None:
    categories = client.get("/api/categories", headers=auth_headers).json()
    assert categories["pay"][0] == "Food"

    added = client.post("/api/categories/pay", json={"label": "Rent"}, headers=auth_headers)
    assert added.json()["items"][-1] == "Rent"
    assert client.post("/api/categories/pay", json={"label": "Rent"}, headers=auth_headers).status_code == 400
    assert client.post("/api/categories/transfer", json={"label": "X"}, headers=auth_headers).status_code == 404

    renamed = client.put("/api/categories/receive/0", json={"label": "Wages"}, headers=auth_headers)
    assert renamed.json()["items"][0] == "Wages"
    assert client.put("/api/categories/receive/42", json={"label": "X"}, headers=auth_headers).status_code == 404
    assert client.delete("/api/categories/receive/42", headers=auth_headers).status_code == 404


def test_reports_and_templates(client, auth_headers) -> None:
    client.post(
        "/api/transactions",
        json={
            "date": "2025-03-02",
            "type": "receive",
            "amount": "100",
            "category": "Salary",
            "description": "Boss",
            "credit_account": "bank1",
        },
        headers=auth_headers,
    )

    report = client.get(
        "/api/reports",
        params={"date_range": "all", "types": ["receive"], "account_table": "true"},
        headers=auth_headers,
    ).json()
    assert report["transaction_count"] == 1
    assert report["account_table"][0]["account_id"] == "bank1"

    bad = client.get(
        "/api/reports",
        params={"date_range": "custom", "from_date": "2025-02-01", "to_date": "2025-01-01"},
        headers=auth_headers,
    )
    assert bad.status_code == 400

    overview = client.get("/api/reports/overview", params={"period": "all"}, headers=auth_headers).json()
    assert overview["income"]["total_cents"] == 10000

    saved = client.post(
        "/api/report-templates", json={"name": "All income", "date_range": "all"}, headers=auth_headers
    )
    assert saved.status_code == 201
    templates = client.get("/api/report-templates", headers=auth_headers).json()["items"]
    assert [t["name"] for t in templates] == ["All income"]
    assert client.delete("/api/report-templates/3", headers=auth_headers).status_code == 404
    assert client.delete("/api/report-templates/0", headers=auth_headers).status_code == 204

    dashboard = client.get("/api/dashboard", headers=auth_headers).json()
    assert dashboard["net_worth_cents"] == 10000
