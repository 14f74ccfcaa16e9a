"""
HTTP end-to-end tests for the payment ledger API.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient

from payment_ledger.api import create_app
from payment_ledger.config import Settings
from payment_ledger.errors import StoreError

pytestmark = pytest.mark.integration


@pytest.fixture
def client(test_settings: Settings) -> Iterator[TestClient]:
    with TestClient(create_app(settings=test_settings)) as test_client:
        yield test_client


@pytest.fixture
def card_body() -> dict[str, Any]:
    return {
        "kind": "card",
        "card_number": "5500000000000004",
        "exp_month": 6,
        "exp_year": datetime.now(timezone.utc).year + 2,
        "cvv": "321",
        "is_default": True,
    }


def charge_body(**overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "order_id": str(uuid.uuid4()),
        "user_id": str(uuid.uuid4()),
        "payment_method_id": str(uuid.uuid4()),
        "amount_cents": 2500,
        "currency": "usd",
    }
    body.update(overrides)
    return body


class TestPaymentMethodEndpoints:
    def test_add_list_delete(self, client: TestClient, card_body: dict[str, Any]) -> None:
        user_id = str(uuid.uuid4())

        response = client.post(f"/users/{user_id}/payment-methods", json=card_body)
        assert response.status_code == 201
        method = response.json()
        assert method["user_id"] == user_id
        assert method["last_four"] == "0004"
        assert method["brand"] == "Mastercard"
        assert method["is_default"] is True
        assert "card_number" not in method
        assert "cvv" not in method

        listed = client.get(f"/users/{user_id}/payment-methods").json()
        assert [m["id"] for m in listed["payment_methods"]] == [method["id"]]

        response = client.delete(f"/users/{user_id}/payment-methods/{method['id']}")
        assert response.status_code == 204
        assert client.get(f"/users/{user_id}/payment-methods").json() == {"payment_methods": []}

    def test_delete_foreign_method_is_acknowledged_but_kept(
        self, client: TestClient, card_body: dict[str, Any]
    ) -> None:
        owner = str(uuid.uuid4())
        method = client.post(f"/users/{owner}/payment-methods", json=card_body).json()

        response = client.delete(f"/users/{uuid.uuid4()}/payment-methods/{method['id']}")

        assert response.status_code == 204
        assert len(client.get(f"/users/{owner}/payment-methods").json()["payment_methods"]) == 1

    def test_second_default_replaces_first(self, client: TestClient, card_body: dict[str, Any]) -> None:
        user_id = str(uuid.uuid4())
        client.post(f"/users/{user_id}/payment-methods", json=card_body)
        second = client.post(f"/users/{user_id}/payment-methods", json=card_body).json()

        methods = client.get(f"/users/{user_id}/payment-methods").json()["payment_methods"]

        assert [m["id"] for m in methods if m["is_default"]] == [second["id"]]
        assert methods[0]["id"] == second["id"]

    def test_invalid_user_id(self, client: TestClient, card_body: dict[str, Any]) -> None:
        response = client.post("/users/not-a-uuid/payment-methods", json=card_body)

        assert response.status_code == 400
        assert response.json() == {"error": "invalid_argument", "message": "Invalid user ID"}

    def test_expired_card(self, client: TestClient, card_body: dict[str, Any]) -> None:
        card_body["exp_year"] = datetime.now(timezone.utc).year - 1

        response = client.post(f"/users/{uuid.uuid4()}/payment-methods", json=card_body)

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_argument"

    def test_unknown_kind(self, client: TestClient, card_body: dict[str, Any]) -> None:
        card_body["kind"] = "crypto"

        response = client.post(f"/users/{uuid.uuid4()}/payment-methods", json=card_body)

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_argument"


class TestTransactionEndpoints:
    def test_charge_and_get(self, client: TestClient) -> None:
        response = client.post("/charges", json=charge_body(idempotency_key="api-key-1"))

        assert response.status_code == 200
        result = response.json()
        assert result["success"] is True
        assert result["error_message"] is None
        assert result["transaction"]["currency"] == "USD"
        assert result["transaction"]["status"] == "succeeded"

        fetched = client.get(f"/transactions/{result['transaction']['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["id"] == result["transaction"]["id"]
        assert fetched.json()["idempotency_key"] == "api-key-1"

    def test_charge_retry_replays(self, client: TestClient) -> None:
        body = charge_body(idempotency_key="api-retry")

        first = client.post("/charges", json=body).json()
        second = client.post("/charges", json=body).json()

        assert first["transaction"]["id"] == second["transaction"]["id"]

    def test_declined_charge_is_not_an_error(self, client: TestClient) -> None:
        response = client.post("/charges", json=charge_body(amount_cents=100_000))

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["error_message"] == "Charge declined by payment gateway"
        assert response.json()["transaction"]["status"] == "failed"

    def test_missing_amount(self, client: TestClient) -> None:
        body = charge_body()
        del body["amount_cents"]

        response = client.post("/charges", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_argument"

    def test_negative_amount(self, client: TestClient) -> None:
        response = client.post("/charges", json=charge_body(amount_cents=-1))

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_argument"

    def test_invalid_order_id(self, client: TestClient) -> None:
        response = client.post("/charges", json=charge_body(order_id="42"))

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid order ID"

    def test_refund(self, client: TestClient) -> None:
        charge = client.post("/charges", json=charge_body()).json()["transaction"]

        response = client.post(
            f"/transactions/{charge['id']}/refund",
            json={"amount_cents": 1000, "reason": "duplicate"},
        )

        assert response.status_code == 200
        refund = response.json()["transaction"]
        assert response.json()["success"] is True
        assert refund["kind"] == "refund"
        assert refund["status"] == "refunded"
        assert refund["original_transaction_id"] == charge["id"]
        assert refund["order_id"] == charge["order_id"]

        refunds = client.get(f"/transactions/{charge['id']}/refunds").json()["transactions"]
        assert [t["id"] for t in refunds] == [refund["id"]]

    def test_refund_unknown_transaction(self, client: TestClient) -> None:
        response = client.post(f"/transactions/{uuid.uuid4()}/refund", json={"amount_cents": 1000})

        assert response.status_code == 404
        assert response.json() == {"error": "not_found", "message": "Transaction not found"}

    def test_get_unknown_transaction(self, client: TestClient) -> None:
        response = client.get(f"/transactions/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_request_id_header(self, client: TestClient) -> None:
        response = client.get(f"/transactions/{uuid.uuid4()}")

        assert "X-Request-ID" in response.headers

    def test_amount_above_column_limit(self, client: TestClient) -> None:
        response = client.post("/charges", json=charge_body(amount_cents=10**20))

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_argument"

    def test_refund_of_declined_charge(self, client: TestClient) -> None:
        charge = client.post("/charges", json=charge_body(amount_cents=200_000)).json()["transaction"]

        response = client.post(f"/transactions/{charge['id']}/refund", json={"amount_cents": 1000})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_argument"

    def test_storage_failure_is_internal(self, client: TestClient, mocker: Any) -> None:
        mocker.patch.object(
            client.app.state.orchestrator,
            "get_transaction",
            side_effect=StoreError("Failed to read transaction", cause=OSError("disk I/O error")),
        )

        response = client.get(f"/transactions/{uuid.uuid4()}")

        assert response.status_code == 500
        assert response.json() == {"error": "internal", "message": "Internal error"}


class TestStartup:
    def test_unreachable_storage_is_fatal(self, tmp_path: Any) -> None:
        settings = Settings(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'ledger.db'}",
            app_env="test",
        )

        with pytest.raises(StoreError, match="unreachable"):
            with TestClient(create_app(settings=settings)):
                pass
