"""Tests for the Zarinpal client and the payment endpoints."""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests
from bson import ObjectId

from splitbook.extensions import db
from splitbook.payments.models import PaymentDB
from splitbook.payments.services.zarinpal import ZarinpalService
from splitbook.utils.enums import PaymentStatus

POST = "splitbook.payments.services.zarinpal.requests.post"


def gateway_response(body):
    response = MagicMock()
    response.json.return_value = body
    return response


@pytest.fixture
def gateway():
    return ZarinpalService(merchant_id="merchant-123", base_url="https://gw.test/", mock_mode=False)


class TestZarinpalService:

    def test_requires_merchant_outside_mock_mode(self, monkeypatch):
        monkeypatch.delenv("ZARINPAL_MERCHANT_ID", raising=False)

        with pytest.raises(ValueError):
            ZarinpalService(mock_mode=False)

    def test_gateway_amount_in_rial(self, gateway):
        assert gateway.to_gateway_amount(Decimal("20")) == 200
        assert gateway.to_gateway_amount("33.335") == 333

    def test_request_redirect(self, gateway):
        body = {"data": {"code": 100, "message": "Success", "authority": "A0000012345"}, "errors": []}

        with patch(POST, return_value=gateway_response(body)) as post:
            result = gateway.request_redirect("from-id", "to-id", Decimal("20"))

        assert result["data"]["authority"] == "A0000012345"
        assert result["data"]["paymentUrl"] == "https://gw.test/pg/StartPay/A0000012345"

        url = post.call_args.args[0]
        payload = post.call_args.kwargs["json"]
        assert url == "https://gw.test/pg/v4/payment/request.json"
        assert payload["merchant_id"] == "merchant-123"
        assert payload["amount"] == 200
        assert "to-id" in payload["description"]

    def test_request_refused(self, gateway):
        body = {"data": [], "errors": {"code": -9, "message": "The input params invalid", "validations": []}}

        with patch(POST, return_value=gateway_response(body)):
            result = gateway.request_redirect("from-id", "to-id", Decimal("20"))

        assert result["error"]["type"] == "gateway_error"
        assert result["error"]["code"] == -9

    def test_transport_failure(self, gateway):
        with patch(POST, side_effect=requests.exceptions.ConnectionError("down")):
            result = gateway.request_redirect("from-id", "to-id", Decimal("20"))

        assert result["error"]["code"] == "request_failed"
        assert result["error"]["type"] == "api_error"

    def test_verify(self, gateway):
        body = {"data": {"code": 100, "ref_id": 201, "card_pan": "5022****3344"}, "errors": []}

        with patch(POST, return_value=gateway_response(body)) as post:
            result = gateway.verify("A0000012345", 20.0)

        assert result == {"data": {"code": 100, "ref_id": 201}}
        assert post.call_args.kwargs["json"] == {
            "merchant_id": "merchant-123",
            "amount": 200,
            "authority": "A0000012345",
        }

    def test_verify_failed(self, gateway):
        body = {"data": {"code": -51}, "errors": {"code": -51, "message": "Session is not valid"}}

        with patch(POST, return_value=gateway_response(body)):
            result = gateway.verify("A0000012345", 20.0)

        assert "error" in result

    def test_mock_mode_never_calls_gateway(self):
        service = ZarinpalService(mock_mode=True, base_url="https://gw.test")

        with patch(POST) as post:
            result = service.request_redirect("from-id", "to-id", Decimal("5"))

        post.assert_not_called()
        assert result["data"]["paymentUrl"].startswith("https://gw.test/pg/StartPay/A")
        assert len(result["data"]["authority"]) == 36


@pytest.fixture
def debt(client, register):
    """u2 owes u1 50 after u1 pays a 100 dinner for both."""
    u1, u1_headers = register("u1")
    u2, u2_headers = register("u2")
    client.post("/api/expenses", headers=u1_headers, json={
        "description": "Dinner", "amount": 100, "paidBy": u1, "participants": [u1, u2],
    })
    return u1, u1_headers, u2, u2_headers


def authority_from(response):
    return response.get_json()["paymentUrl"].rsplit("/", 1)[-1]


class TestPaymentRoutes:

    def test_initiate_payment(self, client, debt):
        u1, _, u2, u2_headers = debt

        response = client.post("/api/payments", headers=u2_headers, json={"toUserId": u1, "amount": 50})

        assert response.status_code == 201
        assert "/pg/StartPay/" in response.get_json()["paymentUrl"]

        record = db.payments.find_one({"authority": authority_from(response)})
        assert record["status"] == "pending"
        assert str(record["from"]) == u2
        assert str(record["to"]) == u1

    def test_cannot_pay_when_not_owing(self, client, debt):
        _, u1_headers, u2, _ = debt

        response = client.post("/api/payments", headers=u1_headers, json={"toUserId": u2, "amount": 10})

        assert response.status_code == 400

    def test_cannot_overpay(self, client, debt):
        u1, _, _, u2_headers = debt

        response = client.post("/api/payments", headers=u2_headers, json={"toUserId": u1, "amount": 60})

        assert response.status_code == 400

    def test_invalid_requests(self, client, debt):
        u1, _, u2, u2_headers = debt

        bad_amount = client.post("/api/payments", headers=u2_headers, json={"toUserId": u1, "amount": -1})
        too_precise = client.post("/api/payments", headers=u2_headers, json={
            "toUserId": u1, "amount": "1.0000000000000000000000000000000000001",
        })
        self_pay = client.post("/api/payments", headers=u2_headers, json={"toUserId": u2, "amount": 1})
        unknown = client.post("/api/payments", headers=u2_headers, json={"toUserId": str(ObjectId()), "amount": 1})

        assert bad_amount.status_code == 400
        assert too_precise.status_code == 400
        assert self_pay.status_code == 400
        assert unknown.status_code == 404

    def test_verify_completes_payment(self, client, debt):
        u1, _, _, u2_headers = debt
        authority = authority_from(
            client.post("/api/payments", headers=u2_headers, json={"toUserId": u1, "amount": 50})
        )

        response = client.get(f"/api/payments/verify?Authority={authority}&Status=OK", headers=u2_headers)

        assert response.status_code == 200
        assert response.get_json()["payment"]["status"] == "completed"

        again = client.get(f"/api/payments/verify?Authority={authority}&Status=OK", headers=u2_headers)
        assert again.get_json()["message"] == "Payment already processed"

    def test_verify_cancelled_payment(self, client, debt):
        u1, _, _, u2_headers = debt
        authority = authority_from(
            client.post("/api/payments", headers=u2_headers, json={"toUserId": u1, "amount": 50})
        )

        response = client.get(f"/api/payments/verify?Authority={authority}&Status=NOK", headers=u2_headers)

        assert response.status_code == 400
        assert response.get_json()["payment"]["status"] == "failed"

    def test_verify_other_users_payment(self, client, debt):
        u1, u1_headers, _, u2_headers = debt
        authority = authority_from(
            client.post("/api/payments", headers=u2_headers, json={"toUserId": u1, "amount": 50})
        )

        response = client.get(f"/api/payments/verify?Authority={authority}&Status=OK", headers=u1_headers)

        assert response.status_code == 404

    def test_list_payments(self, client, debt):
        u1, u1_headers, _, u2_headers = debt
        client.post("/api/payments", headers=u2_headers, json={"toUserId": u1, "amount": 20})

        payer_view = client.get("/api/payments", headers=u2_headers).get_json()
        payee_view = client.get("/api/payments", headers=u1_headers).get_json()

        assert len(payer_view) == 1
        assert payer_view == payee_view
        assert payer_view[0]["amount"] == 20.0

    def test_verify_finalised_concurrently(self, client, debt):
        u1, _, _, u2_headers = debt
        authority = authority_from(
            client.post("/api/payments", headers=u2_headers, json={"toUserId": u1, "amount": 50})
        )

        def verify_after_other_request(self, authority, amount):
            # A second verify request completes the record while the gateway call is in flight
            PaymentDB.update_status(authority, PaymentStatus.COMPLETED, {"ref_id": 111})
            return {"data": {"code": 100, "ref_id": 222}}

        with patch.object(ZarinpalService, "verify", verify_after_other_request):
            response = client.get(f"/api/payments/verify?Authority={authority}&Status=OK", headers=u2_headers)

        body = response.get_json()
        assert response.status_code == 200
        assert body["message"] == "Payment already processed"
        assert body["payment"]["status"] == "completed"
        assert body["payment"]["ref_id"] == 111
