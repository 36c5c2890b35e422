"""
Zarinpal Payment Gateway Integration.

Based on the Zarinpal REST API v4.
Default Sandbox: https://sandbox.zarinpal.com

Supports MOCK_MODE for demos when the gateway is unavailable.
"""
import logging
import os
import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class ZarinpalService:
    """
    Service for interacting with the Zarinpal payment gateway.

    Payment Flow:
    1. Request payment -> get authority
    2. Redirect user to StartPay/<authority>
    3. Gateway redirects back to the callback URL with Authority and Status
    4. Verify payment with authority and amount -> ref_id
    """

    DEFAULT_BASE_URL = "https://sandbox.zarinpal.com"

    REQUEST_ENDPOINT = "/pg/v4/payment/request.json"
    VERIFY_ENDPOINT = "/pg/v4/payment/verify.json"
    START_PAY_PATH = "/pg/StartPay/"

    # Gateway result codes
    CODE_SUCCESS = 100
    CODE_ALREADY_VERIFIED = 101

    # Balances are kept in toman; the gateway charges in rial
    AMOUNT_MULTIPLIER = 10

    REQUEST_TIMEOUT = 30

    def __init__(
        self,
        merchant_id: Optional[str] = None,
        base_url: Optional[str] = None,
        callback_url: Optional[str] = None,
        mock_mode: Optional[bool] = None,
    ):
        """
        Initialize ZarinpalService.

        Args:
            merchant_id: Zarinpal merchant ID. Falls back to ZARINPAL_MERCHANT_ID env var.
            base_url: Gateway base URL. Falls back to ZARINPAL_BASE_URL env var.
            callback_url: Where the gateway sends the user back after paying.
                          Falls back to ZARINPAL_CALLBACK_URL env var.
            mock_mode: If True, simulate gateway responses locally.
                       Falls back to ZARINPAL_MOCK_MODE env var.
        """
        self.merchant_id = merchant_id or os.environ.get("ZARINPAL_MERCHANT_ID")
        self.base_url = (
            base_url
            or os.environ.get("ZARINPAL_BASE_URL")
            or self.DEFAULT_BASE_URL
        ).rstrip("/")
        self.callback_url = callback_url or os.environ.get("ZARINPAL_CALLBACK_URL", "http://localhost:3000")

        if mock_mode is not None:
            self.mock_mode = mock_mode
        else:
            mock_env = os.environ.get("ZARINPAL_MOCK_MODE", "false").lower()
            self.mock_mode = mock_env in ("true", "1", "yes")

        if not self.merchant_id and not self.mock_mode:
            raise ValueError("ZARINPAL_MERCHANT_ID is required. Set it in environment or pass to constructor.")

    @classmethod
    def from_config(cls, config) -> "ZarinpalService":
        return cls(
            merchant_id=config.get("ZARINPAL_MERCHANT_ID"),
            base_url=config.get("ZARINPAL_BASE_URL"),
            callback_url=config.get("ZARINPAL_CALLBACK_URL"),
            mock_mode=config.get("ZARINPAL_MOCK_MODE"),
        )

    def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST to the gateway and return the parsed JSON body.

        Transport failures come back as an error structure instead of raising.
        """
        url = f"{self.base_url}{endpoint}"
        try:
            response = requests.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                timeout=self.REQUEST_TIMEOUT,
            )
            body = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error("Zarinpal request to %s failed: %s", endpoint, e)
            return {
                "error": {
                    "code": "request_failed",
                    "message": str(e),
                    "type": "api_error"
                }
            }
        return body

    @staticmethod
    def _gateway_error(body: Dict[str, Any], default_message: str) -> Dict[str, Any]:
        errors = body.get("errors") or {}
        if not isinstance(errors, dict):
            errors = {}
        return {
            "error": {
                "code": errors.get("code", "gateway_rejected"),
                "message": errors.get("message", default_message),
                "type": "gateway_error",
                "details": body.get("errors"),
            }
        }

    def to_gateway_amount(self, amount: Any) -> int:
        """Convert a balance amount to the integer amount the gateway charges."""
        value = Decimal(str(amount)) * self.AMOUNT_MULTIPLIER
        return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def start_pay_url(self, authority: str) -> str:
        return f"{self.base_url}{self.START_PAY_PATH}{authority}"

    # ==================== MOCK MODE HELPERS ====================

    def _generate_mock_authority(self) -> str:
        """Generate a realistic 36 character authority."""
        return f"A{uuid.uuid4().hex}{uuid.uuid4().hex[:3]}".upper()

    # ==================== PAYMENTS ====================

    def request_redirect(self, from_user_id: str, to_user_id: str, amount: Any) -> Dict[str, Any]:
        """
        Ask the gateway for a payment page settling a debt.

        Args:
            from_user_id: User paying the debt
            to_user_id: User being paid
            amount: Positive net balance owed

        Returns:
            {"data": {"authority", "paymentUrl", "amount"}} on success,
            {"error": {...}} otherwise
        """
        gateway_amount = self.to_gateway_amount(amount)

        if self.mock_mode:
            authority = self._generate_mock_authority()
            logger.info("[MOCK] Zarinpal authority %s for %s -> %s", authority, from_user_id, to_user_id)
            return {
                "data": {
                    "authority": authority,
                    "paymentUrl": self.start_pay_url(authority),
                    "amount": gateway_amount,
                    "mock": True,
                }
            }

        payload = {
            "merchant_id": self.merchant_id,
            "amount": gateway_amount,
            "description": f"Settling debt with user ID: {to_user_id}",
            "callback_url": self.callback_url,
            "metadata": {"from_user_id": from_user_id, "to_user_id": to_user_id},
        }
        body = self._post(self.REQUEST_ENDPOINT, payload)
        if "error" in body:
            return body

        data = body.get("data") or {}
        if not isinstance(data, dict) or data.get("code") != self.CODE_SUCCESS:
            logger.error("Zarinpal refused payment request: %s", body.get("errors"))
            return self._gateway_error(body, "Could not initiate payment with Zarinpal")

        authority = data["authority"]
        return {
            "data": {
                "authority": authority,
                "paymentUrl": self.start_pay_url(authority),
                "amount": gateway_amount,
            }
        }

    def verify(self, authority: str, amount: Any) -> Dict[str, Any]:
        """
        Verify a payment after the gateway redirects back.

        Args:
            authority: Authority returned by request_redirect
            amount: The same amount the payment was requested for

        Returns:
            {"data": {"code", "ref_id"}} when the payment went through,
            {"error": {...}} otherwise
        """
        if self.mock_mode:
            return {"data": {"code": self.CODE_SUCCESS, "ref_id": int(uuid.uuid4().int % 10**9), "mock": True}}

        payload = {
            "merchant_id": self.merchant_id,
            "amount": self.to_gateway_amount(amount),
            "authority": authority,
        }
        body = self._post(self.VERIFY_ENDPOINT, payload)
        if "error" in body:
            return body

        data = body.get("data") or {}
        if not isinstance(data, dict) or data.get("code") not in (self.CODE_SUCCESS, self.CODE_ALREADY_VERIFIED):
            return self._gateway_error(body, "Payment verification failed")

        return {"data": {"code": data["code"], "ref_id": data.get("ref_id")}}
