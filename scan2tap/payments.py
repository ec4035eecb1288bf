"""
Pro plan payments through Paystack: transaction initialize, verify and
webhook signature checks.
"""
import hashlib
import hmac
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from .config import Settings
from .errors import ExternalServiceError

logger = logging.getLogger(__name__)


def plan_amount(billing_cycle: str) -> float:
    return Settings.PRO_ANNUAL_PRICE if billing_cycle == "annually" else Settings.PRO_MONTHLY_PRICE


class PaystackGateway:
    def __init__(self, secret_key: Optional[str] = None, api_base: Optional[str] = None, timeout: Optional[int] = None):
        self.secret_key = secret_key if secret_key is not None else Settings.PAYSTACK_SECRET_KEY
        self.api_base = (api_base or Settings.PAYSTACK_API_BASE).rstrip("/")
        self.timeout = timeout or Settings.REQUEST_TIMEOUT

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.secret_key}", "Content-Type": "application/json"}

    def authorize(self, email: str, billing_cycle: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Initialize a Pro subscription transaction and return {reference, authorization_url}.

        Nothing is charged yet: the customer still has to complete checkout at
        authorization_url, and only `verify` (or the charge.success webhook)
        says whether they did.
        """
        if not self.secret_key:
            raise ExternalServiceError("Payment service not configured")
        if not email:
            raise ExternalServiceError("An email address is required for payment")
        # amount in pesewas
        amount = int(round(plan_amount(billing_cycle) * 100))
        payload = {
            "email": email,
            "amount": amount,
            "currency": "GHS",
            "metadata": {"plan": "pro", "billing_cycle": billing_cycle, **(metadata or {})},
        }
        try:
            r = requests.post(
                f"{self.api_base}/transaction/initialize",
                headers=self.headers,
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Paystack unreachable: %s", e)
            raise ExternalServiceError("Payment service unavailable")
        if r.status_code >= 300:
            logger.error("Paystack returned %s: %s", r.status_code, r.text[:200])
            raise ExternalServiceError("Payment authorization failed")
        data = r.json().get("data") or {}
        if not data.get("reference"):
            raise ExternalServiceError("Payment authorization failed")
        return {"reference": data["reference"], "authorization_url": data.get("authorization_url")}

    def verify(self, reference: str) -> Dict[str, Any]:
        """Look up a transaction; data["status"] is "success" once the customer has paid."""
        if not self.secret_key:
            raise ExternalServiceError("Payment service not configured")
        try:
            r = requests.get(
                f"{self.api_base}/transaction/verify/{quote(reference, safe='')}",
                headers=self.headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Paystack unreachable: %s", e)
            raise ExternalServiceError("Payment service unavailable")
        if r.status_code >= 300:
            logger.error("Paystack verify for %s returned %s: %s", reference, r.status_code, r.text[:200])
            raise ExternalServiceError("Payment verification failed")
        return r.json().get("data") or {}

    def signature_valid(self, raw_body: bytes, signature: Optional[str]) -> bool:
        """Paystack signs webhook bodies with HMAC-SHA512 of the secret key."""
        if not self.secret_key or not signature:
            return False
        expected = hmac.new(self.secret_key.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)
