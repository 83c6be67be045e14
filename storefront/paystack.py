from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import requests
from requests import RequestException
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import Settings
from .errors import BadRequestError, ConfigurationError, PaymentGatewayError
from .utils import get_logger, round_amount

logger = get_logger(__name__)

# Paystack amounts are in the currency's minor unit (kobo for Naira)
MINOR_UNITS_PER_MAJOR = 100


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * MINOR_UNITS_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount) -> Decimal:
    return round_amount(Decimal(str(amount)) / MINOR_UNITS_PER_MAJOR)


def callback_url_for(frontend_success_url: str) -> str:
    base = frontend_success_url
    if base.endswith("/success.html"):
        base = base[: -len("/success.html")]
    return f"{base.rstrip('/')}/checkout/success"


def http_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type(RequestException),
    )


class PaystackClient:
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.base_url = settings.paystack_base_url.rstrip("/")
        self.timeout = settings.paystack_timeout
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        if not self.settings.paystack_secret_key:
            raise ConfigurationError("Payment gateway secret key is not configured")
        return {
            "Authorization": f"Bearer {self.settings.paystack_secret_key}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _unwrap(resp: requests.Response) -> dict:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not resp.ok or not body.get("status"):
            message = body.get("message") or f"Payment gateway rejected the request ({resp.status_code})"
            logger.warning("Paystack error %s: %s", resp.status_code, message)
            raise BadRequestError(message)
        return body.get("data") or {}

    def initialize_transaction(
        self,
        email: str,
        amount: Decimal,
        product_id: int,
        user_id: Optional[int] = None,
        user_email: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> dict:
        """Open a payment session and return its authorization URL and reference.

        Never retried: a second initialize call could open a second session.
        """
        headers = self._headers()
        if not self.settings.frontend_success_url:
            raise ConfigurationError("FRONTEND_SUCCESS_URL is not configured")

        payload = {
            "email": email,
            "amount": to_minor_units(amount),
            "metadata": {"productId": product_id, "userId": user_id, "userEmail": user_email},
            "callback_url": callback_url_for(self.settings.frontend_success_url),
        }
        if reference:
            payload["reference"] = reference

        url = f"{self.base_url}/transaction/initialize"
        logger.info("Paystack POST %s (product %s, user %s)", url, product_id, user_id)
        try:
            resp = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
        except RequestException as e:
            logger.error("Paystack initialize failed: %s", e)
            raise PaymentGatewayError("Payment gateway is unavailable") from e

        data = self._unwrap(resp)
        return {"authorization_url": data.get("authorization_url"), "reference": data.get("reference")}

    @http_retry()
    def _get(self, url: str, headers: dict) -> requests.Response:
        return self.session.get(url, headers=headers, timeout=self.timeout)

    def verify_transaction(self, reference: str) -> dict:
        headers = self._headers()
        url = f"{self.base_url}/transaction/verify/{reference}"
        logger.info("Paystack GET %s", url)
        try:
            resp = self._get(url, headers)
        except RequestException as e:
            logger.error("Paystack verify failed for %s: %s", reference, e)
            raise PaymentGatewayError("Payment gateway is unavailable") from e
        return self._unwrap(resp)
