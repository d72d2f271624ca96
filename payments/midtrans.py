import hashlib
import hmac
import logging
from collections import namedtuple
from urllib.parse import quote

import requests
from flask import current_app
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

DEFAULT_ITEM_ID = "court-reservation"
DEFAULT_ITEM_NAME = "Booking Lapangan CourtEase"
DEFAULT_CUSTOMER_NAME = "CourtEase User"
DEFAULT_CUSTOMER_EMAIL = "no-reply@courtease.id"

# Status lookup result. A missing result is represented by None.
GatewayStatus = namedtuple(
    "GatewayStatus",
    ["order_id", "transaction_status", "fraud_status", "payment_type", "status_message", "raw"],
)

SnapTransaction = namedtuple("SnapTransaction", ["token", "redirect_url"])


class MidtransError(Exception):
    pass


class MidtransUnavailable(MidtransError):
    """The gateway could not be reached (connection error, timeout)."""


class MidtransTransactionError(MidtransError):
    def __init__(self, message: str, status: int = 500, detail=None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.detail = detail


def _clean_str(value):
    return value.strip() if isinstance(value, str) else ""


def _positive_number(value):
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number <= 0:  # NaN or non-positive
        return None
    return int(number) if number.is_integer() else number


def sanitize_items(items, fallback_name, amount):
    valid = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        item_id = _clean_str(item.get("id"))
        price = _positive_number(item.get("price"))
        quantity = _positive_number(item.get("quantity"))
        if not item_id or price is None or quantity is None:
            continue
        valid.append({
            "id": item_id,
            "price": price,
            "quantity": quantity,
            "name": item.get("name") or fallback_name or DEFAULT_ITEM_NAME,
        })

    if valid:
        return valid

    return [{
        "id": DEFAULT_ITEM_ID,
        "price": amount,
        "quantity": 1,
        "name": fallback_name or DEFAULT_ITEM_NAME,
    }]


def sanitize_customer(customer):
    customer = customer or {}
    details = {
        "first_name": _clean_str(customer.get("first_name")) or DEFAULT_CUSTOMER_NAME,
        "email": _clean_str(customer.get("email")) or DEFAULT_CUSTOMER_EMAIL,
    }
    phone = _clean_str(customer.get("phone"))
    if phone:
        details["phone"] = phone
    return details


def _read_detail(resp):
    try:
        return resp.json()
    except ValueError:
        return resp.text or None


class MidtransClient:
    """
    Thin client for the two Midtrans endpoints the booking flow needs:
    Snap transaction creation and the Core API status lookup.

    Status lookups are idempotent GETs and are retried on connection errors
    and 502/503/504 with exponential backoff. Transaction creation is never
    retried.
    """

    def __init__(self, server_key, api_base_url, snap_base_url, timeout=5.0, max_retries=2, session=None):
        self.server_key = server_key
        self.api_base_url = (api_base_url or "").rstrip("/")
        self.snap_base_url = (snap_base_url or "").rstrip("/")
        self.timeout = timeout
        self.session = session or self._build_session(max_retries)

    @staticmethod
    def _build_session(max_retries: int) -> requests.Session:
        retry = Retry(
            total=max_retries,
            connect=max_retries,
            read=max_retries,
            status=max_retries,
            backoff_factor=0.3,
            status_forcelist=(502, 503, 504),
            allowed_methods=frozenset({"GET"}),
            raise_on_status=False,
        )
        session = requests.Session()
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    @property
    def _auth(self):
        # Midtrans basic auth: server key as username, empty password
        return (self.server_key, "")

    def get_transaction_status(self, order_id: str):
        if not self.server_key:
            logger.warning("Midtrans server key is not configured. Unable to verify transaction status.")
            return None

        order_id = _clean_str(order_id)
        if not order_id:
            return None

        url = f"{self.api_base_url}/v2/{quote(order_id, safe='')}/status"
        try:
            resp = self.session.get(
                url,
                headers={"Accept": "application/json"},
                auth=self._auth,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Midtrans status lookup failed order_id=%s: %s", order_id, exc)
            raise MidtransUnavailable(f"Midtrans unreachable: {exc}") from exc

        if not resp.ok:
            logger.error(
                "Failed to fetch Midtrans transaction status order_id=%s status=%s detail=%r",
                order_id, resp.status_code, _read_detail(resp),
            )
            return None

        try:
            data = resp.json()
        except ValueError:
            logger.error("Invalid Midtrans status response order_id=%s body=%r", order_id, resp.text[:500])
            return None

        if not isinstance(data, dict):
            logger.error("Unexpected Midtrans status payload order_id=%s payload=%r", order_id, data)
            return None

        return GatewayStatus(
            order_id=data.get("order_id") or order_id,
            transaction_status=data.get("transaction_status"),
            fraud_status=data.get("fraud_status"),
            payment_type=data.get("payment_type"),
            status_message=data.get("status_message"),
            raw=data,
        )

    def create_transaction(self, order_id, amount, court_name=None, customer=None, items=None, finish_url=None):
        if not self.server_key:
            raise MidtransTransactionError(
                "Midtrans is not configured. Set MIDTRANS_SERVER_KEY on the server.", status=500
            )

        order_id = _clean_str(order_id)
        if not order_id:
            raise MidtransTransactionError("Invalid Midtrans order id.", status=400)

        gross_amount = _positive_number(amount)
        if gross_amount is None:
            raise MidtransTransactionError("Invalid payment amount.", status=400)

        payload = {
            "transaction_details": {"order_id": order_id, "gross_amount": gross_amount},
            "customer_details": sanitize_customer(customer),
            "item_details": sanitize_items(items, court_name, gross_amount),
            "credit_card": {"secure": True},
        }
        if _clean_str(finish_url):
            payload["callbacks"] = {"finish": finish_url.strip()}

        try:
            resp = self.session.post(
                f"{self.snap_base_url}/snap/v1/transactions",
                json=payload,
                headers={"Accept": "application/json"},
                auth=self._auth,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise MidtransTransactionError("Could not reach Midtrans.", status=502, detail=str(exc)) from exc

        if not resp.ok:
            raise MidtransTransactionError(
                "Failed to create Midtrans transaction.", status=502, detail=resp.text or None
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise MidtransTransactionError(
                "Midtrans returned an invalid response.", status=502, detail=str(exc)
            ) from exc

        if not isinstance(data, dict):
            raise MidtransTransactionError("Midtrans returned an invalid response.", status=502)

        token = _clean_str(data.get("token")) or _clean_str(data.get("snap_token"))
        if not token:
            raise MidtransTransactionError("Midtrans returned an invalid response.", status=502, detail=data)

        return SnapTransaction(token=token, redirect_url=_clean_str(data.get("redirect_url")) or None)

    def notification_signature(self, order_id, status_code, gross_amount) -> str:
        raw = f"{order_id}{status_code}{gross_amount}{self.server_key}"
        return hashlib.sha512(raw.encode("utf-8")).hexdigest()

    def verify_notification_signature(self, payload: dict, signature=None) -> bool:
        """
        Midtrans signs notifications with
        sha512(order_id + status_code + gross_amount + server_key).
        """
        if not self.server_key:
            return False
        signature = signature or payload.get("signature_key")
        order_id = payload.get("order_id")
        status_code = payload.get("status_code")
        gross_amount = payload.get("gross_amount")
        if not signature or not order_id or not status_code or not gross_amount:
            return False
        expected = self.notification_signature(order_id, status_code, gross_amount)
        return hmac.compare_digest(expected, str(signature))


def get_midtrans_client() -> MidtransClient:
    """Per-app client built from config; tests swap app.extensions['midtrans']."""
    client = current_app.extensions.get("midtrans")
    if client is None:
        cfg = current_app.config
        client = MidtransClient(
            server_key=cfg.get("MIDTRANS_SERVER_KEY"),
            api_base_url=cfg.get("MIDTRANS_API_BASE_URL"),
            snap_base_url=cfg.get("MIDTRANS_SNAP_BASE_URL"),
            timeout=cfg.get("MIDTRANS_TIMEOUT_SECONDS", 5),
            max_retries=cfg.get("MIDTRANS_MAX_RETRIES", 2),
        )
        current_app.extensions["midtrans"] = client
    return client
