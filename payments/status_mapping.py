"""Translate Midtrans transaction vocabulary into booking state.

Midtrans reports a ``transaction_status`` (and for card captures a
``fraud_status``). The booking row stores two separate fields,
``payment_status`` and ``status``; :func:`map_status` is the single place that
decides which pair a gateway outcome corresponds to.
"""
from collections import namedtuple

from models.booking import (
    PENDING,
    CONFIRMED,
    CANCELLED,
    PAYMENT_PENDING,
    PAYMENT_WAITING_CONFIRMATION,
    PAYMENT_PAID,
    PAYMENT_CANCELLED,
    PAYMENT_STATUSES,
)

StatusMapping = namedtuple("StatusMapping", ["payment_status", "booking_status"])

PAID_CONFIRMED = StatusMapping(PAYMENT_PAID, CONFIRMED)
WAITING = StatusMapping(PAYMENT_WAITING_CONFIRMATION, PENDING)
STILL_PENDING = StatusMapping(PAYMENT_PENDING, PENDING)
VOIDED = StatusMapping(PAYMENT_CANCELLED, CANCELLED)

_TRANSACTION_STATUS_MAP = {
    "settlement": PAID_CONFIRMED,
    "authorize": WAITING,
    "pending": STILL_PENDING,
    "expire": VOIDED,
    "expired": VOIDED,
    "deny": VOIDED,
    "cancel": VOIDED,
    "failure": VOIDED,
    # money went back to the customer; the slot is released
    "refund": VOIDED,
    "partial_refund": VOIDED,
    "chargeback": VOIDED,
    "partial_chargeback": VOIDED,
}

# Reporting screens used a wider vocabulary; fold it onto the stored one.
_LEGACY_PAYMENT_STATUS = {
    "processing": PAYMENT_WAITING_CONFIRMATION,
    "completed": PAYMENT_PAID,
    "failed": PAYMENT_CANCELLED,
    "refunded": PAYMENT_CANCELLED,
    "unpaid": PAYMENT_PENDING,
}


def _normalize(value) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


def map_status(transaction_status, fraud_status=None):
    """
    Returns a StatusMapping for a Midtrans (transaction_status, fraud_status)
    pair, or None when the transaction status is unknown (no update should be
    attempted).
    """
    tx = _normalize(transaction_status)
    if not tx:
        return None

    if tx == "capture":
        if _normalize(fraud_status) == "challenge":
            return WAITING
        return PAID_CONFIRMED

    return _TRANSACTION_STATUS_MAP.get(tx)


def normalize_payment_status(value):
    status = _normalize(value)
    if status in PAYMENT_STATUSES:
        return status
    return _LEGACY_PAYMENT_STATUS.get(status)
