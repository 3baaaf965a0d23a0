from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from .models.orders import VALID_PAYMENT_METHODS
from .services.order_service import OrderLine


# Upper bound for any single amount or price (minor units).
# Keeps totals well inside a 64-bit column.
MAX_AMOUNT = 999_999_999
MAX_QUANTITY = 9_999


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class OrderRequest:
    lines: list[OrderLine]
    total_amount: int
    payment_method: str
    transaction_id: str | None = None


@dataclass(frozen=True)
class ChargeRequest:
    uid: str
    amount: int
    transaction_id: str | None = None


def coerce_int(field: str, value: Any, *, minimum: int = 0, maximum: int = MAX_AMOUNT) -> int:
    """
    Strict integer coercion.

    Accepts ints and plain digit strings. Rejects bools, floats,
    decimals and scientific notation.
    """
    if value is None:
        raise ValidationError(f"{field} is required")

    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if result < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    if result > maximum:
        raise ValidationError(f"{field} must be at most {maximum}")
    return result


def coerce_str(field: str, value: Any, *, max_length: int = 255) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value


def coerce_transaction_id(value: Any, *, field: str = "transactionId") -> str | None:
    """Optional client idempotency key; any UUID spelling, normalized to canonical form."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a UUID string")
    try:
        return str(uuid.UUID(value.strip()))
    except ValueError:
        raise ValidationError(f"{field} must be a UUID string")


def _require_object(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def parse_order_request(payload: Any) -> OrderRequest:
    """
    Validate POST /orders body:
    {
        "details": [{"productId", "name", "price", "quantity"}, ...],
        "totalAmount": int,
        "paymentMethod": "cash" | "prepaid",
        "transactionId": optional UUID
    }
    """
    payload = _require_object(payload)

    details = payload.get("details")
    if not isinstance(details, list) or not details:
        raise ValidationError("details must be a non-empty list")

    lines: list[OrderLine] = []
    for index, raw in enumerate(details):
        if not isinstance(raw, dict):
            raise ValidationError(f"details[{index}] must be an object")
        lines.append(
            OrderLine(
                product_id=coerce_str(f"details[{index}].productId", raw.get("productId"), max_length=64),
                name=coerce_str(f"details[{index}].name", raw.get("name")),
                price=coerce_int(f"details[{index}].price", raw.get("price")),
                quantity=coerce_int(f"details[{index}].quantity", raw.get("quantity"), minimum=1, maximum=MAX_QUANTITY),
            )
        )

    method = payload.get("paymentMethod")
    if method not in VALID_PAYMENT_METHODS:
        raise ValidationError(f"paymentMethod must be one of {list(VALID_PAYMENT_METHODS)}")

    return OrderRequest(
        lines=lines,
        total_amount=coerce_int("totalAmount", payload.get("totalAmount")),
        payment_method=method,
        transaction_id=coerce_transaction_id(payload.get("transactionId")),
    )


def parse_charge_request(payload: Any) -> ChargeRequest:
    """Validate PUT /admin/prepaid/charge body: {"uid", "amount" > 0, "transactionId"?}."""
    payload = _require_object(payload)
    return ChargeRequest(
        uid=coerce_str("uid", payload.get("uid"), max_length=128),
        amount=coerce_int("amount", payload.get("amount"), minimum=1),
        transaction_id=coerce_transaction_id(payload.get("transactionId")),
    )
