from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from .errors import ValidationError
from .models.orders import PAYMENT_OPTIONS


DEFAULT_MAX_LINE_QTY = 9999
DEFAULT_MAX_ORDER_LINES = 100

_MEMBER_ID_RE = re.compile(r"^[A-Z0-9_-]+$")
_BRANCH_CODE_RE = re.compile(r"^[A-Z0-9]+$")
_SKU_RE = re.compile(r"^[A-Z0-9_-]+$")


@dataclass(frozen=True)
class OrderLineRequest:
    sku: str
    qty: int


@dataclass(frozen=True)
class PlaceOrderRequest:
    """
    Typed body of POST /api/orders.

    Built only through parse_place_order(); anything that reaches the order
    service in this shape has already been normalized (upper-case ids, int
    quantities, known payment option).
    """
    member_id: str
    delivery_branch_code: str
    department_name: str
    payment_option: str
    lines: tuple[OrderLineRequest, ...]


def clean_text(value: Any, *, max_length: int = 1000) -> str:
    """Strip whitespace and NUL bytes; non-strings read as empty."""
    if not isinstance(value, str):
        return ""
    cleaned = value.replace("\x00", "").strip()
    return cleaned[:max_length]


def validate_member_id(value: Any) -> str:
    if not value or not isinstance(value, str):
        raise ValidationError("Invalid member ID: Member ID is required", "INVALID_MEMBER_ID")
    member_id = clean_text(value, max_length=51).upper()
    if not member_id or len(member_id) > 50:
        raise ValidationError("Invalid member ID: Member ID must be 1-50 characters", "INVALID_MEMBER_ID")
    if not _MEMBER_ID_RE.match(member_id):
        raise ValidationError("Invalid member ID: Member ID contains invalid characters", "INVALID_MEMBER_ID")
    return member_id


def validate_branch_code(value: Any) -> str:
    if not value or not isinstance(value, str):
        raise ValidationError("Invalid delivery branch: Branch code is required", "INVALID_BRANCH_CODE")
    code = clean_text(value, max_length=51).upper()
    if len(code) < 2 or len(code) > 50:
        raise ValidationError("Invalid delivery branch: Branch code must be 2-50 characters", "INVALID_BRANCH_CODE")
    if not _BRANCH_CODE_RE.match(code):
        raise ValidationError("Invalid delivery branch: Branch code contains invalid characters", "INVALID_BRANCH_CODE")
    return code


def validate_payment_option(value: Any) -> str:
    if not value or not isinstance(value, str):
        raise ValidationError("Invalid payment option: Payment option is required", "INVALID_PAYMENT_OPTION")
    option = clean_text(value, max_length=20)
    if option not in PAYMENT_OPTIONS:
        raise ValidationError(
            f"Invalid payment option: must be one of {', '.join(PAYMENT_OPTIONS)}",
            "INVALID_PAYMENT_OPTION",
        )
    return option


def validate_department_name(value: Any) -> str:
    name = clean_text(value, max_length=255)
    if not name:
        raise ValidationError("Department name is required", "MISSING_DEPARTMENT")
    return name


def validate_sku(value: Any) -> str:
    if not value or not isinstance(value, str):
        raise ValidationError("SKU is required", "INVALID_ORDER_LINES")
    sku = clean_text(value, max_length=101).upper()
    if not sku or len(sku) > 100:
        raise ValidationError("SKU must be 1-100 characters", "INVALID_ORDER_LINES")
    if not _SKU_RE.match(sku):
        raise ValidationError("SKU contains invalid characters", "INVALID_ORDER_LINES")
    return sku


def coerce_quantity(value: Any, *, max_qty: int = DEFAULT_MAX_LINE_QTY) -> int:
    """
    Strict positive integer.

    Accepts ints, integral floats (JSON clients send 2.0) and plain digit
    strings. Rejects booleans, decimals, scientific notation, zero and
    negatives.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError("Quantity must be an integer", "INVALID_ORDER_LINES")
    if isinstance(value, int):
        qty = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValidationError("Quantity must be an integer, not a decimal", "INVALID_ORDER_LINES")
        qty = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped.lstrip("-").isdigit():
            raise ValidationError("Quantity must be a plain integer", "INVALID_ORDER_LINES")
        qty = int(stripped)
    else:
        raise ValidationError("Quantity must be an integer", "INVALID_ORDER_LINES")

    if qty < 1:
        raise ValidationError("Quantity must be at least 1", "INVALID_ORDER_LINES")
    if qty > max_qty:
        raise ValidationError(f"Quantity must be at most {max_qty}", "INVALID_ORDER_LINES")
    return qty


def parse_lines(
    lines: Any,
    *,
    max_lines: int = DEFAULT_MAX_ORDER_LINES,
    max_qty: int = DEFAULT_MAX_LINE_QTY,
) -> tuple[OrderLineRequest, ...]:
    if not isinstance(lines, list):
        raise ValidationError("Invalid order lines: Order lines must be an array", "INVALID_ORDER_LINES")
    if not lines:
        raise ValidationError("Invalid order lines: At least one order line is required", "INVALID_ORDER_LINES")
    if len(lines) > max_lines:
        raise ValidationError(f"Invalid order lines: Too many order lines (max {max_lines})", "INVALID_ORDER_LINES")

    parsed = []
    for index, line in enumerate(lines):
        if not isinstance(line, dict):
            raise ValidationError(f"Invalid order lines: Invalid order line at index {index}", "INVALID_ORDER_LINES")
        try:
            sku = validate_sku(line.get("sku"))
            qty = coerce_quantity(line.get("qty"), max_qty=max_qty)
        except ValidationError as exc:
            raise ValidationError(f"Invalid order lines: Line {index}: {exc.message}", "INVALID_ORDER_LINES")
        parsed.append(OrderLineRequest(sku=sku, qty=qty))
    return tuple(parsed)


def parse_place_order(
    payload: Any,
    *,
    max_lines: int = DEFAULT_MAX_ORDER_LINES,
    max_qty: int = DEFAULT_MAX_LINE_QTY,
) -> PlaceOrderRequest:
    """Validate and normalize an order placement body."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON in request body", "INVALID_JSON")

    return PlaceOrderRequest(
        member_id=validate_member_id(payload.get("memberId")),
        delivery_branch_code=validate_branch_code(payload.get("deliveryBranchCode")),
        payment_option=validate_payment_option(payload.get("paymentOption")),
        lines=parse_lines(payload.get("lines"), max_lines=max_lines, max_qty=max_qty),
        department_name=validate_department_name(payload.get("departmentName")),
    )


def parse_order_id(value: Any, field: str = "orderId") -> int:
    if isinstance(value, bool) or value in (None, ""):
        raise ValidationError(f"{field} required", "INVALID_ORDER_ID")
    try:
        order_id = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", "INVALID_ORDER_ID")
    if order_id < 1 or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f"{field} must be a positive integer", "INVALID_ORDER_ID")
    return order_id


def parse_order_ids(values: Any) -> list[int]:
    if not isinstance(values, list) or not values:
        raise ValidationError("orderIds must be a non-empty array", "INVALID_ORDER_IDS")
    return [parse_order_id(v, "orderIds[]") for v in values]
