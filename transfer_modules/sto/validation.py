"""
Input validation shared by the STO components.

Every function raises ``ValidationError`` naming the offending field;
none of them touch the database.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from transfer_kernel.exceptions import ValidationError
from transfer_modules.sto.models import LineQuantity, LineRequest


def to_decimal(value: Any, field: str) -> Decimal:
    """Coerce an int, str or Decimal to a finite Decimal."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be numeric", field=field)
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be numeric, got {value!r}", field=field)
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite", field=field)
    return result


def to_uuid(value: Any, field: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        raise ValidationError(f"{field} is not a valid identifier: {value!r}", field=field)


def outlet_id(value: Any, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", field=field)
    text = str(value).strip()
    if len(text) > 64:
        raise ValidationError(f"{field} exceeds 64 characters", field=field)
    return text


def line_requests(lines: Iterable[LineRequest | dict] | None) -> list[LineRequest]:
    """Normalize requested lines for order creation.

    Accepts ``LineRequest`` instances or dicts with ``item_id``, ``quantity``
    and ``unit_price``.
    """
    normalized: list[LineRequest] = []
    for index, raw in enumerate(lines or ()):
        if isinstance(raw, dict):
            item_id = raw.get("item_id")
            quantity = raw.get("quantity")
            unit_price = raw.get("unit_price", Decimal("0"))
        else:
            item_id, quantity, unit_price = raw.item_id, raw.quantity, raw.unit_price
        if item_id is None or not str(item_id).strip():
            raise ValidationError(f"lines[{index}].item_id is required", field="item_id")
        qty = to_decimal(quantity, "quantity")
        if qty <= 0:
            raise ValidationError(
                f"lines[{index}].quantity must be greater than zero, got {qty}",
                field="quantity",
            )
        price = to_decimal(unit_price, "unit_price")
        if price < 0:
            raise ValidationError(
                f"lines[{index}].unit_price cannot be negative", field="unit_price",
            )
        normalized.append(LineRequest(str(item_id).strip(), qty, price))

    if not normalized:
        raise ValidationError("An order needs at least one line", field="lines")
    return normalized


def line_quantities(
    quantities: Iterable[LineQuantity | tuple] | None,
    known_line_ids: set[UUID],
) -> list[LineQuantity]:
    """Normalize ``(line_id, quantity)`` pairs for a shipment or receipt.

    Rejects empty requests, unknown or repeated line ids and
    non-positive quantities.
    """
    normalized: list[LineQuantity] = []
    seen: set[UUID] = set()
    for raw in quantities or ():
        if isinstance(raw, LineQuantity):
            line_id, quantity = raw.line_id, raw.quantity
        else:
            line_id, quantity = raw
        line_id = to_uuid(line_id, "line_id")
        if line_id not in known_line_ids:
            raise ValidationError(
                f"Line {line_id} does not belong to this order", field="line_id",
            )
        if line_id in seen:
            raise ValidationError(
                f"Line {line_id} appears more than once", field="line_id",
            )
        seen.add(line_id)
        qty = to_decimal(quantity, "quantity")
        if qty <= 0:
            raise ValidationError(
                f"Quantity for line {line_id} must be greater than zero, got {qty}",
                field="quantity",
            )
        normalized.append(LineQuantity(line_id, qty))

    if not normalized:
        raise ValidationError("At least one line quantity is required", field="line_quantities")
    return normalized


def quantities_fingerprint(kind: str, quantities: list[LineQuantity]) -> dict:
    """Canonical payload used to hash a shipment or receipt request."""
    return {
        "kind": kind,
        "lines": sorted([str(q.line_id), q.quantity] for q in quantities),
    }
