"""
Idempotency key generation utilities.

Inventory movements are keyed so that a replayed batch never debits or
credits the same stock twice.
"""

from uuid import UUID


def generate_idempotency_key(
    producer: str,
    event_type: str,
    event_id: UUID | str,
) -> str:
    """
    Generate an idempotency key.

    Format: producer:event_type:event_id

    Example:
        >>> generate_idempotency_key("sto", "shipment.line", "SHP-2401-0001/1")
        "sto:shipment.line:SHP-2401-0001/1"
    """
    return f"{producer}:{event_type}:{event_id}"


def parse_idempotency_key(key: str) -> tuple[str, str, str]:
    """
    Parse an idempotency key into (producer, event_type, event_id).

    Raises:
        ValueError: If key format is invalid.
    """
    parts = key.split(":", 2)
    if len(parts) != 3:
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[0], parts[1], parts[2]
