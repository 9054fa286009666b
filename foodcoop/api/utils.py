from __future__ import annotations

from datetime import datetime, timezone

from foodcoop.persistence.models import OrderModel


def iso_utc(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def serialize_order(order: OrderModel) -> dict:
    return {
        "id": order.id,
        "supplier_id": order.supplier_id,
        "supplier": order.supplier.name,
        "state": order.state,
        "booked": order.booked,
        "starts": iso_utc(order.starts),
        "ends": iso_utc(order.ends),
        "note": order.note,
        "version": order.lock_version,
        "updated_by": order.updated_by,
        "has_invoice": order.invoice is not None,
    }
