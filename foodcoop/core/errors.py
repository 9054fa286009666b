from __future__ import annotations


class FoodcoopError(Exception):
    """Base class for errors raised by the order workflow."""

    retryable = False


class NotFoundError(FoodcoopError, LookupError):
    pass


class OrderStateError(FoodcoopError):
    """The order is not in a state that allows the requested operation."""


class OrderAlreadyBookedError(OrderStateError):
    def __init__(self, order_id: int):
        super().__init__(f"order {order_id} already booked")
        self.order_id = order_id


class InvoiceMissingError(FoodcoopError):
    def __init__(self, order_id: int):
        super().__init__(f"order {order_id} has no invoice")
        self.order_id = order_id


class ConcurrencyConflictError(FoodcoopError):
    """Another writer changed the order first. Reload and retry."""

    retryable = True

    def __init__(self, order_id: int | None, detail: str = "order was modified concurrently"):
        super().__init__(detail if order_id is None else f"{detail} (order {order_id})")
        self.order_id = order_id
