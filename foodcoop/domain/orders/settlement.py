from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from foodcoop.core.config import get_settings
from foodcoop.core.errors import InvoiceMissingError, OrderAlreadyBookedError, OrderStateError
from foodcoop.core.security import Actor
from foodcoop.domain.accounting.transactions import post_financial_transaction
from foodcoop.domain.orders.commands import InvoiceCreateRequest
from foodcoop.domain.orders.queries import OrderState, ensure_version, is_finished, is_open, now_utc
from foodcoop.domain.orders.sums import update_group_order_prices
from foodcoop.persistence.models import FinancialTransactionModel, InvoiceModel, OrderModel
from foodcoop.persistence.pg import flush_or_conflict

logger = logging.getLogger(__name__)


def transaction_note(order: OrderModel) -> str:
    fmt = get_settings().date_format
    starts = order.starts.strftime(fmt)
    ends = order.ends.strftime(fmt) if order.ends else "-"
    return f"Order: {order.supplier.name}, from {starts} to {ends}"


def attach_invoice(session: Session, order: OrderModel, request: InvoiceCreateRequest) -> InvoiceModel:
    if is_open(order):
        raise OrderStateError(f"order {order.id} is still open, no invoice yet")
    if order.booked:
        raise OrderAlreadyBookedError(order.id)
    invoice = order.invoice
    if invoice is None:
        invoice = InvoiceModel(created_at=now_utc())
        order.invoice = invoice
    invoice.number = request.number
    invoice.amount_cents = request.amount_cents
    invoice.deposit_cents = request.deposit_cents
    invoice.deposit_credit_cents = request.deposit_credit_cents
    invoice.note = request.note
    session.flush()
    return invoice


def balance_order(
    session: Session,
    order: OrderModel,
    actor: Actor,
    expected_version: int | None = None,
) -> list[FinancialTransactionModel]:
    """Debit every participating group with its share and mark the order booked.

    Nothing is written unless every precondition holds; the transactions and
    the order update commit or roll back together with the caller's session.
    """
    if order.booked:
        raise OrderAlreadyBookedError(order.id)
    if not is_finished(order):
        raise OrderStateError(f"order {order.id} is {order.state}, only finished orders can be balanced")
    if order.invoice is None:
        raise InvoiceMissingError(order.id)
    ensure_version(order, expected_version)

    prices = update_group_order_prices(session, order)
    note = transaction_note(order)
    transactions = []
    for group_order in order.group_orders:
        price = prices[group_order.ordergroup_id]
        transactions.append(
            post_financial_transaction(
                session,
                group_order.ordergroup,
                -price,
                note,
                actor,
                order=order,
            )
        )

    order.booked = True
    order.state = OrderState.closed.value
    order.updated_by = actor.id
    order.updated_at = now_utc()
    flush_or_conflict(session, order.id)
    logger.info(
        "order=%s balanced by %s: %d groups debited, total=%s",
        order.id,
        actor.id,
        len(transactions),
        sum(prices.values()),
    )
    return transactions
