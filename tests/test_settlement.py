from __future__ import annotations

from datetime import datetime, timezone

import pytest

import foodcoop.persistence.pg as pg
from foodcoop.core.errors import (
    ConcurrencyConflictError,
    InvoiceMissingError,
    OrderAlreadyBookedError,
    OrderStateError,
)
from foodcoop.core.security import Actor
from foodcoop.domain.accounting.transactions import list_transactions, post_financial_transaction
from foodcoop.domain.orders import (
    OrderState,
    attach_invoice,
    balance_order,
    create_order,
    finish_order,
    get_order,
    list_orders,
    submit_group_order,
)
from foodcoop.domain.orders.commands import GroupOrderItem, InvoiceCreateRequest, OrderCreateRequest
from foodcoop.domain.orders.settlement import transaction_note
from foodcoop.notifications.messenger import OutboxMessenger
from foodcoop.persistence.models import OrdergroupModel
from foodcoop.reconciliation.rules import run_order_reconciliation


@pytest.fixture()
def invoiced(scenario, actor):
    session = scenario.session
    for group in (scenario.alpha, scenario.beta):
        post_financial_transaction(session, group, 5000, "Top-up", actor)
    finish_order(session, scenario.order, actor, messenger=OutboxMessenger())
    attach_invoice(session, scenario.order, InvoiceCreateRequest(number="INV-1", amount_cents=2000))
    return scenario


def test_balance_debits_each_group_and_books_the_order(invoiced, actor):
    session, order = invoiced.session, invoiced.order

    transactions = balance_order(session, order, actor)

    assert sorted((tx.ordergroup_id, tx.amount_cents) for tx in transactions) == sorted(
        [(invoiced.alpha.id, -850), (invoiced.beta.id, -1418)]
    )
    assert invoiced.alpha.account_balance_cents == 5000 - 850
    assert invoiced.beta.account_balance_cents == 5000 - 1418
    assert order.booked is True
    assert order.state == OrderState.closed.value
    assert order.updated_by == actor.id
    assert [o.id for o in list_orders(session, "closed")] == [order.id]
    assert all(result.passed for result in run_order_reconciliation(session, order, list_transactions(session)))


def test_balance_memo_names_order_and_window(invoiced, actor):
    order = invoiced.order
    note = transaction_note(order)
    assert note.startswith("Order: Green Farm, from 01.03.2026 to ")
    transactions = balance_order(invoiced.session, order, actor)
    assert {tx.note for tx in transactions} == {note}


def test_balance_twice_fails_without_touching_accounts(invoiced, actor):
    session, order = invoiced.session, invoiced.order
    balance_order(session, order, actor)
    balances = (invoiced.alpha.account_balance_cents, invoiced.beta.account_balance_cents)
    count = len(list_transactions(session))

    with pytest.raises(OrderAlreadyBookedError, match="already booked"):
        balance_order(session, order, actor)

    assert (invoiced.alpha.account_balance_cents, invoiced.beta.account_balance_cents) == balances
    assert len(list_transactions(session)) == count


def test_balance_requires_a_finished_order(scenario, actor):
    with pytest.raises(OrderStateError):
        balance_order(scenario.session, scenario.order, actor)
    assert list_transactions(scenario.session) == []


def test_balance_requires_an_invoice(scenario, actor):
    finish_order(scenario.session, scenario.order, actor, messenger=OutboxMessenger())
    with pytest.raises(InvoiceMissingError):
        balance_order(scenario.session, scenario.order, actor)
    assert scenario.order.booked is False
    assert list_transactions(scenario.session) == []


def test_invoice_needs_a_finished_order(scenario):
    with pytest.raises(OrderStateError):
        attach_invoice(scenario.session, scenario.order, InvoiceCreateRequest(amount_cents=100))


def test_balancing_the_same_order_from_two_sessions_books_it_once(invoiced, actor):
    order_id, alpha_id = invoiced.order.id, invoiced.alpha.id
    invoiced.session.commit()

    first = pg.SessionLocal()
    second = pg.SessionLocal()
    try:
        order_a = get_order(first, order_id)
        order_b = get_order(second, order_id)
        assert order_b.booked is False

        balance_order(first, order_a, actor)
        first.commit()

        with pytest.raises(ConcurrencyConflictError):
            balance_order(second, order_b, actor)
        second.rollback()
    finally:
        first.close()
        second.close()

    with pg.session_scope() as check:
        assert check.get(OrdergroupModel, alpha_id).account_balance_cents == 5000 - 850
        assert len([tx for tx in list_transactions(check) if tx.order_id == order_id]) == 2


def test_balancing_two_orders_of_one_group_keeps_both_debits(scenario, actor):
    session, catalog, alpha = scenario.session, scenario.catalog, scenario.alpha
    second_order = create_order(
        session,
        OrderCreateRequest(
            supplier_id=catalog.supplier.id,
            starts=datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc),
            article_ids=[catalog.apples.id],
        ),
        actor,
    ).order
    submit_group_order(
        session,
        second_order,
        alpha,
        [GroupOrderItem(article_id=catalog.apples.id, quantity=1)],
        Actor(id="alice"),
    )
    for order in (scenario.order, second_order):
        finish_order(session, order, actor, messenger=OutboxMessenger())
        attach_invoice(session, order, InvoiceCreateRequest(amount_cents=100))
    order_ids = (scenario.order.id, second_order.id)
    alpha_id = alpha.id
    session.commit()

    first = pg.SessionLocal()
    second = pg.SessionLocal()
    try:
        order_a = get_order(first, order_ids[0])
        order_b = get_order(second, order_ids[1])
        # both sessions have read the balance before either posts
        assert first.get(OrdergroupModel, alpha_id).account_balance_cents == 0
        assert second.get(OrdergroupModel, alpha_id).account_balance_cents == 0

        balance_order(first, order_a, actor)
        first.commit()
        balance_order(second, order_b, actor)
        second.commit()
    finally:
        first.close()
        second.close()

    with pg.session_scope() as check:
        assert check.get(OrdergroupModel, alpha_id).account_balance_cents == -(850 + 248)
