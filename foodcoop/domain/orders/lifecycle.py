from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from foodcoop.core.errors import OrderStateError
from foodcoop.core.security import Actor
from foodcoop.domain.orders.commands import OrderCreateRequest
from foodcoop.domain.orders.queries import OrderState, ensure_version, is_finished, is_open, now_utc
from foodcoop.domain.orders.selection import add_order_articles, load_articles
from foodcoop.domain.orders.sums import update_group_order_prices
from foodcoop.domain.pricing import current_prices
from foodcoop.notifications.messenger import (
    GroupNotice,
    Messenger,
    OrderFinishedNotice,
    get_messenger,
    notify_order_finished,
)
from foodcoop.persistence.models import OrderModel, SupplierModel
from foodcoop.persistence.pg import flush_or_conflict, run_after_commit

logger = logging.getLogger(__name__)


@dataclass
class OrderCreateResult:
    order: OrderModel | None = None
    errors: dict[str, list[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.order is not None and not self.errors


def _to_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def create_order(session: Session, request: OrderCreateRequest, actor: Actor) -> OrderCreateResult:
    """Open a new order, or report field errors without writing anything."""
    errors: dict[str, list[str]] = {}
    starts = _to_utc(request.starts)
    ends = _to_utc(request.ends)

    supplier = None
    if request.supplier_id is None:
        errors.setdefault("supplier_id", []).append("can't be blank")
    else:
        supplier = session.get(SupplierModel, request.supplier_id)
        if supplier is None:
            errors.setdefault("supplier_id", []).append("does not exist")

    if starts is None:
        errors.setdefault("starts", []).append("can't be blank")
    if starts is not None and ends is not None and ends <= starts:
        errors.setdefault("ends", []).append("must be after the start (or stay empty)")

    articles, missing = load_articles(session, request.article_ids)
    if not request.article_ids:
        errors.setdefault("article_ids", []).append("at least one article must be selected")
    if missing:
        errors.setdefault("article_ids", []).append(f"unknown articles: {missing}")
    if supplier is not None:
        foreign = [article.id for article in articles if article.supplier_id != supplier.id]
        if foreign:
            errors.setdefault("article_ids", []).append(f"articles {foreign} belong to another supplier")

    if errors:
        logger.info("order creation rejected: %s", errors)
        return OrderCreateResult(errors=errors)

    order = OrderModel(
        supplier=supplier,
        note=request.note,
        starts=starts,
        ends=ends,
        state=OrderState.open.value,
        booked=False,
        updated_by=actor.id,
        updated_at=now_utc(),
    )
    add_order_articles(order, articles)
    session.add(order)
    session.flush()
    logger.info("order=%s opened for supplier=%s with %d articles", order.id, supplier.name, len(articles))
    return OrderCreateResult(order=order)


def _finished_notice(order: OrderModel) -> OrderFinishedNotice:
    return OrderFinishedNotice(
        order_id=order.id,
        supplier_name=order.supplier.name,
        ends=order.ends.isoformat() if order.ends else "",
        groups=tuple(
            GroupNotice(
                ordergroup_id=group_order.ordergroup_id,
                ordergroup_name=group_order.ordergroup.name,
                group_order_id=group_order.id,
                price_cents=group_order.price_cents,
                recipients=tuple(str(r) for r in (group_order.ordergroup.notify_recipients or [])),
            )
            for group_order in order.group_orders
        ),
    )


def finish_order(
    session: Session,
    order: OrderModel,
    actor: Actor,
    messenger: Messenger | None = None,
    expected_version: int | None = None,
) -> bool:
    """Close the order for group demand and freeze its prices.

    Returns False when the order was already finished. The "order finished"
    messages go out only after the surrounding transaction commits.
    """
    if is_finished(order):
        logger.info("order=%s already finished, nothing to do", order.id)
        return False
    if not is_open(order):
        raise OrderStateError(f"order {order.id} is {order.state} and cannot be finished")
    ensure_version(order, expected_version)

    prices = current_prices(session, [oa.article_id for oa in order.order_articles])
    for oa in order.order_articles:
        oa.article_price = prices.get(oa.article_id)
        if oa.article_price is None:
            logger.warning("order=%s article=%s has no price to freeze", order.id, oa.article_id)

    finished_at = now_utc()
    order.state = OrderState.finished.value
    order.ends = finished_at
    order.updated_by = actor.id
    order.updated_at = finished_at
    flush_or_conflict(session, order.id)

    update_group_order_prices(session, order)
    flush_or_conflict(session, order.id)

    notice = _finished_notice(order)
    target = messenger or get_messenger()
    run_after_commit(session, lambda: notify_order_finished(target, notice))
    logger.info("order=%s finished by %s", order.id, actor.id)
    return True
