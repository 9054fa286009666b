from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from foodcoop.core.errors import NotFoundError, OrderStateError
from foodcoop.core.security import Actor
from foodcoop.domain.orders.commands import GroupOrderItem
from foodcoop.domain.orders.queries import ensure_version, group_order_for, is_open, now_utc
from foodcoop.domain.orders.sums import update_group_order_price
from foodcoop.domain.pricing import article_order_quantity
from foodcoop.persistence.models import (
    ArticleModel,
    GroupOrderArticleModel,
    GroupOrderModel,
    OrderArticleModel,
    OrdergroupModel,
    OrderModel,
)
from foodcoop.persistence.pg import flush_or_conflict

logger = logging.getLogger(__name__)

OrderQuantityRule = Callable[[ArticleModel, int, int], int]


@dataclass(frozen=True)
class GroupDemand:
    article_id: int
    quantity: int
    tolerance: int


@dataclass(frozen=True)
class ArticleTotals:
    quantity: int = 0
    tolerance: int = 0


def aggregate_group_order_articles(rows: Iterable[GroupDemand]) -> dict[int, ArticleTotals]:
    totals: dict[int, ArticleTotals] = {}
    for row in rows:
        current = totals.get(row.article_id, ArticleTotals())
        totals[row.article_id] = ArticleTotals(
            quantity=current.quantity + row.quantity,
            tolerance=current.tolerance + row.tolerance,
        )
    return totals


def _group_demand(session: Session, order: OrderModel) -> list[GroupDemand]:
    # Autoflush is off, pending group order lines must be visible here.
    session.flush()
    stmt = (
        select(
            OrderArticleModel.article_id,
            GroupOrderArticleModel.quantity,
            GroupOrderArticleModel.tolerance,
        )
        .join(GroupOrderModel, GroupOrderArticleModel.group_order_id == GroupOrderModel.id)
        .join(OrderArticleModel, GroupOrderArticleModel.order_article_id == OrderArticleModel.id)
        .where(GroupOrderModel.order_id == order.id)
        .order_by(GroupOrderArticleModel.id)
    )
    return [
        GroupDemand(article_id=article_id, quantity=quantity, tolerance=tolerance)
        for article_id, quantity, tolerance in session.execute(stmt).all()
    ]


def update_quantities(
    session: Session,
    order: OrderModel,
    rule: OrderQuantityRule = article_order_quantity,
) -> list[OrderArticleModel]:
    """Recompute quantity, tolerance and units to order of every OrderArticle.

    Totals are rebuilt from the group order lines each time. Articles nobody
    ordered end up with zero totals and stay in the order.
    """
    totals = aggregate_group_order_articles(_group_demand(session, order))
    changed = 0
    for oa in order.order_articles:
        article_totals = totals.get(oa.article_id, ArticleTotals())
        units = rule(oa.article, article_totals.quantity, article_totals.tolerance)
        if (oa.quantity, oa.tolerance, oa.units_to_order) != (
            article_totals.quantity,
            article_totals.tolerance,
            units,
        ):
            changed += 1
        oa.quantity = article_totals.quantity
        oa.tolerance = article_totals.tolerance
        oa.units_to_order = units

    # Touch the order so its version check guards the whole batch.
    order.updated_at = now_utc()
    flush_or_conflict(session, order.id)
    logger.debug("order=%s quantities recomputed, %d order articles changed", order.id, changed)
    return list(order.order_articles)


def submit_group_order(
    session: Session,
    order: OrderModel,
    ordergroup: OrdergroupModel,
    items: list[GroupOrderItem],
    actor: Actor,
    expected_version: int | None = None,
) -> GroupOrderModel:
    """Store one group's requested quantities and refresh the order totals."""
    if not is_open(order):
        raise OrderStateError(f"order {order.id} is {order.state}, group orders are closed")
    ensure_version(order, expected_version)

    by_article = {oa.article_id: oa for oa in order.order_articles}
    unknown = sorted({item.article_id for item in items} - set(by_article))
    if unknown:
        raise NotFoundError(f"articles {unknown} are not part of order {order.id}")

    group_order = group_order_for(session, order, ordergroup)
    if group_order is None:
        group_order = GroupOrderModel(
            order=order,
            ordergroup=ordergroup,
            price_cents=0,
            updated_at=now_utc(),
        )
        session.add(group_order)

    lines = {goa.order_article.article_id: goa for goa in group_order.group_order_articles}
    for item in items:
        goa = lines.get(item.article_id)
        if goa is None:
            goa = GroupOrderArticleModel(order_article=by_article[item.article_id], quantity=0, tolerance=0)
            group_order.group_order_articles.append(goa)
            session.add(goa)
            lines[item.article_id] = goa
        goa.quantity = item.quantity
        goa.tolerance = item.tolerance

    group_order.updated_by = actor.id
    group_order.updated_at = now_utc()
    update_group_order_price(session, group_order)
    update_quantities(session, order)
    logger.info(
        "ordergroup=%s submitted %d lines for order=%s, price=%s",
        ordergroup.id,
        len(items),
        order.id,
        group_order.price_cents,
    )
    return group_order
