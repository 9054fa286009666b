from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from itertools import groupby

from sqlalchemy import and_, desc, or_, select
from sqlalchemy.orm import Session, contains_eager

from foodcoop.core.errors import ConcurrencyConflictError, NotFoundError
from foodcoop.persistence.models import (
    ArticleModel,
    GroupOrderModel,
    OrderArticleModel,
    OrdergroupModel,
    OrderModel,
)


class OrderState(str, Enum):
    open = "open"
    finished = "finished"
    closed = "closed"


def is_open(order: OrderModel) -> bool:
    return order.state == OrderState.open.value


def is_finished(order: OrderModel) -> bool:
    return order.state == OrderState.finished.value


def is_closed(order: OrderModel) -> bool:
    return order.state == OrderState.closed.value


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def get_order(session: Session, order_id: int) -> OrderModel:
    order = session.get(OrderModel, order_id)
    if order is None:
        raise NotFoundError(f"order {order_id} not found")
    return order


def get_ordergroup(session: Session, ordergroup_id: int) -> OrdergroupModel:
    ordergroup = session.get(OrdergroupModel, ordergroup_id)
    if ordergroup is None:
        raise NotFoundError(f"ordergroup {ordergroup_id} not found")
    return ordergroup


def ensure_version(order: OrderModel, expected_version: int | None) -> None:
    if expected_version is not None and order.lock_version != expected_version:
        raise ConcurrencyConflictError(
            order.id,
            f"expected version {expected_version}, found {order.lock_version}",
        )


def list_orders(session: Session, state: OrderState | str) -> list[OrderModel]:
    """Named collections ``open``, ``finished`` and ``closed``, newest end first."""
    value = OrderState(state).value
    stmt = (
        select(OrderModel)
        .where(OrderModel.state == value)
        .order_by(desc(OrderModel.ends), desc(OrderModel.id))
    )
    return list(session.scalars(stmt).all())


def group_order_for(session: Session, order: OrderModel, ordergroup: OrdergroupModel) -> GroupOrderModel | None:
    stmt = (
        select(GroupOrderModel)
        .where(GroupOrderModel.order_id == order.id)
        .where(GroupOrderModel.ordergroup_id == ordergroup.id)
    )
    with session.no_autoflush:
        return session.scalar(stmt)


def articles_grouped_by_category(session: Session, order: OrderModel) -> list[tuple[str, list[OrderArticleModel]]]:
    """OrderArticles grouped by article category, categories and names sorted.

    e.g. ``[("Drugs", [toothpaste, toilet paper]), ("Fruits", [apple, banana])]``
    """
    stmt = (
        select(OrderArticleModel)
        .join(ArticleModel, OrderArticleModel.article_id == ArticleModel.id)
        .options(contains_eager(OrderArticleModel.article))
        .where(OrderArticleModel.order_id == order.id)
        .order_by(ArticleModel.category.asc(), ArticleModel.name.asc())
    )
    with session.no_autoflush:
        rows = list(session.scalars(stmt).all())
    return [
        (category, list(items))
        for category, items in groupby(rows, key=lambda oa: oa.article.category)
    ]


def previous_order(session: Session, order: OrderModel) -> OrderModel | None:
    """The order that ended just before ``order``; orders without an end are not ranked."""
    if order.ends is None:
        return None
    stmt = (
        select(OrderModel)
        .where(OrderModel.ends.is_not(None))
        .where(
            or_(
                OrderModel.ends < order.ends,
                and_(OrderModel.ends == order.ends, OrderModel.id < order.id),
            )
        )
        .order_by(desc(OrderModel.ends), desc(OrderModel.id))
        .limit(1)
    )
    with session.no_autoflush:
        return session.scalar(stmt)


def next_order(session: Session, order: OrderModel) -> OrderModel | None:
    if order.ends is None:
        return None
    stmt = (
        select(OrderModel)
        .where(
            or_(
                OrderModel.ends > order.ends,
                and_(OrderModel.ends == order.ends, OrderModel.id > order.id),
            )
        )
        .order_by(OrderModel.ends.asc(), OrderModel.id.asc())
        .limit(1)
    )
    with session.no_autoflush:
        return session.scalar(stmt)
