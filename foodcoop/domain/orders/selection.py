from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from foodcoop.core.errors import NotFoundError, OrderStateError
from foodcoop.core.security import Actor
from foodcoop.domain.orders.queries import ensure_version, is_open, now_utc
from foodcoop.domain.orders.sums import update_group_order_prices
from foodcoop.persistence.models import ArticleModel, OrderArticleModel, OrderModel
from foodcoop.persistence.pg import flush_or_conflict

logger = logging.getLogger(__name__)


def load_articles(session: Session, article_ids: Iterable[int]) -> tuple[list[ArticleModel], list[int]]:
    """Articles for ``article_ids`` plus the ids that do not exist."""
    wanted = list(dict.fromkeys(article_ids))
    if not wanted:
        return [], []
    found = {
        article.id: article
        for article in session.scalars(select(ArticleModel).where(ArticleModel.id.in_(wanted))).all()
    }
    missing = [article_id for article_id in wanted if article_id not in found]
    return [found[article_id] for article_id in wanted if article_id in found], missing


def _article_id(order_article: OrderArticleModel) -> int:
    # Rows created in this session carry only the relationship until flushed.
    if order_article.article_id is not None:
        return order_article.article_id
    return order_article.article.id


def add_order_articles(order: OrderModel, articles: Iterable[ArticleModel]) -> list[OrderArticleModel]:
    present = {_article_id(oa) for oa in order.order_articles}
    created = []
    for article in articles:
        if article.id in present:
            continue
        oa = OrderArticleModel(article=article, quantity=0, tolerance=0, units_to_order=0)
        order.order_articles.append(oa)
        present.add(article.id)
        created.append(oa)
    return created


def set_selected_articles(
    session: Session,
    order: OrderModel,
    article_ids: Iterable[int],
    actor: Actor,
    expected_version: int | None = None,
) -> OrderModel:
    """Make the order's articles match ``article_ids``.

    New articles start with zero quantities. Deselected articles are removed
    together with any group demand for them.
    """
    if not is_open(order):
        raise OrderStateError(f"order {order.id} is {order.state}, articles are frozen")
    ensure_version(order, expected_version)

    articles, missing = load_articles(session, article_ids)
    if missing:
        raise NotFoundError(f"articles {missing} not found")
    foreign = [article.id for article in articles if article.supplier_id != order.supplier_id]
    if foreign:
        raise NotFoundError(f"articles {foreign} do not belong to supplier {order.supplier_id}")

    selected = {article.id for article in articles}
    created = add_order_articles(order, articles)

    removed = [oa for oa in order.order_articles if oa not in created and _article_id(oa) not in selected]
    for oa in removed:
        if oa.group_order_articles:
            logger.warning(
                "removing article=%s from order=%s drops demand of %d group order lines",
                oa.article_id,
                order.id,
                len(oa.group_order_articles),
            )
        for goa in list(oa.group_order_articles):
            goa.group_order.group_order_articles.remove(goa)
        order.order_articles.remove(oa)

    order.updated_by = actor.id
    order.updated_at = now_utc()
    flush_or_conflict(session, order.id)
    if removed:
        update_group_order_prices(session, order)
    return order
