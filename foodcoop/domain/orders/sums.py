from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from foodcoop.domain.orders.queries import is_open, now_utc
from foodcoop.domain.pricing import PriceBasis, resolve_order_article_prices
from foodcoop.persistence.models import GroupOrderModel, OrderArticleModel, OrderModel

logger = logging.getLogger(__name__)


class SumBasis(str, Enum):
    """Price bases for order totals.

    clear: net price without tax, deposit and markup
    gross: includes tax and deposit, should match the supplier's bill
    fc: foodcoop price, gross plus markup
    groups: what the groups pay, from their own quantities
    groups_without_markup: group quantities at gross price
    """

    clear = "clear"
    gross = "gross"
    fc = "fc"
    groups = "groups"
    groups_without_markup = "groups_without_markup"


ORDER_ARTICLE_BASES = {SumBasis.clear, SumBasis.gross, SumBasis.fc}

PriceMap = dict[OrderArticleModel, Optional[PriceBasis]]


def _prices(session: Session, order_articles: Iterable[OrderArticleModel]) -> PriceMap:
    prices = resolve_order_article_prices(session, order_articles)
    for order_article, price in prices.items():
        if price is None:
            logger.warning(
                "order_article=%s (article=%s) has no price, counted as zero",
                order_article.id,
                order_article.article_id,
            )
    return prices


def _unit_price(price: PriceBasis, basis: SumBasis) -> int:
    if basis == SumBasis.clear:
        return price.net_cents
    if basis in (SumBasis.gross, SumBasis.groups_without_markup):
        return price.gross_cents
    return price.fc_cents


def group_order_sum(
    session: Session,
    group_order: GroupOrderModel,
    basis: SumBasis = SumBasis.groups,
    prices: PriceMap | None = None,
) -> int:
    if basis not in (SumBasis.groups, SumBasis.groups_without_markup):
        raise ValueError(f"group order sums only support group bases, got {basis}")
    lines = [goa for goa in group_order.group_order_articles if goa.quantity != 0]
    if prices is None:
        prices = _prices(session, [goa.order_article for goa in lines])
    total = 0
    for goa in lines:
        price = prices.get(goa.order_article)
        if price is None:
            continue
        total += goa.quantity * _unit_price(price, basis)
    return total


def order_sum(session: Session, order: OrderModel, basis: SumBasis | str = SumBasis.gross) -> int:
    """Total of ``order`` in int cents under the given price basis."""
    basis = SumBasis(basis)
    if basis in ORDER_ARTICLE_BASES:
        ordered = [oa for oa in order.order_articles if oa.units_to_order != 0]
        prices = _prices(session, ordered)
        total = 0
        for oa in ordered:
            price = prices[oa]
            if price is None:
                continue
            total += oa.units_to_order * price.unit_quantity * _unit_price(price, basis)
        return total

    prices = _prices(session, order.order_articles)
    return sum(group_order_sum(session, group_order, basis, prices) for group_order in order.group_orders)


def order_sums(session: Session, order: OrderModel) -> dict[str, int]:
    return {basis.value: order_sum(session, order, basis) for basis in SumBasis}


def profit(session: Session, order: OrderModel, with_markup: bool = True) -> int | None:
    """Deficit/benefit of the foodcoop for ``order``; None without an invoice."""
    if order.invoice is None:
        return None
    basis = SumBasis.groups if with_markup else SumBasis.groups_without_markup
    return order_sum(session, order, basis) - order.invoice.net_amount_cents


def group_order_price(session: Session, group_order: GroupOrderModel, prices: PriceMap | None = None) -> int:
    if not is_open(group_order.order):
        return group_order_sum(session, group_order, SumBasis.groups, prices)
    # While ordering, a group may be charged up to quantity plus tolerance.
    lines = [goa for goa in group_order.group_order_articles if goa.quantity + goa.tolerance != 0]
    if prices is None:
        prices = _prices(session, [goa.order_article for goa in lines])
    total = 0
    for goa in lines:
        price = prices.get(goa.order_article)
        if price is None:
            continue
        total += (goa.quantity + goa.tolerance) * price.fc_cents
    return total


def update_group_order_price(session: Session, group_order: GroupOrderModel, prices: PriceMap | None = None) -> int:
    price = group_order_price(session, group_order, prices)
    if price != group_order.price_cents:
        group_order.price_cents = price
        group_order.updated_at = now_utc()
    return price


def update_group_order_prices(session: Session, order: OrderModel) -> dict[int, int]:
    prices = _prices(session, order.order_articles)
    return {
        group_order.ordergroup_id: update_group_order_price(session, group_order, prices)
        for group_order in order.group_orders
    }
