from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from foodcoop.core.config import get_settings
from foodcoop.persistence.models import ArticleModel, ArticlePriceModel, OrderArticleModel

CENT = Decimal("1")


@dataclass(frozen=True)
class PriceBasis:
    unit_quantity: int
    net_cents: int
    gross_cents: int
    fc_cents: int


def _round_cents(value: Decimal) -> int:
    return int(value.quantize(CENT, rounding=ROUND_HALF_UP))


def gross_price_cents(price_cents: int, tax_rate_bp: int, deposit_cents: int = 0) -> int:
    factor = Decimal(1) + Decimal(tax_rate_bp) / Decimal(10000)
    return _round_cents((Decimal(price_cents) + Decimal(deposit_cents)) * factor)


def fc_price_cents(gross_cents: int, markup_percent: Decimal | None = None) -> int:
    if markup_percent is None:
        markup_percent = get_settings().price_markup_percent
    factor = Decimal(1) + Decimal(markup_percent) / Decimal(100)
    return _round_cents(Decimal(gross_cents) * factor)


def calculate_order_quantity(unit_quantity: int, quantity: int, tolerance: int = 0) -> int:
    """Number of whole order units needed for ``quantity`` single items.

    A started unit is only ordered when the tolerance of the groups fills it up.
    """
    if unit_quantity <= 0:
        raise ValueError(f"unit_quantity must be positive, got {unit_quantity}")
    units, remainder = divmod(quantity, unit_quantity)
    if remainder > 0 and remainder + tolerance >= unit_quantity:
        units += 1
    return units


def article_order_quantity(article: ArticleModel, quantity: int, tolerance: int) -> int:
    return calculate_order_quantity(article.unit_quantity, quantity, tolerance)


def record_article_price(
    session: Session,
    article: ArticleModel,
    price_cents: int,
    tax_rate_bp: int = 0,
    deposit_cents: int = 0,
    created_at: datetime | None = None,
) -> ArticlePriceModel:
    gross = gross_price_cents(price_cents, tax_rate_bp, deposit_cents)
    row = ArticlePriceModel(
        article=article,
        unit_quantity=article.unit_quantity,
        price_cents=price_cents,
        deposit_cents=deposit_cents,
        tax_rate_bp=tax_rate_bp,
        gross_price_cents=gross,
        fc_price_cents=fc_price_cents(gross),
        created_at=created_at or datetime.now(timezone.utc),
    )
    session.add(row)
    session.flush()
    return row


def current_prices(session: Session, article_ids: Iterable[int]) -> dict[int, ArticlePriceModel]:
    """Latest catalog price per article, loaded with one query."""
    wanted = sorted({article_id for article_id in article_ids if article_id is not None})
    if not wanted:
        return {}
    ranked = (
        select(
            ArticlePriceModel.id.label("id"),
            func.row_number()
            .over(
                partition_by=ArticlePriceModel.article_id,
                order_by=(desc(ArticlePriceModel.created_at), desc(ArticlePriceModel.id)),
            )
            .label("position"),
        )
        .where(ArticlePriceModel.article_id.in_(wanted))
        .subquery()
    )
    stmt = (
        select(ArticlePriceModel)
        .join(ranked, ranked.c.id == ArticlePriceModel.id)
        .where(ranked.c.position == 1)
    )
    with session.no_autoflush:
        return {price.article_id: price for price in session.scalars(stmt).all()}


def current_price(session: Session, article: ArticleModel) -> ArticlePriceModel | None:
    return current_prices(session, [article.id]).get(article.id)


def price_basis(price: ArticlePriceModel) -> PriceBasis:
    return PriceBasis(
        unit_quantity=price.unit_quantity,
        net_cents=price.price_cents,
        gross_cents=price.gross_price_cents,
        fc_cents=price.fc_price_cents,
    )


def resolve_order_article_prices(
    session: Session,
    order_articles: Iterable[OrderArticleModel],
) -> dict[OrderArticleModel, PriceBasis | None]:
    """Price basis per OrderArticle: frozen snapshot first, then the live catalog price.

    Snapshots and catalog prices are each loaded with a single query.
    """
    order_articles = list(order_articles)
    snapshot_ids = {oa.article_price_id for oa in order_articles if oa.article_price_id is not None}
    snapshots: dict[int, ArticlePriceModel] = {}
    if snapshot_ids:
        stmt = select(ArticlePriceModel).where(ArticlePriceModel.id.in_(snapshot_ids))
        with session.no_autoflush:
            snapshots = {price.id: price for price in session.scalars(stmt).all()}
    live = current_prices(session, [oa.article_id for oa in order_articles if oa.article_price_id is None])

    resolved: dict[OrderArticleModel, PriceBasis | None] = {}
    for oa in order_articles:
        if oa.article_price_id is not None:
            price = snapshots.get(oa.article_price_id)
        else:
            price = live.get(oa.article_id)
        resolved[oa] = price_basis(price) if price is not None else None
    return resolved
