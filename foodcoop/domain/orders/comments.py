from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from foodcoop.core.security import Actor
from foodcoop.domain.orders.queries import now_utc
from foodcoop.persistence.models import OrderCommentModel, OrderModel

logger = logging.getLogger(__name__)


def add_order_comment(session: Session, order: OrderModel, actor: Actor, text: str) -> OrderCommentModel:
    """Comments are allowed in every state, also after the order is booked."""
    text = text.strip()
    if not text:
        raise ValueError("comment text can't be blank")
    comment = OrderCommentModel(created_by=actor.id, text=text, created_at=now_utc())
    order.comments.append(comment)
    session.flush()
    logger.info("order=%s comment=%s added by %s", order.id, comment.id, actor.id)
    return comment


def list_order_comments(session: Session, order: OrderModel) -> list[OrderCommentModel]:
    stmt = (
        select(OrderCommentModel)
        .where(OrderCommentModel.order_id == order.id)
        .order_by(OrderCommentModel.created_at.asc(), OrderCommentModel.id.asc())
    )
    return list(session.scalars(stmt).all())
