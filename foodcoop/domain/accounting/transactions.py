from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from foodcoop.core.security import Actor
from foodcoop.persistence.models import FinancialTransactionModel, OrdergroupModel, OrderModel

logger = logging.getLogger(__name__)


def post_financial_transaction(
    session: Session,
    ordergroup: OrdergroupModel,
    amount_cents: int,
    note: str,
    actor: Actor,
    order: OrderModel | None = None,
) -> FinancialTransactionModel:
    """Book ``amount_cents`` onto the group's account; negative amounts debit it."""
    row = FinancialTransactionModel(
        ordergroup=ordergroup,
        order_id=order.id if order is not None else None,
        amount_cents=amount_cents,
        note=note,
        created_by=actor.id,
        created_at=datetime.now(timezone.utc),
    )
    session.add(row)
    session.flush()
    # Increment in SQL, never from the balance loaded into this session.
    ordergroup.account_balance_cents = OrdergroupModel.account_balance_cents + amount_cents
    session.flush()
    logger.debug("ordergroup=%s amount=%s note=%r", ordergroup.id, amount_cents, note)
    return row


def list_transactions(session: Session, ordergroup_id: int | None = None) -> list[FinancialTransactionModel]:
    stmt = select(FinancialTransactionModel).order_by(FinancialTransactionModel.id.asc())
    if ordergroup_id is not None:
        stmt = stmt.where(FinancialTransactionModel.ordergroup_id == ordergroup_id)
    return list(session.scalars(stmt).all())
