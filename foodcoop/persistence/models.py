from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import JSON


def _json_type():
    return JSON().with_variant(JSONB(astext_type=Text()), "postgresql")


class Base(DeclarativeBase):
    pass


class SupplierModel(Base):
    __tablename__ = "suppliers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)

    articles: Mapped[list["ArticleModel"]] = relationship(back_populates="supplier")


class ArticleModel(Base):
    __tablename__ = "articles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    supplier_id: Mapped[int] = mapped_column(ForeignKey("suppliers.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="Other")
    unit: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    unit_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    supplier: Mapped[SupplierModel] = relationship(back_populates="articles")


class ArticlePriceModel(Base):
    """Immutable price snapshot. All money columns are int cents."""

    __tablename__ = "article_prices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    article_id: Mapped[int] = mapped_column(ForeignKey("articles.id"), nullable=False)
    unit_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    deposit_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    # basis points, 700 == 7%
    tax_rate_bp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gross_price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fc_price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    article: Mapped[ArticleModel] = relationship()


class OrdergroupModel(Base):
    __tablename__ = "ordergroups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    account_balance_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    # members that opted in to "order finished" messages
    notify_recipients: Mapped[list] = mapped_column(_json_type(), nullable=False, default=list)


class FinancialTransactionModel(Base):
    __tablename__ = "financial_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ordergroup_id: Mapped[int] = mapped_column(ForeignKey("ordergroups.id"), nullable=False)
    order_id: Mapped[Optional[int]] = mapped_column(ForeignKey("orders.id"), nullable=True)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    note: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    ordergroup: Mapped[OrdergroupModel] = relationship()


class OrderModel(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    supplier_id: Mapped[int] = mapped_column(ForeignKey("suppliers.id"), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    starts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    state: Mapped[str] = mapped_column(String(16), nullable=False, default="open")
    booked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    supplier: Mapped[SupplierModel] = relationship()
    order_articles: Mapped[list["OrderArticleModel"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderArticleModel.id",
    )
    group_orders: Mapped[list["GroupOrderModel"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="GroupOrderModel.id",
    )
    invoice: Mapped[Optional["InvoiceModel"]] = relationship(
        back_populates="order",
        uselist=False,
        cascade="all, delete-orphan",
    )
    comments: Mapped[list["OrderCommentModel"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderCommentModel.created_at",
    )

    __mapper_args__ = {"version_id_col": lock_version}


class OrderArticleModel(Base):
    __tablename__ = "order_articles"
    __table_args__ = (
        UniqueConstraint("order_id", "article_id", name="uq_order_articles_order_article"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    article_id: Mapped[int] = mapped_column(ForeignKey("articles.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tolerance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    units_to_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    article_price_id: Mapped[Optional[int]] = mapped_column(ForeignKey("article_prices.id"), nullable=True)

    order: Mapped[OrderModel] = relationship(back_populates="order_articles")
    article: Mapped[ArticleModel] = relationship()
    article_price: Mapped[Optional[ArticlePriceModel]] = relationship()
    group_order_articles: Mapped[list["GroupOrderArticleModel"]] = relationship(
        back_populates="order_article",
        cascade="all, delete-orphan",
    )


class GroupOrderModel(Base):
    __tablename__ = "group_orders"
    __table_args__ = (
        UniqueConstraint("order_id", "ordergroup_id", name="uq_group_orders_order_group"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    ordergroup_id: Mapped[int] = mapped_column(ForeignKey("ordergroups.id"), nullable=False)
    price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    updated_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    order: Mapped[OrderModel] = relationship(back_populates="group_orders")
    ordergroup: Mapped[OrdergroupModel] = relationship()
    group_order_articles: Mapped[list["GroupOrderArticleModel"]] = relationship(
        back_populates="group_order",
        cascade="all, delete-orphan",
        order_by="GroupOrderArticleModel.id",
    )


class GroupOrderArticleModel(Base):
    __tablename__ = "group_order_articles"
    __table_args__ = (
        UniqueConstraint("group_order_id", "order_article_id", name="uq_group_order_articles_line"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_order_id: Mapped[int] = mapped_column(ForeignKey("group_orders.id", ondelete="CASCADE"), nullable=False)
    order_article_id: Mapped[int] = mapped_column(ForeignKey("order_articles.id", ondelete="CASCADE"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tolerance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    group_order: Mapped[GroupOrderModel] = relationship(back_populates="group_order_articles")
    order_article: Mapped[OrderArticleModel] = relationship(back_populates="group_order_articles")


class InvoiceModel(Base):
    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), unique=True, nullable=False)
    number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    deposit_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    deposit_credit_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    order: Mapped[OrderModel] = relationship(back_populates="invoice")

    @property
    def net_amount_cents(self) -> int:
        return self.amount_cents - self.deposit_cents + self.deposit_credit_cents


class OrderCommentModel(Base):
    __tablename__ = "order_comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    order: Mapped[OrderModel] = relationship(back_populates="comments")


Index("ix_orders_state_ends", OrderModel.state, OrderModel.ends)
Index("ix_articles_supplier", ArticleModel.supplier_id)
Index("ix_article_prices_article_created", ArticlePriceModel.article_id, ArticlePriceModel.created_at)
Index("ix_financial_transactions_ordergroup", FinancialTransactionModel.ordergroup_id)
Index("ix_order_comments_order_created", OrderCommentModel.order_id, OrderCommentModel.created_at)
