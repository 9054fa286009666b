from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

import foodcoop.persistence.pg as pg
from foodcoop.core.config import get_settings
from foodcoop.core.security import Actor
from foodcoop.domain.orders import create_order, submit_group_order
from foodcoop.domain.orders.commands import GroupOrderItem, OrderCreateRequest
from foodcoop.domain.pricing import record_article_price
from foodcoop.persistence.models import ArticleModel, Base, OrdergroupModel, OrderModel, SupplierModel

PRICED_AT = datetime(2020, 1, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("db") / "test.sqlite"


@pytest.fixture(scope="session", autouse=True)
def configure_test_engine(test_db_path: Path):
    settings = get_settings()
    settings.price_markup_percent = Decimal("10")
    settings.messenger_backend = "outbox"

    engine = create_engine(
        f"sqlite+pysqlite:///{test_db_path}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    TestSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

    pg.engine = engine
    pg.SessionLocal = TestSessionLocal

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables(configure_test_engine):
    yield
    with pg.engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture()
def client(configure_test_engine):
    from foodcoop.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture()
def session(configure_test_engine):
    with pg.session_scope() as s:
        yield s


@pytest.fixture()
def actor() -> Actor:
    return Actor(id="coordinator-1")


@dataclass
class Catalog:
    supplier: SupplierModel
    carrots: ArticleModel
    apples: ArticleModel
    milk: ArticleModel

    @property
    def article_ids(self) -> list[int]:
        return [self.carrots.id, self.apples.id, self.milk.id]


def _article(session: Session, supplier: SupplierModel, name: str, category: str, unit_quantity: int) -> ArticleModel:
    article = ArticleModel(supplier=supplier, name=name, category=category, unit="pc", unit_quantity=unit_quantity)
    session.add(article)
    return article


def build_catalog(session: Session) -> Catalog:
    """Three articles; with a 10% markup their prices in cents are

    carrots: net 100, gross 107, fc 118, 5 per unit
    apples:  net 200, gross 225, fc 248, 1 per unit
    milk:    net  90, gross 125, fc 138, 6 per unit
    """
    supplier = SupplierModel(name="Green Farm")
    session.add(supplier)
    carrots = _article(session, supplier, "Carrots", "Vegetables", 5)
    apples = _article(session, supplier, "Apples", "Fruits", 1)
    milk = _article(session, supplier, "Milk", "Dairy", 6)
    session.flush()
    record_article_price(session, carrots, price_cents=100, tax_rate_bp=700, created_at=PRICED_AT)
    record_article_price(session, apples, price_cents=200, tax_rate_bp=700, deposit_cents=10, created_at=PRICED_AT)
    record_article_price(session, milk, price_cents=90, tax_rate_bp=1900, deposit_cents=15, created_at=PRICED_AT)
    return Catalog(supplier=supplier, carrots=carrots, apples=apples, milk=milk)


@pytest.fixture()
def catalog(session) -> Catalog:
    return build_catalog(session)


@pytest.fixture()
def seeded(configure_test_engine) -> dict:
    """Committed catalog plus one ordergroup, as plain ids for API tests."""
    with pg.session_scope() as s:
        catalog = build_catalog(s)
        group = OrdergroupModel(name="Alpha", account_balance_cents=5000, notify_recipients=["alice@example.org"])
        s.add(group)
        s.flush()
        ids = {
            "supplier_id": catalog.supplier.id,
            "article_ids": catalog.article_ids,
            "carrots": catalog.carrots.id,
            "ordergroup_id": group.id,
        }
    return ids


@dataclass
class Scenario:
    session: Session
    catalog: Catalog
    order: OrderModel
    alpha: OrdergroupModel
    beta: OrdergroupModel


@pytest.fixture()
def scenario(session, catalog, actor) -> Scenario:
    """Open order with two groups.

    alpha: carrots 3 (+1 tolerance), apples 2
    beta:  carrots 5, milk 6
    """
    alpha = OrdergroupModel(name="Alpha", account_balance_cents=0, notify_recipients=["alice@example.org"])
    beta = OrdergroupModel(name="Beta", account_balance_cents=0, notify_recipients=[])
    session.add_all([alpha, beta])
    session.flush()

    result = create_order(
        session,
        OrderCreateRequest(
            supplier_id=catalog.supplier.id,
            starts=datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc),
            article_ids=catalog.article_ids,
        ),
        actor,
    )
    assert result.ok, result.errors
    order = result.order

    submit_group_order(
        session,
        order,
        alpha,
        [
            GroupOrderItem(article_id=catalog.carrots.id, quantity=3, tolerance=1),
            GroupOrderItem(article_id=catalog.apples.id, quantity=2),
        ],
        Actor(id="alice"),
    )
    submit_group_order(
        session,
        order,
        beta,
        [
            GroupOrderItem(article_id=catalog.carrots.id, quantity=5, tolerance=0),
            GroupOrderItem(article_id=catalog.milk.id, quantity=6),
        ],
        Actor(id="bob"),
    )
    return Scenario(session=session, catalog=catalog, order=order, alpha=alpha, beta=beta)
