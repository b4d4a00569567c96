"""
Shared fixtures: an in-memory database per test, seeded companies and a client
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-the-stock-ledger-suite-0123456789")

from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stockledger.core.database import Base, get_db, init_db
from stockledger.core.security import create_access_token
from stockledger.main import app
from stockledger.models import Company, Item, Location, User


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seed(db):
    company = Company(name="Acme", cash_balance_usd=Decimal("1000.00"), cash_balance_srd=Decimal("0.00"))
    other_company = Company(name="Globex", cash_balance_usd=Decimal("500.00"), cash_balance_srd=Decimal("0.00"))
    db.add_all([company, other_company])
    db.flush()

    l1 = Location(name="Main warehouse", company_id=company.id)
    l2 = Location(name="Shop", company_id=company.id)
    foreign_location = Location(name="Globex depot", company_id=other_company.id)
    db.add_all([l1, l2, foreign_location])
    db.flush()

    user = User(username="alice", company_id=company.id)
    other_user = User(username="bob", company_id=other_company.id)
    admin = User(username="root", company_id=company.id, is_superuser=True)
    db.add_all([user, other_user, admin])
    db.flush()

    item = Item(
        name="Widget",
        company_id=company.id,
        use_batch_system=True,
        cost_per_unit_usd=Decimal("20.00"),
        selling_price_srd=Decimal("150.00"),
    )
    legacy_item = Item(
        name="Gadget",
        company_id=company.id,
        use_batch_system=False,
        status="Arrived",
        quantity_in_stock=8,
        cost_per_unit_usd=Decimal("10.00"),
        freight_cost_usd=Decimal("5.00"),
        selling_price_srd=Decimal("80.00"),
    )
    foreign_item = Item(name="Sprocket", company_id=other_company.id, use_batch_system=True)
    db.add_all([item, legacy_item, foreign_item])
    db.commit()

    return SimpleNamespace(
        company=company,
        other_company=other_company,
        l1=l1,
        l2=l2,
        foreign_location=foreign_location,
        user=user,
        other_user=other_user,
        admin=admin,
        item=item,
        legacy_item=legacy_item,
        foreign_item=foreign_item,
    )


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(seed):
    token = create_access_token({"sub": seed.user.username})
    return {"Authorization": f"Bearer {token}"}


def balance(db, company) -> Decimal:
    db.expire_all()
    return db.get(Company, company.id).cash_balance_usd


def refreshed(db, obj):
    db.expire_all()
    return db.get(type(obj), obj.id)
