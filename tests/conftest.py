"""Pytest configuration and fixtures."""

import os

# shopcore.db가 import 시점에 엔진을 만들기 때문에 먼저 지정한다
os.environ["DATABASE_URL"] = "sqlite://"

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, JSON
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shopcore.api.deps import get_clock, get_update_tracker
from shopcore.db import get_session
from shopcore.main import app
from shopcore.models import Base, Product
from shopcore.schemas.order import CreateOrderIn, GuestIdentityIn, OrderItemIn
from shopcore.services.engagement_aggregator import EngagementAggregator
from shopcore.services.order_processing_service import OrderProcessingService
from shopcore.services.popularity_scoring import PopularityScoringEngine
from shopcore.services.update_status_tracker import UpdateStatusTracker
from shopcore.session_factory import get_session_factory


# 테스트용 메모리 SQLite 엔진 (모든 세션이 같은 연결을 공유)
TEST_DATABASE_URL = "sqlite://"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)

TestSessionLocal = sessionmaker(
    bind=test_engine,
    autoflush=False,
    expire_on_commit=False,
)


def _patch_jsonb_to_json(base):
    """
    SQLite에서 JSONB를 JSON으로 변경하여 컴파일 오류 방지.
    테스트용으로만 사용.
    """
    from sqlalchemy.dialects.postgresql import JSONB

    for table in base.metadata.sorted_tables:
        for column in table.columns:
            if isinstance(column.type, JSONB):
                column.type = JSON()


class FakeClock:
    """고정 시각을 반환하고 advance()로만 움직이는 시계"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture(scope="function")
def session_factory():
    """
    테스트용 세션 팩토리 fixture.
    각 테스트마다 테이블을 새로 만들고 끝나면 삭제.
    """
    _patch_jsonb_to_json(Base)
    Base.metadata.create_all(bind=test_engine)
    try:
        yield TestSessionLocal
    finally:
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def file_session_factory(tmp_path):
    """
    스레드마다 별도 연결을 쓰는 파일 SQLite 세션 팩토리.
    동시 요청 테스트용 (메모리 엔진은 연결 하나를 공유하므로 경합이 생기지 않음).
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'shopcore.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    _patch_jsonb_to_json(Base)
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    finally:
        engine.dispose()


@pytest.fixture
def make_product(session_factory, clock):
    """상품 생성 헬퍼: make_product(inventory=5, price="10.00", ...)"""

    def _make(**kwargs) -> Product:
        values = {
            "name": "테스트 상품",
            "price": Decimal("10.00"),
            "inventory": 10,
            "low_stock_threshold": 5,
            "is_published": True,
            "created_at": clock() - timedelta(days=30),
            "updated_at": clock() - timedelta(days=30),
        }
        values.update(kwargs)
        if "price" in values:
            values["price"] = Decimal(str(values["price"]))
        product = Product(id=values.pop("id", uuid.uuid4()), **values)
        with session_factory() as session:
            with session.begin():
                session.add(product)
        return product

    return _make


def read_product(session_factory, product_id) -> Product:
    """ORM 캐시 없이 상품 행을 다시 읽는다"""
    with session_factory() as session:
        return session.get(Product, product_id)


@pytest.fixture
def get_product(session_factory):
    return lambda product_id: read_product(session_factory, product_id)


@pytest.fixture
def order_input():
    """CreateOrderIn 생성 헬퍼: order_input([(product, qty), ...], payment_reference=...)"""

    def _build(lines, payment_reference=None, user_id="user-1", guest=None, total=None, **kwargs) -> CreateOrderIn:
        items = [
            OrderItemIn(product_id=product.id, quantity=quantity, unit_price=product.price)
            for product, quantity in lines
        ]
        computed = sum((Decimal(product.price) * quantity for product, quantity in lines), Decimal("0"))
        return CreateOrderIn(
            payment_reference=payment_reference or f"pay-{uuid.uuid4().hex[:12]}",
            items=items,
            total=computed if total is None else Decimal(str(total)),
            user_id=user_id,
            guest=GuestIdentityIn(**guest) if guest else None,
            **kwargs,
        )

    return _build


@pytest.fixture
def order_service(session_factory, clock) -> OrderProcessingService:
    return OrderProcessingService(session_factory=session_factory, clock=clock)


@pytest.fixture
def aggregator(session_factory, clock) -> EngagementAggregator:
    return EngagementAggregator(session_factory=session_factory, clock=clock)


@pytest.fixture
def scoring(session_factory, clock) -> PopularityScoringEngine:
    return PopularityScoringEngine(session_factory=session_factory, clock=clock)


@pytest.fixture
def update_tracker(aggregator, scoring, clock) -> UpdateStatusTracker:
    return UpdateStatusTracker(aggregator=aggregator, scoring=scoring, clock=clock)


@pytest.fixture
def client(session_factory, clock, update_tracker):
    """의존성을 테스트 DB/시계/추적기로 교체한 TestClient"""

    def _get_session():
        with session_factory() as session:
            with session.begin():
                yield session

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_update_tracker] = lambda: update_tracker
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


# 테스트 마커 정의
def pytest_configure(config):
    """Pytest 마커 등록."""
    config.addinivalue_line("markers", "unit: 단위 테스트 (DB 불필요)")
    config.addinivalue_line("markers", "integration: 통합 테스트 (SQLite DB 사용)")
