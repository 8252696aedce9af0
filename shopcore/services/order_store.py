"""
주문 집계 저장소 (Order Aggregate Store)

주문 헤더/라인 아이템/상태를 저장하고, 모든 상태 쓰기를 상태 머신 테이블로 검사합니다.
상태 전환은 현재 상태를 조건으로 하는 compare-and-set UPDATE이며,
전환마다 order_status_history에 시각과 함께 기록합니다.
"""
import logging
import secrets
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.orm import Session

from shopcore.models import Order, OrderItem, OrderStatusHistory
from shopcore.services.clock import Clock, utc_now
from shopcore.services.exceptions import OrderNotFound
from shopcore.services.order_state import TIMESTAMP_COLUMNS, OrderStatus, assert_transition

logger = logging.getLogger(__name__)


def generate_order_number(now: datetime) -> str:
    return f"ORD-{now:%Y%m%d}-{secrets.token_hex(4).upper()}"


def generate_tracking_number() -> str:
    return f"TRK{secrets.token_hex(6).upper()}"


class OrderStore:
    def __init__(self, session: Session, clock: Clock = utc_now):
        self.session = session
        self.clock = clock

    # ==================== 조회 ====================

    def get(self, order_id: uuid.UUID) -> Order:
        order = self.session.get(Order, order_id, populate_existing=True)
        if not order:
            raise OrderNotFound(order_id)
        return order

    def find_by_payment_reference(self, payment_reference: str) -> Optional[Order]:
        return self.session.scalars(
            select(Order).where(Order.payment_reference == payment_reference)
        ).first()

    def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Order]:
        stmt = select(Order)
        if status is not None:
            stmt = stmt.where(Order.status == OrderStatus(status).value)
        stmt = stmt.order_by(Order.created_at.desc(), Order.id.asc()).limit(limit).offset(offset)
        return list(self.session.scalars(stmt).all())

    def list_guest_orders(self, email: str) -> List[Order]:
        return list(
            self.session.scalars(
                select(Order)
                .where(Order.guest_email == email.strip().lower())
                .order_by(Order.created_at.desc(), Order.id.asc())
            ).all()
        )

    def history(self, order_id: uuid.UUID) -> List[OrderStatusHistory]:
        self.get(order_id)
        return list(
            self.session.scalars(
                select(OrderStatusHistory)
                .where(OrderStatusHistory.order_id == order_id)
                .order_by(OrderStatusHistory.transition_sequence.asc())
            ).all()
        )

    def status_counts(self) -> Dict[str, int]:
        rows = self.session.execute(
            select(Order.status, func.count(Order.id)).group_by(Order.status)
        ).all()
        counts = {status.value: 0 for status in OrderStatus}
        for status, count in rows:
            counts[status] = int(count)
        return counts

    def ids_for_sweep(self, status: OrderStatus, cutoff: datetime, limit: int) -> List[uuid.UUID]:
        """
        주어진 상태에 cutoff 이전부터 머문 주문 ID (오래된 순)
        """
        if status == OrderStatus.PROCESSING:
            entered_at = func.coalesce(Order.processing_at, Order.created_at)
        else:
            entered_at = Order.created_at
        return list(
            self.session.scalars(
                select(Order.id)
                .where(Order.status == status.value)
                .where(entered_at <= cutoff)
                .order_by(entered_at.asc(), Order.id.asc())
                .limit(limit)
            ).all()
        )

    # ==================== 쓰기 ====================

    def add(self, order: Order, items: List[OrderItem], source: str = "checkout") -> Order:
        now = self.clock()
        order.status = OrderStatus.PENDING.value
        order.order_number = order.order_number or generate_order_number(now)
        order.created_at = now
        order.updated_at = now
        for position, item in enumerate(items):
            item.position = position
            item.created_at = now
        order.items = items
        self.session.add(order)
        self.session.flush()

        self._record(order.id, None, OrderStatus.PENDING, source=source)
        self.session.flush()
        return order

    def transition(
        self,
        order_id: uuid.UUID,
        expected: OrderStatus,
        requested: OrderStatus,
        source: str,
        note: Optional[str] = None,
        values: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        expected → requested 전환을 compare-and-set으로 기록합니다.

        Returns:
            True: 이번 호출이 전환을 기록함
            False: 주문이 이미 expected 상태가 아님 (다른 실행이 먼저 처리)

        Raises:
            InvalidTransition: 전환 테이블에 없는 간선
        """
        assert_transition(expected, requested, order_id=order_id)

        now = self.clock()
        columns: Dict[str, Any] = {"status": requested.value, "updated_at": now}
        timestamp_column = TIMESTAMP_COLUMNS.get(requested)
        if timestamp_column:
            columns[timestamp_column] = now
        if values:
            columns.update(values)

        updated = self.session.execute(
            update(Order)
            .where(Order.id == order_id)
            .where(Order.status == expected.value)
            .values(**columns)
            .execution_options(synchronize_session=False)
        ).rowcount

        if updated != 1:
            return False

        self._record(order_id, expected, requested, source=source, note=note)
        logger.info(f"[ORDER] {order_id}: {expected.value} → {requested.value} ({source})")
        return True

    def current_status(self, order_id: uuid.UUID) -> OrderStatus:
        status = self.session.scalar(select(Order.status).where(Order.id == order_id))
        if status is None:
            raise OrderNotFound(order_id)
        return OrderStatus(status)

    def _record(
        self,
        order_id: uuid.UUID,
        from_status: Optional[OrderStatus],
        to_status: OrderStatus,
        source: str,
        note: Optional[str] = None,
    ) -> None:
        sequence = self.session.scalar(
            select(func.count(OrderStatusHistory.id)).where(OrderStatusHistory.order_id == order_id)
        ) or 0
        self.session.add(
            OrderStatusHistory(
                order_id=order_id,
                transition_sequence=sequence + 1,
                from_status=from_status.value if from_status else None,
                to_status=to_status.value,
                source=source,
                note=note,
                created_at=self.clock(),
            )
        )

