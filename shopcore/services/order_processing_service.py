"""
주문 처리 서비스 (Order Processing Service)

주문 생성(검증 → 재고 예약 → 주문 저장)과 주기적 상태 진행 스윕을 담당합니다.

- create_order: 재고 차감과 주문 INSERT를 하나의 트랜잭션으로 처리 (all-or-nothing)
- process_pending_orders: PENDING → PROCESSING 스윕
- ship_processing_orders: PROCESSING → SHIPPED 스윕
- cancel_order: PENDING/PROCESSING → CANCELLED + 주문당 1회 재고 복원

스윕은 주문 단위로 독립 커밋되며, 여러 번/겹쳐 실행되어도 같은 상태로 수렴합니다.
"""
import logging
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from shopcore.models import Order, OrderItem, OrderStatusHistory
from shopcore.schemas.order import CreateOrderIn
from shopcore.services import events
from shopcore.services.clock import Clock, utc_now
from shopcore.services.db_retry import db_retry
from shopcore.services.exceptions import (
    InvalidOrderInput,
    InvalidTransition,
    PersistenceFailure,
    ShopCoreError,
)
from shopcore.services.inventory_ledger import InventoryLedger
from shopcore.services.order_owner import owner_columns, resolve_owner
from shopcore.services.order_state import OrderStatus, assert_transition
from shopcore.services.order_store import OrderStore, generate_tracking_number
from shopcore.session_factory import SessionFactory, session_factory as default_session_factory
from shopcore.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


class OrderProcessingService:
    """
    주문 라이프사이클 오케스트레이터

    각 공개 메서드는 자체 세션/트랜잭션을 연다. 스윕은 주문마다 새 세션을 사용한다.
    """

    def __init__(
        self,
        session_factory: SessionFactory = default_session_factory,
        clock: Clock = utc_now,
        settings: Settings = default_settings,
        bus: events.EventBus = events.bus,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.settings = settings
        self.bus = bus

    # ==================== 주문 생성 ====================

    def create_order(self, data: CreateOrderIn) -> Order:
        order, _ = self.submit_order(data)
        return order

    def submit_order(self, data: CreateOrderIn) -> Tuple[Order, bool]:
        """
        주문 생성. (주문, 새로 만들었는지 여부)를 반환합니다.

        1. 입력 검증 (InvalidOrderInput)
        2. payment_reference 멱등성 확인 → 기존 주문 반환
        3. 모든 라인 재고 차감 + 주문 저장을 한 트랜잭션으로 커밋
           (하나라도 부족하면 전체 롤백, InsufficientInventory)
        """
        owner, items, total, grand_total = self._validate(data)

        with self.session_factory() as session:
            existing = OrderStore(session, self.clock).find_by_payment_reference(data.payment_reference)
            if existing:
                logger.info(
                    f"[ORDER] 중복 결제 참조 {data.payment_reference} → 기존 주문 {existing.id} 반환"
                )
                return existing, False

        ledger: Optional[InventoryLedger] = None
        try:
            with self.session_factory() as session:
                with session.begin():
                    ledger = InventoryLedger(session, self.clock)
                    order_id = uuid.uuid4()

                    # 교착 방지를 위해 상품 ID 순서로 차감
                    for item in sorted(items, key=lambda i: str(i.product_id)):
                        ledger.decrement(item.product_id, item.quantity, order_id=order_id)

                    order = Order(
                        id=order_id,
                        payment_reference=data.payment_reference,
                        total=total,
                        grand_total=grand_total,
                        shipping_address=data.shipping_address,
                        inventory_restored=False,
                        **owner_columns(owner),
                    )
                    OrderStore(session, self.clock).add(order, items)
        except IntegrityError:
            # 같은 payment_reference로 동시에 들어온 요청이 먼저 커밋한 경우
            if ledger:
                ledger.discard_events()
            with self.session_factory() as session:
                existing = OrderStore(session, self.clock).find_by_payment_reference(data.payment_reference)
            if existing:
                logger.info(f"[ORDER] 동시 중복 요청 감지: {data.payment_reference} → 기존 주문 반환")
                return existing, False
            raise
        except ShopCoreError:
            if ledger:
                ledger.discard_events()
            raise
        except SQLAlchemyError as e:
            logger.error(f"[ORDER] 주문 저장 실패 (payment_reference={data.payment_reference}): {e}")
            raise PersistenceFailure(str(e), operation="create_order") from e

        ledger.flush_events(self.bus)
        logger.info(
            f"[ORDER] 주문 생성: {order.order_number} ({order.id}), "
            f"{len(items)}개 라인, grand_total={grand_total}"
        )
        return order, True

    def _validate(self, data: CreateOrderIn):
        if not data.items:
            raise InvalidOrderInput("주문 항목이 비어 있습니다", field="items")

        owner = resolve_owner(
            data.user_id,
            data.guest.email if data.guest else None,
            data.guest.name if data.guest else None,
        )

        items: List[OrderItem] = []
        computed = Decimal("0")
        for index, line in enumerate(data.items):
            if line.quantity <= 0:
                raise InvalidOrderInput(
                    f"수량은 1 이상이어야 합니다: {line.quantity}",
                    field=f"items[{index}].quantity",
                )
            if line.unit_price < 0:
                raise InvalidOrderInput(
                    f"단가는 0 이상이어야 합니다: {line.unit_price}",
                    field=f"items[{index}].unit_price",
                )
            unit_price = Decimal(line.unit_price).quantize(_CENT)
            line_total = (unit_price * line.quantity).quantize(_CENT)
            computed += line_total
            items.append(
                OrderItem(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=unit_price,
                    total_price=line_total,
                )
            )

        total = Decimal(data.total)
        if abs(total - computed) > self.settings.order_total_tolerance:
            raise InvalidOrderInput(
                f"주문 합계가 항목 합계와 일치하지 않습니다: total={total}, 계산값={computed}",
                field="total",
                expected=str(computed),
            )

        grand_total = Decimal(data.grand_total if data.grand_total is not None else computed)
        if grand_total < 0:
            raise InvalidOrderInput("grand_total은 0 이상이어야 합니다", field="grand_total")

        return owner, items, computed, grand_total.quantize(_CENT)

    # ==================== 조회 ====================

    def get_order(self, order_id: uuid.UUID) -> Order:
        with self.session_factory() as session:
            return OrderStore(session, self.clock).get(order_id)

    def find_by_payment_reference(self, payment_reference: str) -> Optional[Order]:
        with self.session_factory() as session:
            return OrderStore(session, self.clock).find_by_payment_reference(payment_reference)

    def list_orders(self, status: Optional[OrderStatus] = None, limit: int = 50, offset: int = 0) -> List[Order]:
        with self.session_factory() as session:
            return OrderStore(session, self.clock).list_orders(status=status, limit=limit, offset=offset)

    def list_guest_orders(self, email: str) -> List[Order]:
        with self.session_factory() as session:
            return OrderStore(session, self.clock).list_guest_orders(email)

    def get_order_history(self, order_id: uuid.UUID) -> List[OrderStatusHistory]:
        with self.session_factory() as session:
            return OrderStore(session, self.clock).history(order_id)

    def get_orders_needing_processing(self) -> Dict[str, int]:
        with self.session_factory() as session:
            counts = OrderStore(session, self.clock).status_counts()
        return {
            "pending": counts[OrderStatus.PENDING.value],
            "processing": counts[OrderStatus.PROCESSING.value],
            "shipped": counts[OrderStatus.SHIPPED.value],
        }

    # ==================== 라이프사이클 ====================

    def process_order_lifecycle(self, order_id: uuid.UUID) -> Dict[str, Any]:
        """
        단일 주문을 한 단계 진행합니다 (PENDING → PROCESSING, PROCESSING → SHIPPED).
        그 외 상태는 변경 없이 반환합니다.
        """
        with self.session_factory() as session:
            current = OrderStore(session, self.clock).current_status(order_id)

        if current == OrderStatus.PENDING:
            advanced = self._advance(order_id, OrderStatus.PENDING, OrderStatus.PROCESSING, source="lifecycle")
            target = OrderStatus.PROCESSING
        elif current == OrderStatus.PROCESSING:
            advanced = self._advance(order_id, OrderStatus.PROCESSING, OrderStatus.SHIPPED, source="lifecycle")
            target = OrderStatus.SHIPPED
        else:
            return {"order_id": str(order_id), "from": current.value, "to": current.value, "advanced": False}

        return {"order_id": str(order_id), "from": current.value, "to": target.value, "advanced": advanced}

    def kickoff_order_lifecycle(self, order_id: uuid.UUID) -> Optional[Dict[str, Any]]:
        """
        주문 생성 직후 백그라운드에서 호출하는 best-effort 진행.
        실패해도 주문 생성은 유지되며, 정기 스윕이 최종적으로 진행시킨다.
        """
        try:
            return self.process_order_lifecycle(order_id)
        except Exception as e:
            logger.warning(f"[ORDER] 라이프사이클 킥오프 실패 (order={order_id}), 스윕에서 재처리: {e}")
            return None

    def process_pending_orders(self) -> Dict[str, Any]:
        """PENDING 주문 중 최소 체류 시간이 지난 주문을 PROCESSING으로 전환"""
        return self._sweep(
            OrderStatus.PENDING,
            OrderStatus.PROCESSING,
            dwell_seconds=self.settings.order_pending_min_dwell_seconds,
        )

    def ship_processing_orders(self) -> Dict[str, Any]:
        """PROCESSING 상태로 최소 체류 시간이 지난 주문을 SHIPPED로 전환 (송장 번호 부여)"""
        return self._sweep(
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            dwell_seconds=self.settings.order_processing_min_dwell_seconds,
        )

    def mark_fulfilled(self, order_id: uuid.UUID, source: str = "admin") -> Order:
        """SHIPPED → FULFILLED. 이미 FULFILLED면 변경 없이 반환"""
        with self.session_factory() as session:
            current = OrderStore(session, self.clock).current_status(order_id)

        if current != OrderStatus.FULFILLED:
            try:
                assert_transition(current, OrderStatus.FULFILLED, order_id=order_id)
            except InvalidTransition as e:
                logger.error(f"[ORDER] 잘못된 전환 요청: {e.message} (order={order_id})")
                raise
            if not self._advance(order_id, OrderStatus.SHIPPED, OrderStatus.FULFILLED, source=source):
                # 그 사이 상태가 바뀐 경우 다시 판정
                return self.mark_fulfilled(order_id, source=source)

        return self.get_order(order_id)

    def cancel_order(self, order_id: uuid.UUID, reason: str = "", source: str = "admin") -> Order:
        """
        주문 취소 (PENDING/PROCESSING에서만)

        상태 전환과 재고 복원은 같은 트랜잭션이며, 복원은 주문의 inventory_restored
        플래그로 보호되어 두 번 호출되어도 재고는 한 번만 복원된다.
        이미 CANCELLED인 주문은 변경 없이 반환한다.
        """
        for _attempt in range(3):
            ledger: Optional[InventoryLedger] = None
            try:
                with self.session_factory() as session:
                    with session.begin():
                        store = OrderStore(session, self.clock)
                        current = store.current_status(order_id)

                        if current == OrderStatus.CANCELLED:
                            logger.info(f"[ORDER] 주문 {order_id}는 이미 취소되었습니다.")
                            ledger = InventoryLedger(session, self.clock)
                            # 이전 취소가 복원 전에 중단된 경우에도 정확히 한 번만 복원
                            ledger.restore_order(order_id, created_by=source)
                            moved = True
                        else:
                            try:
                                assert_transition(current, OrderStatus.CANCELLED, order_id=order_id)
                            except InvalidTransition as e:
                                logger.error(f"[ORDER] 잘못된 전환 요청: {e.message} (order={order_id})")
                                raise
                            moved = store.transition(
                                order_id,
                                current,
                                OrderStatus.CANCELLED,
                                source=source,
                                note=reason or None,
                                values={"cancel_reason": reason or None},
                            )
                            if moved:
                                ledger = InventoryLedger(session, self.clock)
                                ledger.restore_order(order_id, created_by=source)
            except ShopCoreError:
                raise
            except SQLAlchemyError as e:
                logger.error(f"[ORDER] 주문 취소 저장 실패 (order={order_id}): {e}")
                raise PersistenceFailure(str(e), operation="cancel_order", order_id=str(order_id)) from e

            if moved:
                if ledger:
                    ledger.flush_events(self.bus)
                return self.get_order(order_id)
            # compare-and-set 경합: 다른 실행이 상태를 바꿈 → 현재 상태로 재판정

        raise PersistenceFailure("주문 취소 중 상태 경합이 반복되었습니다", operation="cancel_order", order_id=str(order_id))

    # ==================== 내부 ====================

    def _sweep(self, expected: OrderStatus, requested: OrderStatus, dwell_seconds: int) -> Dict[str, Any]:
        cutoff = self.clock() - timedelta(seconds=dwell_seconds)
        with self.session_factory() as session:
            order_ids = OrderStore(session, self.clock).ids_for_sweep(
                expected, cutoff, limit=self.settings.order_sweep_batch_limit
            )

        result: Dict[str, Any] = {
            "processed": len(order_ids),
            "succeeded": 0,
            "skipped": 0,
            "failed": 0,
            "errors": [],
        }

        for order_id in order_ids:
            try:
                if self._advance(order_id, expected, requested, source="sweep"):
                    result["succeeded"] += 1
                else:
                    result["skipped"] += 1
            except Exception as e:
                # 주문 단위로 격리: 하나의 실패가 배치를 멈추지 않는다
                logger.error(f"[SWEEP] {expected.value} → {requested.value} 실패 (order={order_id}): {e}")
                result["failed"] += 1
                error = e if isinstance(e, ShopCoreError) else PersistenceFailure(str(e), operation="sweep")
                result["errors"].append({
                    "entity_type": "order",
                    "entity_id": str(order_id),
                    "error_code": error.error_code,
                    "message": error.message,
                })

        logger.info(
            f"[SWEEP] {expected.value} → {requested.value}: 대상 {result['processed']}건, "
            f"전환 {result['succeeded']}건, 건너뜀 {result['skipped']}건, 실패 {result['failed']}건"
        )
        return result

    def _advance(self, order_id: uuid.UUID, expected: OrderStatus, requested: OrderStatus, source: str) -> bool:
        try:
            return self._advance_once(order_id, expected, requested, source)
        except OperationalError as e:
            raise PersistenceFailure(str(e), operation="transition", order_id=str(order_id)) from e

    @db_retry
    def _advance_once(self, order_id: uuid.UUID, expected: OrderStatus, requested: OrderStatus, source: str) -> bool:
        values = None
        if requested == OrderStatus.SHIPPED:
            values = {"tracking_number": generate_tracking_number()}

        with self.session_factory() as session:
            with session.begin():
                return OrderStore(session, self.clock).transition(
                    order_id, expected, requested, source=source, values=values
                )

