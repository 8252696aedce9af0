"""
재고 원장 (Inventory Ledger)

상품별 재고 수량과 저재고 임계치를 관리합니다.
모든 재고 변경은 조건부 UPDATE 한 번으로 원자적으로 적용되고,
inventory_adjustments에 감사 레코드를 남깁니다.

세션(트랜잭션) 경계는 호출자가 관리합니다. 주문 생성 시 재고 차감은
주문 INSERT와 같은 트랜잭션에서 실행되어야 합니다.
"""
import logging
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shopcore.models import InventoryAdjustment, Order, OrderItem, Product
from shopcore.services import events
from shopcore.services.clock import Clock, utc_now
from shopcore.services.exceptions import (
    InsufficientInventory,
    InvalidAdjustment,
    OrderNotFound,
    PersistenceFailure,
    ProductNotFound,
    ShopCoreError,
)

logger = logging.getLogger(__name__)


class AdjustmentReason(str, Enum):
    ORDER_RESERVE = "ORDER_RESERVE"
    ORDER_CANCEL_RESTORE = "ORDER_CANCEL_RESTORE"
    MANUAL_ADJUST = "MANUAL_ADJUST"


class InventoryLedger:
    """
    재고 원장

    - decrement: 주문 예약 (재고 부족 시 InsufficientInventory)
    - restore_order: 주문 취소 시 재고 복원 (주문별 1회만)
    - adjust: 관리자 수동 조정 (음수 결과는 거부)
    """

    def __init__(self, session: Session, clock: Clock = utc_now):
        self.session = session
        self.clock = clock
        # 커밋 이후 발행할 임계치 이벤트
        self.pending_events: List[tuple[str, Dict[str, Any]]] = []

    def decrement(
        self,
        product_id: uuid.UUID,
        quantity: int,
        order_id: Optional[uuid.UUID] = None,
        created_by: str = "checkout",
    ) -> int:
        """
        재고를 차감하고 남은 수량을 반환합니다.

        조건부 UPDATE(inventory >= quantity)가 상품 행을 잠그므로
        동시 주문은 행 단위로 직렬화됩니다.
        """
        if quantity <= 0:
            raise ValueError(f"차감 수량은 양수여야 합니다: {quantity}")

        now = self.clock()
        result = self.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .where(Product.inventory >= quantity)
            .values(inventory=Product.inventory - quantity, updated_at=now)
            .returning(Product.inventory, Product.low_stock_threshold)
            .execution_options(synchronize_session=False)
        ).first()

        if result is None:
            available = self.session.scalar(select(Product.inventory).where(Product.id == product_id))
            if available is None:
                raise ProductNotFound(product_id)
            raise InsufficientInventory(product_id, quantity, available)

        remaining, threshold = result
        self._append(product_id, -quantity, AdjustmentReason.ORDER_RESERVE, created_by, order_id=order_id)
        self._check_threshold(product_id, remaining + quantity, remaining, threshold)
        return remaining

    def _restore(
        self,
        product_id: uuid.UUID,
        quantity: int,
        order_id: Optional[uuid.UUID] = None,
        created_by: str = "system",
    ) -> int:
        """restore_order가 주문 플래그를 점유한 뒤에만 호출합니다"""
        if quantity <= 0:
            raise ValueError(f"복원 수량은 양수여야 합니다: {quantity}")

        now = self.clock()
        remaining = self.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(inventory=Product.inventory + quantity, updated_at=now)
            .returning(Product.inventory)
            .execution_options(synchronize_session=False)
        ).scalar()
        if remaining is None:
            raise ProductNotFound(product_id)

        self._append(product_id, quantity, AdjustmentReason.ORDER_CANCEL_RESTORE, created_by, order_id=order_id)
        return remaining

    def restore_order(self, order_id: uuid.UUID, created_by: str = "system") -> int:
        """
        주문의 모든 라인 아이템 재고를 정확히 한 번 복원합니다.

        orders.inventory_restored 플래그를 조건부로 세팅한 트랜잭션만 복원을 수행하므로
        취소가 겹쳐 실행되어도 재고가 이중으로 복원되지 않습니다.

        Returns:
            복원한 라인 수 (이미 복원된 주문이면 0)
        """
        claimed = self.session.execute(
            update(Order)
            .where(Order.id == order_id)
            .where(Order.inventory_restored.is_(False))
            .values(inventory_restored=True)
            .execution_options(synchronize_session=False)
        ).rowcount

        if claimed != 1:
            exists = self.session.scalar(select(Order.id).where(Order.id == order_id))
            if exists is None:
                raise OrderNotFound(order_id)
            logger.info(f"[INVENTORY] 주문 {order_id} 재고는 이미 복원되었습니다. 건너뜁니다.")
            return 0

        items = self.session.execute(
            select(OrderItem.product_id, OrderItem.quantity)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.product_id)
        ).all()
        for product_id, quantity in items:
            self._restore(product_id, quantity, order_id=order_id, created_by=created_by)

        logger.info(f"[INVENTORY] 주문 {order_id} 재고 복원 완료 ({len(items)}개 라인)")
        return len(items)

    def adjust(
        self,
        product_id: uuid.UUID,
        delta: int,
        created_by: str,
        reason: AdjustmentReason = AdjustmentReason.MANUAL_ADJUST,
        note: Optional[str] = None,
    ) -> int:
        """관리자 수동 조정. 결과가 음수가 되면 InvalidAdjustment로 거부합니다."""
        if delta == 0:
            current = self.session.scalar(select(Product.inventory).where(Product.id == product_id))
            if current is None:
                raise ProductNotFound(product_id)
            return current

        now = self.clock()
        result = self.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .where(Product.inventory + delta >= 0)
            .values(inventory=Product.inventory + delta, updated_at=now)
            .returning(Product.inventory, Product.low_stock_threshold)
            .execution_options(synchronize_session=False)
        ).first()

        if result is None:
            current = self.session.scalar(select(Product.inventory).where(Product.id == product_id))
            if current is None:
                raise ProductNotFound(product_id)
            raise InvalidAdjustment(product_id, delta, current)

        remaining, threshold = result
        self._append(product_id, delta, AdjustmentReason(reason), created_by, note=note)
        self._check_threshold(product_id, remaining - delta, remaining, threshold)
        logger.info(f"[INVENTORY] 수동 조정: product={product_id}, delta={delta}, 결과={remaining}, by={created_by}")
        return remaining

    # ==================== 조회 ====================

    def low_stock_products(self, limit: int = 50) -> List[Dict[str, Any]]:
        """0 < inventory <= low_stock_threshold, 재고 오름차순 (동률은 ID 순)"""
        rows = self.session.scalars(
            select(Product)
            .where(Product.inventory > 0)
            .where(Product.inventory <= Product.low_stock_threshold)
            .order_by(Product.inventory.asc(), Product.id.asc())
            .limit(limit)
        ).all()
        return [self._stock_row(p, "LOW_STOCK") for p in rows]

    def out_of_stock_products(self, limit: int = 50) -> List[Dict[str, Any]]:
        rows = self.session.scalars(
            select(Product)
            .where(Product.inventory == 0)
            .order_by(Product.id.asc())
            .limit(limit)
        ).all()
        return [self._stock_row(p, "OUT_OF_STOCK") for p in rows]

    def get_inventory_history(
        self,
        product_id: Optional[uuid.UUID] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[InventoryAdjustment]:
        stmt = select(InventoryAdjustment)
        if product_id is not None:
            stmt = stmt.where(InventoryAdjustment.product_id == product_id)
        stmt = (
            stmt.order_by(InventoryAdjustment.created_at.desc(), InventoryAdjustment.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(self.session.scalars(stmt).all())

    def get_inventory_summary(self) -> Dict[str, Any]:
        total_products, total_units, total_value = self.session.execute(
            select(
                func.count(Product.id),
                func.coalesce(func.sum(Product.inventory), 0),
                func.coalesce(func.sum(Product.inventory * Product.price), 0),
            )
        ).one()
        low_stock_count = self.session.scalar(
            select(func.count(Product.id))
            .where(Product.inventory > 0)
            .where(Product.inventory <= Product.low_stock_threshold)
        )
        out_of_stock_count = self.session.scalar(
            select(func.count(Product.id)).where(Product.inventory == 0)
        )
        return {
            "total_products": int(total_products or 0),
            "total_units": int(total_units or 0),
            "total_value": Decimal(str(total_value or 0)).quantize(Decimal("0.01")),
            "low_stock_count": int(low_stock_count or 0),
            "out_of_stock_count": int(out_of_stock_count or 0),
        }

    # ==================== 내부 ====================

    def _append(
        self,
        product_id: uuid.UUID,
        delta: int,
        reason: AdjustmentReason,
        created_by: str,
        order_id: Optional[uuid.UUID] = None,
        note: Optional[str] = None,
    ) -> None:
        self.session.add(
            InventoryAdjustment(
                product_id=product_id,
                quantity_delta=delta,
                reason=reason.value,
                order_id=order_id,
                note=note,
                created_by=created_by,
                created_at=self.clock(),
            )
        )

    def _check_threshold(self, product_id: uuid.UUID, before: int, after: int, threshold: int) -> None:
        if after == 0 and before > 0:
            self.pending_events.append((events.OUT_OF_STOCK, {"product_id": str(product_id), "inventory": 0}))
        elif 0 < after <= threshold < before:
            self.pending_events.append(
                (events.LOW_STOCK, {"product_id": str(product_id), "inventory": after, "threshold": threshold})
            )

    def flush_events(self, bus: events.EventBus = events.bus) -> int:
        """커밋 이후 호출: 임계치 이벤트를 발행하고 큐를 비운다"""
        published = 0
        while self.pending_events:
            event_type, data = self.pending_events.pop(0)
            bus.publish(event_type, data)
            published += 1
        return published

    def discard_events(self) -> None:
        self.pending_events.clear()

    @staticmethod
    def _stock_row(product: Product, status: str) -> Dict[str, Any]:
        return {
            "id": str(product.id),
            "name": product.name,
            "sku": product.sku,
            "current_stock": product.inventory,
            "low_stock_threshold": product.low_stock_threshold,
            "status": status,
        }


def bulk_adjust(
    session_factory,
    updates: List[Dict[str, Any]],
    created_by: str,
    reason: AdjustmentReason = AdjustmentReason.MANUAL_ADJUST,
    note: Optional[str] = None,
    clock: Clock = utc_now,
) -> Dict[str, Any]:
    """
    여러 상품 재고를 일괄 조정합니다.
    각 조정은 독립 트랜잭션으로 커밋되어 하나의 실패가 나머지를 막지 않습니다.

    Args:
        updates: [{"product_id": UUID, "delta": int}, ...]
    """
    updated = 0
    errors: List[Dict[str, Any]] = []

    for entry in updates:
        product_id = entry["product_id"]
        try:
            with session_factory() as session:
                with session.begin():
                    ledger = InventoryLedger(session, clock=clock)
                    ledger.adjust(
                        product_id, int(entry["delta"]), created_by=created_by, reason=reason, note=note
                    )
                ledger.flush_events()
            updated += 1
        except ShopCoreError as e:
            errors.append({"product_id": str(product_id), **e.to_dict()})
        except SQLAlchemyError as e:
            logger.error(f"[INVENTORY] 일괄 조정 실패 (product={product_id}): {e}")
            failure = PersistenceFailure(str(e), operation="bulk_adjust", product_id=str(product_id))
            errors.append({"product_id": str(product_id), **failure.to_dict()})

    return {
        "processed": len(updates),
        "updated": updated,
        "failed": len(errors),
        "errors": errors,
    }
