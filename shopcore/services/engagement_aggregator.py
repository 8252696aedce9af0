"""
참여 지표 집계기 (Engagement Aggregator)

상품별 view_count / cart_count / order_count / purchase_count를 원천 테이블
(order_items, activity_events)에서 매번 전체 재계산합니다.
증분 카운터가 아니므로 몇 번을 다시 실행해도 같은 결과로 수렴하고,
중간에 중단되어도 다음 실행에서 자연히 복구됩니다.

- order_count: 상품을 포함한 서로 다른 주문 수 (CANCELLED 제외)
- purchase_count: 상품 주문 수량 합계 (CANCELLED 제외)
- view_count / cart_count: activity_events의 VIEW / CART_ADD 건수
"""
import logging
import uuid
from collections.abc import Sequence
from typing import Any, Dict

from sqlalchemy import select, update, func
from sqlalchemy.orm import Session

from shopcore.models import ActivityEvent, Order, OrderItem, Product
from shopcore.services.activity_types import ActivityType
from shopcore.services.batching import apply_in_chunks, ordered_unique
from shopcore.services.clock import Clock, utc_now
from shopcore.services.order_state import OrderStatus
from shopcore.session_factory import SessionFactory, session_factory as default_session_factory
from shopcore.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class EngagementAggregator:
    def __init__(
        self,
        session_factory: SessionFactory = default_session_factory,
        clock: Clock = utc_now,
        settings: Settings = default_settings,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.settings = settings

    def recalculate_all_product_metrics(self) -> Dict[str, Any]:
        """전체 상품 지표 재계산 (청크 단위 커밋)"""
        with self.session_factory() as session:
            product_ids = list(session.scalars(select(Product.id).order_by(Product.id)).all())

        logger.info(f"[METRICS] 전체 지표 재계산 시작: {len(product_ids)}개 상품")
        result = apply_in_chunks(
            self.session_factory,
            product_ids,
            self.settings.metrics_chunk_size,
            self._apply,
            tag="METRICS",
        )
        logger.info(
            f"[METRICS] 전체 지표 재계산 완료: 갱신 {result['updated']}건, 실패 {result['failed']}건"
        )
        return result

    def recalculate_metrics_for(self, product_ids: Sequence[uuid.UUID]) -> Dict[str, Any]:
        """주어진 상품만 재계산. 존재하지 않는 ID는 갱신 0건으로 끝난다."""
        ids = ordered_unique(product_ids)
        return apply_in_chunks(
            self.session_factory,
            ids,
            self.settings.metrics_chunk_size,
            self._apply,
            tag="METRICS",
        )

    def compute_metrics(self, session: Session, product_ids: Sequence[uuid.UUID]) -> Dict[uuid.UUID, Dict[str, int]]:
        metrics: Dict[uuid.UUID, Dict[str, int]] = {
            product_id: {"view_count": 0, "cart_count": 0, "order_count": 0, "purchase_count": 0}
            for product_id in product_ids
        }
        if not product_ids:
            return metrics

        order_rows = session.execute(
            select(
                OrderItem.product_id,
                func.count(func.distinct(OrderItem.order_id)),
                func.coalesce(func.sum(OrderItem.quantity), 0),
            )
            .join(Order, Order.id == OrderItem.order_id)
            .where(OrderItem.product_id.in_(product_ids))
            .where(Order.status != OrderStatus.CANCELLED.value)
            .group_by(OrderItem.product_id)
        ).all()
        for product_id, order_count, purchase_count in order_rows:
            metrics[product_id]["order_count"] = int(order_count)
            metrics[product_id]["purchase_count"] = int(purchase_count)

        activity_rows = session.execute(
            select(ActivityEvent.product_id, ActivityEvent.activity_type, func.count(ActivityEvent.id))
            .where(ActivityEvent.product_id.in_(product_ids))
            .where(ActivityEvent.activity_type.in_([ActivityType.VIEW.value, ActivityType.CART_ADD.value]))
            .group_by(ActivityEvent.product_id, ActivityEvent.activity_type)
        ).all()
        for product_id, activity_type, count in activity_rows:
            key = "view_count" if activity_type == ActivityType.VIEW.value else "cart_count"
            metrics[product_id][key] = int(count)

        return metrics

    def _apply(self, session: Session, product_ids: Sequence[uuid.UUID]) -> int:
        now = self.clock()
        updated = 0
        for product_id, counters in self.compute_metrics(session, product_ids).items():
            updated += session.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(**counters, metrics_updated_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount
        return updated

