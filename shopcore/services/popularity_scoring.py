"""
인기 점수 엔진 (Popularity Scoring Engine)

참여 지표와 최근 활동량으로 상품별 인기 점수를 계산합니다.

    raw   = w_view*views + w_cart*carts + w_order*orders + w_purchase*purchases
            + w_recent*최근 활동 수
    raw  *= 신상품 부스트 (생성 후 score_trending_days 이내)
    score = score_max * (1 - exp(-raw / score_saturation))

모든 가중치가 0 이상이므로 각 입력에 대해 단조 증가하고, 결과는 [0, score_max]로 제한됩니다.
점수는 상품마다 UPDATE 한 번으로 기록합니다.
"""
import logging
import math
import uuid
from collections.abc import Sequence
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.orm import Session

from shopcore.models import ActivityEvent, Product
from shopcore.services.batching import apply_in_chunks, ordered_unique
from shopcore.services.clock import Clock, as_utc, utc_now
from shopcore.services.exceptions import ProductNotFound
from shopcore.session_factory import SessionFactory, session_factory as default_session_factory
from shopcore.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class PopularityScoringEngine:
    def __init__(
        self,
        session_factory: SessionFactory = default_session_factory,
        clock: Clock = utc_now,
        settings: Settings = default_settings,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.settings = settings

    def calculate_popularity_score(
        self,
        view_count: int = 0,
        cart_count: int = 0,
        order_count: int = 0,
        purchase_count: int = 0,
        recent_activity: int = 0,
        is_new: bool = False,
    ) -> float:
        s = self.settings
        raw = (
            s.score_weight_view * max(view_count, 0)
            + s.score_weight_cart * max(cart_count, 0)
            + s.score_weight_order * max(order_count, 0)
            + s.score_weight_purchase * max(purchase_count, 0)
            + s.score_recent_activity_weight * max(recent_activity, 0)
        )
        if is_new:
            raw *= s.score_new_product_boost

        score = s.score_max * (1 - math.exp(-raw / s.score_saturation))
        return round(min(max(score, 0.0), s.score_max), 4)

    # ==================== 점수 갱신 ====================

    def update_all_product_scores(self) -> Dict[str, Any]:
        with self.session_factory() as session:
            product_ids = list(session.scalars(select(Product.id).order_by(Product.id)).all())

        logger.info(f"[SCORE] 전체 점수 갱신 시작: {len(product_ids)}개 상품")
        result = apply_in_chunks(
            self.session_factory,
            product_ids,
            self.settings.metrics_chunk_size,
            self._apply,
            tag="SCORE",
        )
        logger.info(f"[SCORE] 전체 점수 갱신 완료: 갱신 {result['updated']}건, 실패 {result['failed']}건")
        return result

    def update_product_scores(self, product_ids: Sequence[uuid.UUID]) -> Dict[str, Any]:
        """주어진 상품의 점수만 다시 계산 (다른 상품은 건드리지 않음)"""
        return apply_in_chunks(
            self.session_factory,
            ordered_unique(product_ids),
            self.settings.metrics_chunk_size,
            self._apply,
            tag="SCORE",
        )

    def _apply(self, session: Session, product_ids: Sequence[uuid.UUID]) -> int:
        now = self.clock()
        since = now - timedelta(days=self.settings.score_trending_days)

        recent = dict(
            session.execute(
                select(ActivityEvent.product_id, func.count(ActivityEvent.id))
                .where(ActivityEvent.product_id.in_(product_ids))
                .where(ActivityEvent.created_at >= since)
                .group_by(ActivityEvent.product_id)
            ).all()
        )
        products = session.scalars(select(Product).where(Product.id.in_(product_ids))).all()

        updated = 0
        for product in products:
            created_at = as_utc(product.created_at)
            score = self.calculate_popularity_score(
                view_count=product.view_count,
                cart_count=product.cart_count,
                order_count=product.order_count,
                purchase_count=product.purchase_count,
                recent_activity=int(recent.get(product.id, 0)),
                is_new=created_at is not None and created_at >= since,
            )
            updated += session.execute(
                update(Product)
                .where(Product.id == product.id)
                .values(popularity_score=score, score_updated_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount
        return updated

    # ==================== 추천 조회 ====================

    def get_popular_products(self, limit: int = 20) -> List[Dict[str, Any]]:
        with self.session_factory() as session:
            products = session.scalars(
                select(Product)
                .where(Product.is_published.is_(True))
                .order_by(Product.popularity_score.desc(), Product.id.asc())
                .limit(limit)
            ).all()
        return [self._row(p, score=p.popularity_score, reason="popular") for p in products]

    def get_trending_products(self, limit: int = 20, days: Optional[int] = None) -> List[Dict[str, Any]]:
        """최근 N일 활동 수 기준 (동률은 ID 순)"""
        since = self.clock() - timedelta(days=days or self.settings.score_trending_days)
        activity_count = func.count(ActivityEvent.id).label("activity_count")

        with self.session_factory() as session:
            rows = session.execute(
                select(Product.id, activity_count)
                .join(ActivityEvent, ActivityEvent.product_id == Product.id)
                .where(Product.is_published.is_(True))
                .where(ActivityEvent.created_at >= since)
                .group_by(Product.id)
                .order_by(activity_count.desc(), Product.id.asc())
                .limit(limit)
            ).all()
            products = {
                p.id: p
                for p in session.scalars(select(Product).where(Product.id.in_([r[0] for r in rows]))).all()
            }

        return [
            self._row(products[product_id], score=float(count), reason="trending")
            for product_id, count in rows
        ]

    def get_similar_products(self, product_id: uuid.UUID, limit: int = 8) -> List[Dict[str, Any]]:
        """
        같은 카테고리(있을 때)이면서 가격이 ±similar_price_band 이내인 공개 상품.
        유사도 = 인기 점수 × (1 - 상대 가격 차이), 유사도 내림차순 → ID 오름차순.
        """
        band = Decimal(str(self.settings.similar_price_band))

        with self.session_factory() as session:
            source = session.get(Product, product_id)
            if not source:
                raise ProductNotFound(product_id)

            price = Decimal(source.price or 0)
            stmt = (
                select(Product)
                .where(Product.id != source.id)
                .where(Product.is_published.is_(True))
                .where(Product.price >= price * (1 - band))
                .where(Product.price <= price * (1 + band))
            )
            if source.category_id is not None:
                stmt = stmt.where(Product.category_id == source.category_id)
            candidates = session.scalars(stmt).all()

        scored = []
        for candidate in candidates:
            distance = float(abs(Decimal(candidate.price) - price) / price) if price > 0 else 0.0
            similarity = round(candidate.popularity_score * max(1.0 - distance, 0.0), 4)
            scored.append((similarity, candidate))

        scored.sort(key=lambda pair: (-pair[0], str(pair[1].id)))
        return [self._row(p, score=similarity, reason="similar") for similarity, p in scored[:limit]]

    @staticmethod
    def _row(product: Product, score: float, reason: str) -> Dict[str, Any]:
        return {
            "product_id": str(product.id),
            "name": product.name,
            "price": product.price,
            "category_id": str(product.category_id) if product.category_id else None,
            "popularity_score": product.popularity_score,
            "score": score,
            "reason": reason,
        }
