"""
사용자 활동 기록

VIEW / CART_ADD / ORDER 활동을 activity_events에 추가하고,
점수에 영향이 큰 활동(CART_ADD, ORDER)은 증분 점수 갱신 대기열에 넣습니다.
"""
import logging
import uuid
from typing import Optional

from shopcore.models import ActivityEvent, Product
from shopcore.services.activity_types import SCORE_AFFECTING, ActivityType
from shopcore.services.clock import Clock, utc_now
from shopcore.services.exceptions import InvalidActivityInput, ProductNotFound
from shopcore.services.update_status_tracker import UpdateStatusTracker, get_update_status_tracker
from shopcore.session_factory import SessionFactory, session_factory as default_session_factory

logger = logging.getLogger(__name__)


class ActivityTracker:
    def __init__(
        self,
        session_factory: SessionFactory = default_session_factory,
        clock: Clock = utc_now,
        update_tracker: Optional[UpdateStatusTracker] = None,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.update_tracker = update_tracker

    def track_activity(
        self,
        product_id: uuid.UUID,
        activity_type: ActivityType | str,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> ActivityEvent:
        try:
            if isinstance(activity_type, ActivityType):
                activity = activity_type
            else:
                activity = ActivityType(str(activity_type).strip().upper())
        except ValueError:
            raise InvalidActivityInput(f"알 수 없는 활동 유형입니다: {activity_type}", field="activity_type")

        if bool(user_id) == bool(session_id):
            raise InvalidActivityInput("user_id 또는 session_id 중 정확히 하나가 필요합니다", field="user_id")

        with self.session_factory() as session:
            with session.begin():
                if session.get(Product, product_id) is None:
                    raise ProductNotFound(product_id)
                event = ActivityEvent(
                    product_id=product_id,
                    activity_type=activity.value,
                    user_id=user_id,
                    session_id=session_id,
                    meta=metadata,
                    created_at=self.clock(),
                )
                session.add(event)

        if activity in SCORE_AFFECTING:
            tracker = self.update_tracker or get_update_status_tracker()
            tracker.queue_product_update(product_id)

        logger.debug(f"[ACTIVITY] {activity.value} 기록: product={product_id}")
        return event
