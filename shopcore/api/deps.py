from fastapi import Depends, Header, HTTPException

from shopcore.services.activity_tracker import ActivityTracker
from shopcore.services.clock import Clock, utc_now
from shopcore.services.order_processing_service import OrderProcessingService
from shopcore.services.popularity_scoring import PopularityScoringEngine
from shopcore.services.update_status_tracker import UpdateStatusTracker, get_update_status_tracker
from shopcore.session_factory import SessionFactory, get_session_factory
from shopcore.settings import settings


def get_clock() -> Clock:
    return utc_now


def get_order_service(
    session_factory: SessionFactory = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
) -> OrderProcessingService:
    return OrderProcessingService(session_factory=session_factory, clock=clock)


def get_scoring_engine(
    session_factory: SessionFactory = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
) -> PopularityScoringEngine:
    return PopularityScoringEngine(session_factory=session_factory, clock=clock)


def get_update_tracker() -> UpdateStatusTracker:
    return get_update_status_tracker()


def get_activity_tracker(
    session_factory: SessionFactory = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
    update_tracker: UpdateStatusTracker = Depends(get_update_tracker),
) -> ActivityTracker:
    return ActivityTracker(session_factory=session_factory, clock=clock, update_tracker=update_tracker)


def verify_cron_secret(authorization: str | None = Header(default=None)) -> None:
    """cron_secret이 설정된 경우에만 Bearer 토큰을 검사"""
    if settings.cron_secret and authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(status_code=401, detail="인증되지 않은 cron 요청입니다.")
