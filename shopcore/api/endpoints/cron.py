from fastapi import APIRouter, Depends, HTTPException
import logging

from shopcore.api.deps import get_clock, get_update_tracker, verify_cron_secret
from shopcore.api.errors import to_http_exception
from shopcore.services.clock import Clock
from shopcore.services.exceptions import ShopCoreError
from shopcore.services.jobs import run_job
from shopcore.services.update_status_tracker import UpdateStatusTracker
from shopcore.session_factory import SessionFactory, get_session_factory

router = APIRouter(dependencies=[Depends(verify_cron_secret)])

logger = logging.getLogger(__name__)


def _run(job_name: str, session_factory, clock, tracker):
    try:
        return run_job(job_name, trigger="cron", session_factory=session_factory, clock=clock, tracker=tracker)
    except ShopCoreError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"[JOB] cron {job_name} 실패: {e}")
        raise HTTPException(status_code=500, detail=f"{job_name} 실행 중 오류가 발생했습니다.")


@router.post("/process-orders")
def process_orders(
    session_factory: SessionFactory = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
    tracker: UpdateStatusTracker = Depends(get_update_tracker),
):
    """PENDING → PROCESSING, PROCESSING → SHIPPED 스윕을 차례로 실행"""
    return _run("process-orders", session_factory, clock, tracker)


@router.post("/update-scores")
def update_scores(
    session_factory: SessionFactory = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
    tracker: UpdateStatusTracker = Depends(get_update_tracker),
):
    """지표 재계산 + 점수 재계산 (이미 실행 중이면 409)"""
    return _run("full-update", session_factory, clock, tracker)
