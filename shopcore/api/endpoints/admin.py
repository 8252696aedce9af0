from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
import logging

from shopcore.api.deps import get_clock, get_update_tracker
from shopcore.api.errors import to_http_exception
from shopcore.schemas.activity import ManualUpdateIn
from shopcore.services.clock import Clock
from shopcore.services.exceptions import ShopCoreError
from shopcore.services.job_runner import list_recent_job_runs
from shopcore.services.jobs import run_job
from shopcore.services.update_status_tracker import UpdateStatusTracker
from shopcore.session_factory import SessionFactory, get_session_factory

router = APIRouter()

logger = logging.getLogger(__name__)


def _run_admin_job(job_name: str, session_factory, clock, tracker):
    try:
        return run_job(job_name, trigger="admin", session_factory=session_factory, clock=clock, tracker=tracker)
    except ShopCoreError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"[JOB] admin {job_name} 실패: {e}")
        raise HTTPException(status_code=500, detail=f"{job_name} 실행 중 오류가 발생했습니다.")


@router.get("/update-status")
def get_update_status(tracker: UpdateStatusTracker = Depends(get_update_tracker)):
    return tracker.get_update_status()


@router.post("/update-scores")
def force_full_update(
    session_factory: SessionFactory = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
    tracker: UpdateStatusTracker = Depends(get_update_tracker),
):
    return _run_admin_job("full-update", session_factory, clock, tracker)


@router.post("/update-scores/process-pending")
def process_pending_updates(
    session_factory: SessionFactory = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
    tracker: UpdateStatusTracker = Depends(get_update_tracker),
):
    """증분 갱신 대기열 처리. 건너뛴 경우 outcome=skipped와 사유를 돌려줍니다."""
    return _run_admin_job("process-pending-updates", session_factory, clock, tracker)


@router.post("/update-scores/manual")
def trigger_manual_update(payload: ManualUpdateIn, tracker: UpdateStatusTracker = Depends(get_update_tracker)):
    """지정 상품만 지표/점수 재계산"""
    try:
        return tracker.trigger_manual_update(payload.product_ids)
    except ShopCoreError as e:
        raise to_http_exception(e)


@router.post("/products/recalculate-metrics")
def recalculate_metrics(
    session_factory: SessionFactory = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
    tracker: UpdateStatusTracker = Depends(get_update_tracker),
):
    return _run_admin_job("recalculate-metrics", session_factory, clock, tracker)


@router.get("/diagnostics/jobs")
def get_recent_job_runs(
    limit: int = Query(default=20, ge=1, le=200),
    job_name: Optional[str] = Query(default=None),
    session_factory: SessionFactory = Depends(get_session_factory),
):
    return list_recent_job_runs(limit=limit, job_name=job_name, session_factory=session_factory)
