"""
cron/CLI에서 실행하는 잡 목록

각 잡은 JobRunner로 감싸져 job_runs에 실행 이력을 남깁니다.
"""
import logging
from collections.abc import Callable
from typing import Any, Dict, Optional

from shopcore.services.batching import merge_results
from shopcore.services.clock import Clock, utc_now
from shopcore.services.engagement_aggregator import EngagementAggregator
from shopcore.services.job_runner import JobRunner
from shopcore.services.order_processing_service import OrderProcessingService
from shopcore.services.popularity_scoring import PopularityScoringEngine
from shopcore.services.update_status_tracker import UpdateStatusTracker, get_update_status_tracker
from shopcore.session_factory import SessionFactory, session_factory as default_session_factory

logger = logging.getLogger(__name__)

JOB_NAMES = (
    "process-orders",
    "ship-orders",
    "recalculate-metrics",
    "update-scores",
    "full-update",
    "process-pending-updates",
)


def _process_orders(service: OrderProcessingService) -> Dict[str, Any]:
    pending = service.process_pending_orders()
    shipping = service.ship_processing_orders()
    return {
        "processed": pending["processed"] + shipping["processed"],
        "succeeded": pending["succeeded"] + shipping["succeeded"],
        "failed": pending["failed"] + shipping["failed"],
        "errors": pending["errors"] + shipping["errors"],
        "pending_processed": {k: v for k, v in pending.items() if k != "errors"},
        "shipping_processed": {k: v for k, v in shipping.items() if k != "errors"},
        "current_status": service.get_orders_needing_processing(),
    }


def _full_update(tracker: UpdateStatusTracker) -> Dict[str, Any]:
    result = tracker.force_full_update()
    merged = merge_results(result["metrics"], result["scores"])
    return {
        **merged,
        "metrics": result["metrics"],
        "scores": result["scores"],
        "finished_at": result["finished_at"],
    }


def _process_pending_updates(tracker: UpdateStatusTracker) -> Dict[str, Any]:
    # 대기열 결과의 status(processed/skipped)는 잡 상태와 겹치지 않도록 outcome으로 옮긴다
    result = tracker.process_pending_updates()
    return {
        "processed": result.get("processed", 0),
        "updated": result.get("updated", 0),
        "failed": result.get("failed", 0),
        "errors": [],
        "outcome": result["status"],
        "reason": result.get("reason"),
        "pending_count": result["pending_count"],
    }


def build_jobs(
    session_factory: SessionFactory = default_session_factory,
    clock: Clock = utc_now,
    tracker: Optional[UpdateStatusTracker] = None,
) -> Dict[str, Callable[[], Dict[str, Any]]]:
    orders = OrderProcessingService(session_factory=session_factory, clock=clock)
    aggregator = EngagementAggregator(session_factory=session_factory, clock=clock)
    scoring = PopularityScoringEngine(session_factory=session_factory, clock=clock)
    tracker = tracker or get_update_status_tracker()

    return {
        "process-orders": lambda: _process_orders(orders),
        "ship-orders": orders.ship_processing_orders,
        "recalculate-metrics": aggregator.recalculate_all_product_metrics,
        "update-scores": scoring.update_all_product_scores,
        "full-update": lambda: _full_update(tracker),
        "process-pending-updates": lambda: _process_pending_updates(tracker),
    }


def run_job(
    job_name: str,
    trigger: str = "cron",
    session_factory: SessionFactory = default_session_factory,
    clock: Clock = utc_now,
    tracker: Optional[UpdateStatusTracker] = None,
) -> Dict[str, Any]:
    jobs = build_jobs(session_factory=session_factory, clock=clock, tracker=tracker)
    if job_name not in jobs:
        raise ValueError(f"알 수 없는 잡입니다: {job_name} (가능: {', '.join(JOB_NAMES)})")

    runner = JobRunner(job_name, trigger=trigger, session_factory=session_factory, clock=clock)
    return runner.run(jobs[job_name])
