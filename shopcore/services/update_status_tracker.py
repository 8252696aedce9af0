"""
점수 업데이트 상태 추적기 (Update Scheduler / Status Tracker)

프로세스 전역(in-memory) 상태:
- last_full_update_at: 마지막 전체 재계산 시각 (None = 실행 이력 없음)
- pending_product_ids: 증분 점수 갱신 대기 상품
- in_progress: 재계산 실행 중 여부

영속화하지 않으므로 재시작 시 "마지막 업데이트" 기억을 잃지만,
재계산은 멱등이라 정확성 문제는 없습니다.
수평 확장 시에는 이 인터페이스 뒤를 advisory lock 등으로 교체합니다.
"""
import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from shopcore.services.batching import ordered_unique
from shopcore.services.clock import Clock, utc_now
from shopcore.services.engagement_aggregator import EngagementAggregator
from shopcore.services.exceptions import InvalidUpdateRequest, UpdateAlreadyInProgress
from shopcore.services.popularity_scoring import PopularityScoringEngine
from shopcore.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class UpdateStatusTracker:
    def __init__(
        self,
        aggregator: Optional[EngagementAggregator] = None,
        scoring: Optional[PopularityScoringEngine] = None,
        clock: Clock = utc_now,
        settings: Settings = default_settings,
    ):
        self.aggregator = aggregator or EngagementAggregator(clock=clock, settings=settings)
        self.scoring = scoring or PopularityScoringEngine(clock=clock, settings=settings)
        self.clock = clock
        self.settings = settings

        self._lock = threading.Lock()
        self.last_full_update_at: Optional[datetime] = None
        self.last_update_at: Optional[datetime] = None  # 전체/증분 포함
        self.pending_product_ids: set[uuid.UUID] = set()
        self.in_progress = False

    def get_update_status(self) -> Dict[str, Any]:
        with self._lock:
            last = self.last_full_update_at
            return {
                "last_full_update_at": last,
                "time_since_last_update": (self.clock() - last).total_seconds() if last else None,
                "in_progress": self.in_progress,
                "pending_count": len(self.pending_product_ids),
            }

    def _begin(self) -> None:
        with self._lock:
            if self.in_progress:
                raise UpdateAlreadyInProgress()
            self.in_progress = True

    def force_full_update(self) -> Dict[str, Any]:
        """
        지표 재계산 → 점수 재계산을 연속 실행합니다.
        이미 실행 중이면 UpdateAlreadyInProgress (진행 중인 작업은 중단하지 않음).
        """
        self._begin()
        started_at = self.clock()
        logger.info("[UPDATE] 전체 업데이트 시작")
        try:
            with self._lock:
                queued = set(self.pending_product_ids)

            metrics = self.aggregator.recalculate_all_product_metrics()
            scores = self.scoring.update_all_product_scores()

            finished_at = self.clock()
            with self._lock:
                # 시작 시점에 대기 중이던 상품은 이번 전체 갱신에 포함됨
                self.pending_product_ids -= queued
                self.last_full_update_at = finished_at
                self.last_update_at = finished_at
        finally:
            with self._lock:
                self.in_progress = False

        logger.info(
            f"[UPDATE] 전체 업데이트 완료: 지표 {metrics['updated']}건, 점수 {scores['updated']}건, "
            f"실패 {metrics['failed'] + scores['failed']}건"
        )
        return {
            "started_at": started_at,
            "finished_at": finished_at,
            "metrics": metrics,
            "scores": scores,
        }

    def trigger_manual_update(self, product_ids: Sequence[uuid.UUID]) -> Dict[str, Any]:
        """지정한 상품만 지표/점수 재계산 (빈 목록은 InvalidUpdateRequest)"""
        ids = ordered_unique(product_ids or [])
        if not ids:
            raise InvalidUpdateRequest()

        logger.info(f"[UPDATE] 수동 업데이트: {len(ids)}개 상품")
        metrics = self.aggregator.recalculate_metrics_for(ids)
        scores = self.scoring.update_product_scores(ids)

        with self._lock:
            self.pending_product_ids -= set(ids) - set(scores["failed_ids"]) - set(metrics["failed_ids"])
            self.last_update_at = self.clock()

        return {
            "requested": len(ids),
            "metrics": metrics,
            "scores": scores,
        }

    def queue_product_update(self, product_id: uuid.UUID) -> bool:
        """증분 갱신 대기열에 추가. 대기열이 가득 차면 False."""
        with self._lock:
            if product_id in self.pending_product_ids:
                return True
            if len(self.pending_product_ids) >= self.settings.update_max_pending:
                logger.debug(f"[UPDATE] 대기열 가득 참 ({self.settings.update_max_pending}), {product_id} 건너뜀")
                return False
            self.pending_product_ids.add(product_id)
            return True

    def process_pending_updates(self) -> Dict[str, Any]:
        """
        대기 상품 중 최대 update_batch_size개를 갱신합니다.
        실행 중이거나, 대기열이 비었거나, 최소 간격이 지나지 않았으면 건너뜁니다.
        실패한 상품은 대기열에 남습니다.
        """
        with self._lock:
            reason = None
            if self.in_progress:
                reason = "in_progress"
            elif not self.pending_product_ids:
                reason = "empty"
            elif (
                self.last_update_at is not None
                and (self.clock() - self.last_update_at).total_seconds() < self.settings.update_min_interval_seconds
            ):
                reason = "too_soon"

            if reason:
                return {"status": "skipped", "reason": reason, "pending_count": len(self.pending_product_ids)}

            batch: List[uuid.UUID] = sorted(self.pending_product_ids, key=str)[: self.settings.update_batch_size]
            self.in_progress = True

        try:
            metrics = self.aggregator.recalculate_metrics_for(batch)
            scores = self.scoring.update_product_scores(batch)
            failed = set(metrics["failed_ids"]) | set(scores["failed_ids"])
        finally:
            with self._lock:
                self.in_progress = False
                self.last_update_at = self.clock()

        with self._lock:
            self.pending_product_ids -= set(batch) - failed
            remaining = len(self.pending_product_ids)

        logger.info(f"[UPDATE] 증분 업데이트: {len(batch) - len(failed)}/{len(batch)}건 완료, 대기 {remaining}건")
        return {
            "status": "processed",
            "processed": len(batch),
            "updated": len(batch) - len(failed),
            "failed": len(failed),
            "pending_count": remaining,
        }


_tracker: Optional[UpdateStatusTracker] = None


def get_update_status_tracker() -> UpdateStatusTracker:
    global _tracker
    if _tracker is None:
        _tracker = UpdateStatusTracker()
    return _tracker
