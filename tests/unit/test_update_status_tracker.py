"""
점수 업데이트 상태 추적기 단위 테스트

집계기/점수 엔진은 Mock으로 대체하고, 시간은 FakeClock으로만 움직인다.
"""
import threading
import uuid
from unittest.mock import Mock

import pytest

from shopcore.services.exceptions import InvalidUpdateRequest, UpdateAlreadyInProgress
from shopcore.services.update_status_tracker import UpdateStatusTracker
from shopcore.settings import Settings


def _ok(ids=()):
    return {"processed": len(ids), "updated": len(ids), "failed": 0, "failed_ids": [], "errors": []}


@pytest.fixture
def aggregator():
    mock = Mock()
    mock.recalculate_all_product_metrics.return_value = _ok()
    mock.recalculate_metrics_for.side_effect = lambda ids: _ok(ids)
    return mock


@pytest.fixture
def scoring():
    mock = Mock()
    mock.update_all_product_scores.return_value = _ok()
    mock.update_product_scores.side_effect = lambda ids: _ok(ids)
    return mock


@pytest.fixture
def tracker(aggregator, scoring, clock):
    settings = Settings(update_batch_size=2, update_min_interval_seconds=300, update_max_pending=3)
    return UpdateStatusTracker(aggregator=aggregator, scoring=scoring, clock=clock, settings=settings)


@pytest.mark.unit
class TestUpdateStatus:
    def test_initial_status_is_never_run(self, tracker):
        status = tracker.get_update_status()
        assert status == {
            "last_full_update_at": None,
            "time_since_last_update": None,
            "in_progress": False,
            "pending_count": 0,
        }

    def test_time_since_last_update_follows_clock(self, tracker, clock):
        tracker.force_full_update()
        clock.advance(seconds=90)

        status = tracker.get_update_status()
        assert status["last_full_update_at"] is not None
        assert status["time_since_last_update"] == 90


@pytest.mark.unit
class TestForceFullUpdate:
    def test_runs_metrics_then_scores(self, tracker, aggregator, scoring):
        calls = []
        aggregator.recalculate_all_product_metrics.side_effect = lambda: calls.append("metrics") or _ok()
        scoring.update_all_product_scores.side_effect = lambda: calls.append("scores") or _ok()

        tracker.force_full_update()

        assert calls == ["metrics", "scores"]
        assert tracker.in_progress is False

    def test_concurrent_call_rejected(self, tracker, aggregator):
        entered = threading.Event()
        release = threading.Event()

        def slow_metrics():
            entered.set()
            release.wait(timeout=5)
            return _ok()

        aggregator.recalculate_all_product_metrics.side_effect = slow_metrics
        worker = threading.Thread(target=tracker.force_full_update)
        worker.start()
        try:
            assert entered.wait(timeout=5)
            assert tracker.get_update_status()["in_progress"] is True
            with pytest.raises(UpdateAlreadyInProgress):
                tracker.force_full_update()
        finally:
            release.set()
            worker.join(timeout=5)

        assert tracker.in_progress is False
        assert aggregator.recalculate_all_product_metrics.call_count == 1

    def test_failure_clears_in_progress(self, tracker, scoring):
        scoring.update_all_product_scores.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            tracker.force_full_update()

        assert tracker.in_progress is False
        assert tracker.last_full_update_at is None

    def test_clears_queued_products(self, tracker):
        tracker.queue_product_update(uuid.uuid4())
        tracker.force_full_update()
        assert tracker.get_update_status()["pending_count"] == 0


@pytest.mark.unit
class TestManualAndQueuedUpdates:
    def test_manual_update_requires_ids(self, tracker):
        with pytest.raises(InvalidUpdateRequest):
            tracker.trigger_manual_update([])

    def test_manual_update_touches_only_given_ids(self, tracker, aggregator, scoring):
        a, b = uuid.uuid4(), uuid.uuid4()
        result = tracker.trigger_manual_update([a, b, a])

        assert result["requested"] == 2
        aggregator.recalculate_metrics_for.assert_called_once_with([a, b])
        scoring.update_product_scores.assert_called_once_with([a, b])
        aggregator.recalculate_all_product_metrics.assert_not_called()

    def test_queue_is_bounded(self, tracker):
        ids = [uuid.uuid4() for _ in range(4)]
        accepted = [tracker.queue_product_update(i) for i in ids]
        assert accepted == [True, True, True, False]
        assert tracker.queue_product_update(ids[0]) is True  # 이미 대기 중

    def test_process_pending_respects_batch_and_interval(self, tracker, clock, scoring):
        ids = [uuid.uuid4() for _ in range(3)]
        for product_id in ids:
            tracker.queue_product_update(product_id)

        first = tracker.process_pending_updates()
        assert first["status"] == "processed"
        assert first["processed"] == 2
        assert first["pending_count"] == 1

        # 최소 간격 전에는 건너뜀
        clock.advance(seconds=60)
        assert tracker.process_pending_updates()["reason"] == "too_soon"

        clock.advance(seconds=300)
        second = tracker.process_pending_updates()
        assert second["processed"] == 1
        assert second["pending_count"] == 0

        clock.advance(seconds=300)
        assert tracker.process_pending_updates()["reason"] == "empty"

    def test_failed_products_stay_queued(self, tracker, scoring):
        bad = uuid.uuid4()
        tracker.queue_product_update(bad)
        scoring.update_product_scores.side_effect = lambda ids: {
            "processed": len(ids), "updated": 0, "failed": 1, "failed_ids": [bad], "errors": []
        }

        result = tracker.process_pending_updates()

        assert result["failed"] == 1
        assert bad in tracker.pending_product_ids
