import time
import logging
import traceback
from collections.abc import Callable
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from shopcore.models import JobRun, JobRunError
from shopcore.services.clock import Clock, utc_now
from shopcore.services.exceptions import ShopCoreError
from shopcore.session_factory import SessionFactory, session_factory as default_session_factory

logger = logging.getLogger(__name__)


class JobRunner:
    """
    cron/CLI 잡 공통 러너.
    - 실행 이력(JobRun) 및 항목별 에러(JobRunError) 기록
    - 잡 함수는 {"processed", "succeeded"|"updated", "failed", "errors"} 형태의 결과를 반환
    """
    def __init__(
        self,
        job_name: str,
        trigger: str = "cron",
        session_factory: SessionFactory = default_session_factory,
        clock: Clock = utc_now,
    ):
        self.job_name = job_name
        self.trigger = trigger
        self.session_factory = session_factory
        self.clock = clock

    def run(self, func: Callable[[], Dict[str, Any]], meta: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        잡을 감싸서 실행합니다.

        예상된 "할 일 없음"은 예외가 아니라 처리 0건의 결과로 기록됩니다.
        ShopCoreError(예: UpdateAlreadyInProgress)는 실행 이력에 fail로 남긴 뒤 다시 던집니다.
        """
        with self.session_factory() as session:
            with session.begin():
                job_run = JobRun(
                    job_name=self.job_name,
                    trigger=self.trigger,
                    status="running",
                    started_at=self.clock(),
                    meta=meta or {},
                    created_at=self.clock(),
                )
                session.add(job_run)
        run_id = job_run.id

        start_time = time.time()
        logger.info(f"[JOB] Starting run {run_id} ({self.job_name}, trigger={self.trigger})")

        result: Dict[str, Any] = {}
        status = "running"
        errors: List[Dict[str, Any]] = []
        failure: Optional[BaseException] = None

        try:
            result = func() or {}
            errors = list(result.get("errors", []))
            status = "success" if not errors and not result.get("failed") else "partial"
        except Exception as e:
            logger.error(f"[JOB] Run {run_id} encountered a critical failure: {e}")
            status = "fail"
            failure = e
            code = e.error_code if isinstance(e, ShopCoreError) else type(e).__name__
            errors = [{
                "entity_type": "system",
                "entity_id": None,
                "error_code": code,
                "message": str(e),
                "stack": traceback.format_exc(),
            }]
        finally:
            duration_ms = int((time.time() - start_time) * 1000)
            with self.session_factory() as session:
                with session.begin():
                    job_run = session.get(JobRun, run_id)
                    job_run.status = status
                    job_run.finished_at = self.clock()
                    job_run.duration_ms = duration_ms
                    job_run.processed_count = int(result.get("processed", 0))
                    job_run.succeeded_count = int(result.get("succeeded", result.get("updated", 0)))
                    job_run.error_count = len(errors) or int(result.get("failed", 0))
                    job_run.meta = {**(meta or {}), "result": _summary(result)}
                    for error in errors:
                        self.log_error(session, run_id, error)

            logger.info(
                f"[JOB] Run {run_id} completed. Status: {status}, "
                f"Processed: {result.get('processed', 0)}, Errors: {len(errors)}"
            )

        if failure is not None:
            raise failure

        return {"run_id": str(run_id), "job": self.job_name, "status": status, "duration_ms": duration_ms, **result}

    @staticmethod
    def log_error(session, run_id, error: Dict[str, Any]) -> None:
        """상세 에러 기록 보조 메서드"""
        message = error.get("message") or ""
        if error.get("stack"):
            message = f"{message}\n{error['stack']}"
        session.add(
            JobRunError(
                run_id=run_id,
                entity_type=error.get("entity_type") or "unknown",
                entity_id=error.get("entity_id"),
                error_code=error.get("error_code"),
                message=message,
            )
        )


def _summary(result: Dict[str, Any]) -> Dict[str, Any]:
    # 중첩 결과(지표/점수)는 카운트만 남긴다
    summary: Dict[str, Any] = {}
    for key, value in result.items():
        if key in ("errors", "failed_ids"):
            continue
        if isinstance(value, dict):
            summary[key] = {k: v for k, v in value.items() if isinstance(v, (int, float, str))}
        elif isinstance(value, (int, float, str, bool)) or value is None:
            summary[key] = value
        else:
            summary[key] = str(value)
    return summary


def list_recent_job_runs(
    limit: int = 20,
    job_name: Optional[str] = None,
    session_factory: SessionFactory = default_session_factory,
) -> List[Dict[str, Any]]:
    with session_factory() as session:
        stmt = select(JobRun)
        if job_name:
            stmt = stmt.where(JobRun.job_name == job_name)
        runs = session.scalars(stmt.order_by(JobRun.started_at.desc(), JobRun.id.desc()).limit(limit)).all()

        error_rows = session.scalars(
            select(JobRunError).where(JobRunError.run_id.in_([r.id for r in runs]))
        ).all() if runs else []

    errors_by_run: Dict[Any, List[Dict[str, Any]]] = {}
    for err in error_rows:
        errors_by_run.setdefault(err.run_id, []).append({
            "entity_type": err.entity_type,
            "entity_id": err.entity_id,
            "error_code": err.error_code,
            "message": err.message,
        })

    return [
        {
            "id": str(run.id),
            "job_name": run.job_name,
            "trigger": run.trigger,
            "status": run.status,
            "started_at": run.started_at,
            "finished_at": run.finished_at,
            "duration_ms": run.duration_ms,
            "processed_count": run.processed_count,
            "succeeded_count": run.succeeded_count,
            "error_count": run.error_count,
            "meta": run.meta,
            "errors": errors_by_run.get(run.id, []),
        }
        for run in runs
    ]
