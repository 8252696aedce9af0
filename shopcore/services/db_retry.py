import logging

from sqlalchemy.exc import OperationalError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from shopcore.settings import settings

logger = logging.getLogger(__name__)


# 데드락/직렬화 실패 등 일시적 DB 오류만 재시도한다.
# 비즈니스 오류(재고 부족, 잘못된 전환)는 재시도 대상이 아님.
db_retry = retry(
    stop=stop_after_attempt(settings.db_retry_count),
    wait=wait_exponential(multiplier=0.2, min=0.2, max=5),
    retry=retry_if_exception_type(OperationalError),
    reraise=True,
    before_sleep=lambda retry_state: logger.warning(
        f"[DB] 트랜잭션 재시도 중... ({retry_state.attempt_number}회째): {retry_state.outcome.exception()}"
    ),
)
