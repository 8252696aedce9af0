"""
주문 상태 머신

상태 전환 테이블:
    PENDING    → PROCESSING, CANCELLED
    PROCESSING → SHIPPED, CANCELLED
    SHIPPED    → FULFILLED
    FULFILLED, CANCELLED → (없음)

테이블에 없는 전환은 모두 InvalidTransition으로 거부합니다.
"""
from enum import Enum

from shopcore.services.exceptions import InvalidTransition


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    FULFILLED = "FULFILLED"
    CANCELLED = "CANCELLED"


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.FULFILLED}),
    OrderStatus.FULFILLED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})

# 전환 시각을 기록할 컬럼
TIMESTAMP_COLUMNS: dict[OrderStatus, str] = {
    OrderStatus.PROCESSING: "processing_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.FULFILLED: "fulfilled_at",
    OrderStatus.CANCELLED: "cancelled_at",
}

# CANCELLED를 제외한 정방향 순서
_RANK = {
    OrderStatus.PENDING: 0,
    OrderStatus.PROCESSING: 1,
    OrderStatus.SHIPPED: 2,
    OrderStatus.FULFILLED: 3,
}


def can_transition(current: OrderStatus | str, requested: OrderStatus | str) -> bool:
    return OrderStatus(requested) in ALLOWED_TRANSITIONS[OrderStatus(current)]


def assert_transition(current: OrderStatus | str, requested: OrderStatus | str, order_id=None) -> None:
    if not can_transition(current, requested):
        raise InvalidTransition(OrderStatus(current).value, OrderStatus(requested).value, order_id=order_id)


def is_valid_history(statuses: list[OrderStatus | str]) -> bool:
    """
    관측된 상태 시퀀스가 정방향 단조 증가이거나
    PENDING/PROCESSING에서 단 한 번 CANCELLED로 끝나는지 검사
    """
    seq = [OrderStatus(s) for s in statuses]
    for prev, nxt in zip(seq, seq[1:]):
        if nxt == OrderStatus.CANCELLED:
            if prev not in CANCELLABLE_STATUSES:
                return False
            continue
        if prev == OrderStatus.CANCELLED:
            return False
        if _RANK[nxt] < _RANK[prev]:
            return False
    return True
