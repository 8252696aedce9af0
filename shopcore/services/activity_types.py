from enum import Enum


class ActivityType(str, Enum):
    VIEW = "VIEW"
    CART_ADD = "CART_ADD"
    ORDER = "ORDER"


# 점수에 바로 반영할 가치가 있는 활동 (증분 업데이트 큐에 넣음)
SCORE_AFFECTING = frozenset({ActivityType.CART_ADD, ActivityType.ORDER})
