import logging
from typing import Callable, Dict, List, Any

logger = logging.getLogger(__name__)

LOW_STOCK = "inventory.low_stock"
OUT_OF_STOCK = "inventory.out_of_stock"


class EventBus:
    """
    재고 임계치 통지 등 내부 컴포넌트 간 동기 이벤트 버스.
    핸들러 오류는 로그만 남기고 다른 핸들러 실행을 막지 않는다.
    """
    def __init__(self):
        self._handlers: Dict[str, List[Callable[[Any], None]]] = {}

    def subscribe(self, event_type: str, handler: Callable[[Any], None]):
        """이벤트 구독 등록"""
        if event_type not in self._handlers:
            self._handlers[event_type] = []
        self._handlers[event_type].append(handler)
        logger.debug(f"[EVENT] Subscribed to {event_type}")

    def unsubscribe(self, event_type: str, handler: Callable[[Any], None]):
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event_type: str, data: Any):
        """이벤트 발행"""
        logger.info(f"[EVENT] Publishing {event_type}")
        for handler in list(self._handlers.get(event_type, [])):
            try:
                handler(data)
            except Exception as e:
                logger.error(f"[EVENT] Exception in handler for {event_type}: {e}")

# 싱글톤 인스턴스
bus = EventBus()
