"""
Order / Inventory Exception Classes

주문·재고·점수 코어의 구조화된 에러 정의
"""
from typing import Optional, Dict, Any
from enum import Enum


class ErrorSeverity(Enum):
    """에러 심각도 레벨"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ShopCoreError(Exception):
    """
    Base exception for all order/inventory core errors

    Attributes:
        message: 에러 메시지
        error_code: 에러 코드
        severity: 에러 심각도
        context: 추가 컨텍스트 정보
        recoverable: 재시도로 복구 가능한지 여부
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = False
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.severity = severity
        self.context = context or {}
        self.recoverable = recoverable
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """에러 정보를 딕셔너리로 변환"""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "context": self.context,
            "recoverable": self.recoverable
        }


class InvalidOrderInput(ShopCoreError):
    """
    잘못된 주문 입력 (빈 항목, 수량 오류, 합계 불일치, 식별자 중복 등)

    Attributes:
        field: 문제가 된 필드 이름
    """

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        context = {"field": field}
        context.update(kwargs)
        super().__init__(
            message=message,
            error_code="INVALID_ORDER_INPUT",
            severity=ErrorSeverity.LOW,
            context=context,
        )
        self.field = field


class InsufficientInventory(ShopCoreError):
    """
    재고 부족 (예약 시점)

    Attributes:
        product_id: 재고가 소진된 상품
        requested: 요청 수량
        available: 현재 가용 수량
    """

    def __init__(self, product_id: Any, requested: int, available: int):
        super().__init__(
            message=f"재고가 부족합니다: product={product_id}, 요청={requested}, 가용={available}",
            error_code="INSUFFICIENT_INVENTORY",
            severity=ErrorSeverity.LOW,
            context={
                "product_id": str(product_id),
                "requested": requested,
                "available": available,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class InvalidTransition(ShopCoreError):
    """
    허용되지 않는 주문 상태 전환 (버그 신호)
    """

    def __init__(self, current: str, requested: str, order_id: Any = None):
        super().__init__(
            message=f"허용되지 않는 상태 전환입니다: {current} → {requested}",
            error_code="INVALID_TRANSITION",
            severity=ErrorSeverity.HIGH,
            context={
                "order_id": str(order_id) if order_id is not None else None,
                "current": current,
                "requested": requested,
            },
        )
        self.current = current
        self.requested = requested
        self.order_id = order_id


class ProductNotFound(ShopCoreError):
    def __init__(self, product_id: Any):
        super().__init__(
            message=f"상품을 찾을 수 없습니다: {product_id}",
            error_code="PRODUCT_NOT_FOUND",
            severity=ErrorSeverity.LOW,
            context={"product_id": str(product_id)},
        )
        self.product_id = product_id


class OrderNotFound(ShopCoreError):
    def __init__(self, order_id: Any):
        super().__init__(
            message=f"주문을 찾을 수 없습니다: {order_id}",
            error_code="ORDER_NOT_FOUND",
            severity=ErrorSeverity.LOW,
            context={"order_id": str(order_id)},
        )
        self.order_id = order_id


class InvalidAdjustment(ShopCoreError):
    """재고 조정 결과가 음수가 되는 경우"""

    def __init__(self, product_id: Any, delta: int, current: int):
        super().__init__(
            message=f"재고가 음수가 되는 조정입니다: product={product_id}, 현재={current}, 변경={delta}",
            error_code="INVALID_ADJUSTMENT",
            severity=ErrorSeverity.LOW,
            context={"product_id": str(product_id), "delta": delta, "current": current},
        )
        self.product_id = product_id
        self.delta = delta
        self.current = current


class UpdateAlreadyInProgress(ShopCoreError):
    """전체 재계산이 이미 실행 중 (나중에 재시도 가능)"""

    def __init__(self, message: str = "점수 전체 업데이트가 이미 진행 중입니다"):
        super().__init__(
            message=message,
            error_code="UPDATE_ALREADY_IN_PROGRESS",
            severity=ErrorSeverity.LOW,
            recoverable=True,
        )


class InvalidUpdateRequest(ShopCoreError):
    """수동 업데이트 대상이 비어 있는 경우"""

    def __init__(self, message: str = "업데이트할 상품 ID가 비어 있습니다"):
        super().__init__(
            message=message,
            error_code="INVALID_UPDATE_REQUEST",
            severity=ErrorSeverity.LOW,
        )


class PersistenceFailure(ShopCoreError):
    """
    저장소 계층 실패 (다음 스케줄 실행에서 재시도)

    Attributes:
        operation: 수행하려던 작업
    """

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        context = {"operation": operation}
        context.update(kwargs)
        super().__init__(
            message=message,
            error_code="PERSISTENCE_FAILURE",
            severity=ErrorSeverity.HIGH,
            context=context,
            recoverable=True,
        )
        self.operation = operation


class InvalidActivityInput(ShopCoreError):
    """알 수 없는 활동 유형 또는 식별자(user/session) 누락"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="INVALID_ACTIVITY_INPUT",
            severity=ErrorSeverity.LOW,
            context={"field": field},
        )
        self.field = field
