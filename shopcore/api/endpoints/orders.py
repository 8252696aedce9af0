from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from typing import List, Optional
import logging
import uuid

from shopcore.api.deps import get_order_service
from shopcore.api.errors import to_http_exception
from shopcore.schemas.order import CancelOrderIn, CreateOrderIn, OrderResponse, OrderStatusHistoryResponse
from shopcore.services.exceptions import ShopCoreError
from shopcore.services.order_processing_service import OrderProcessingService
from shopcore.services.order_state import OrderStatus

router = APIRouter()

logger = logging.getLogger(__name__)


@router.post("", response_model=OrderResponse, status_code=201)
def create_order(
    payload: CreateOrderIn,
    background_tasks: BackgroundTasks,
    service: OrderProcessingService = Depends(get_order_service),
):
    """
    주문 생성 (재고 예약 포함). 같은 payment_reference 재요청은 기존 주문을 반환합니다.
    첫 상태 전환은 응답 이후 백그라운드에서 시도합니다.
    """
    try:
        order, created = service.submit_order(payload)
    except ShopCoreError as e:
        raise to_http_exception(e)

    # 멱등 재요청으로 돌려받은 기존 주문은 상태와 무관하게 다시 진행시키지 않는다
    if created:
        background_tasks.add_task(service.kickoff_order_lifecycle, order.id)
    return order


@router.get("", response_model=List[OrderResponse])
def list_orders(
    status: Optional[OrderStatus] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    service: OrderProcessingService = Depends(get_order_service),
):
    return service.list_orders(status=status, limit=limit, offset=offset)


@router.get("/guest/{email}", response_model=List[OrderResponse])
def list_guest_orders(email: str, service: OrderProcessingService = Depends(get_order_service)):
    return service.list_guest_orders(email)


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: uuid.UUID, service: OrderProcessingService = Depends(get_order_service)):
    try:
        return service.get_order(order_id)
    except ShopCoreError as e:
        raise to_http_exception(e)


@router.get("/{order_id}/history", response_model=List[OrderStatusHistoryResponse])
def get_order_history(order_id: uuid.UUID, service: OrderProcessingService = Depends(get_order_service)):
    try:
        return service.get_order_history(order_id)
    except ShopCoreError as e:
        raise to_http_exception(e)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: uuid.UUID,
    payload: CancelOrderIn | None = None,
    service: OrderProcessingService = Depends(get_order_service),
):
    reason = payload.reason if payload else ""
    try:
        return service.cancel_order(order_id, reason=reason, source="admin")
    except ShopCoreError as e:
        raise to_http_exception(e)


@router.post("/{order_id}/fulfil", response_model=OrderResponse)
def mark_fulfilled(order_id: uuid.UUID, service: OrderProcessingService = Depends(get_order_service)):
    try:
        return service.mark_fulfilled(order_id, source="admin")
    except ShopCoreError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"[ORDER] 배송 완료 처리 실패 (order={order_id}): {e}")
        raise HTTPException(status_code=500, detail="배송 완료 처리 중 오류가 발생했습니다.")
