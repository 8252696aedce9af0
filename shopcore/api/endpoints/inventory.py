from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List
import uuid

from shopcore.api.deps import get_clock
from shopcore.api.errors import to_http_exception
from shopcore.db import get_session
from shopcore.models import Product
from shopcore.schemas.inventory import BulkAdjustIn, InventoryAdjustIn, InventoryAdjustmentResponse
from shopcore.services.clock import Clock
from shopcore.services.exceptions import ProductNotFound, ShopCoreError
from shopcore.services.inventory_ledger import InventoryLedger, bulk_adjust
from shopcore.session_factory import SessionFactory, get_session_factory

router = APIRouter()


@router.get("/low-stock")
def get_low_stock_products(
    limit: int = Query(default=50, ge=1, le=500),
    session: Session = Depends(get_session),
):
    return InventoryLedger(session).low_stock_products(limit=limit)


@router.get("/out-of-stock")
def get_out_of_stock_products(
    limit: int = Query(default=50, ge=1, le=500),
    session: Session = Depends(get_session),
):
    return InventoryLedger(session).out_of_stock_products(limit=limit)


@router.get("/summary")
def get_inventory_summary(session: Session = Depends(get_session)):
    return InventoryLedger(session).get_inventory_summary()


@router.get("/{product_id}/history", response_model=List[InventoryAdjustmentResponse])
def get_inventory_history(
    product_id: uuid.UUID,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    session: Session = Depends(get_session),
):
    if session.get(Product, product_id) is None:
        raise to_http_exception(ProductNotFound(product_id))
    return InventoryLedger(session).get_inventory_history(product_id=product_id, limit=limit, offset=offset)


@router.post("/adjust")
def adjust_inventory(
    payload: InventoryAdjustIn,
    session_factory: SessionFactory = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
):
    """관리자 수동 재고 조정 (결과가 음수면 400)"""
    try:
        with session_factory() as session:
            with session.begin():
                ledger = InventoryLedger(session, clock=clock)
                inventory = ledger.adjust(
                    payload.product_id,
                    payload.delta,
                    created_by=payload.created_by,
                    reason=payload.reason,
                    note=payload.note,
                )
        ledger.flush_events()
    except ShopCoreError as e:
        raise to_http_exception(e)

    return {"product_id": str(payload.product_id), "inventory": inventory}


@router.post("/bulk-adjust")
def bulk_adjust_inventory(
    payload: BulkAdjustIn,
    session_factory: SessionFactory = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
):
    return bulk_adjust(
        session_factory,
        [entry.model_dump() for entry in payload.updates],
        created_by=payload.created_by,
        reason=payload.reason,
        note=payload.note,
        clock=clock,
    )
