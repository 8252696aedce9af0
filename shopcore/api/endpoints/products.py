from fastapi import APIRouter, Depends, Query
from typing import Optional
import uuid

from shopcore.api.deps import get_scoring_engine
from shopcore.api.errors import to_http_exception
from shopcore.services.exceptions import ShopCoreError
from shopcore.services.popularity_scoring import PopularityScoringEngine

router = APIRouter()


@router.get("/popular")
def get_popular_products(
    limit: int = Query(default=20, ge=1, le=100),
    engine: PopularityScoringEngine = Depends(get_scoring_engine),
):
    return engine.get_popular_products(limit=limit)


@router.get("/trending")
def get_trending_products(
    limit: int = Query(default=20, ge=1, le=100),
    days: Optional[int] = Query(default=None, ge=1, le=90),
    engine: PopularityScoringEngine = Depends(get_scoring_engine),
):
    return engine.get_trending_products(limit=limit, days=days)


@router.get("/{product_id}/similar")
def get_similar_products(
    product_id: uuid.UUID,
    limit: int = Query(default=8, ge=1, le=50),
    engine: PopularityScoringEngine = Depends(get_scoring_engine),
):
    try:
        return engine.get_similar_products(product_id, limit=limit)
    except ShopCoreError as e:
        raise to_http_exception(e)
