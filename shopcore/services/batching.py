"""
청크 단위 커밋 헬퍼

전체 재계산 작업(지표/점수)은 상품 ID를 청크로 나누어 청크마다 독립 트랜잭션으로 커밋한다.
청크가 실패하면 해당 청크의 상품을 하나씩 다시 적용해 실패를 상품 단위로 격리한다.
"""
import logging
import uuid
from collections.abc import Callable, Iterator, Sequence
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from shopcore.services.db_retry import db_retry
from shopcore.services.exceptions import PersistenceFailure, ShopCoreError
from shopcore.session_factory import SessionFactory

logger = logging.getLogger(__name__)

ChunkApplier = Callable[[Session, Sequence[uuid.UUID]], int]


def chunked(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def apply_in_chunks(
    session_factory: SessionFactory,
    product_ids: Sequence[uuid.UUID],
    chunk_size: int,
    apply: ChunkApplier,
    tag: str,
) -> Dict[str, Any]:
    """
    Args:
        apply: (session, ids) → 갱신된 행 수. 트랜잭션은 이 함수가 연다.

    Returns:
        {"processed": n, "updated": n, "failed": n, "failed_ids": [...], "errors": [...]}
    """
    result: Dict[str, Any] = {
        "processed": len(product_ids),
        "updated": 0,
        "failed": 0,
        "failed_ids": [],
        "errors": [],
    }

    @db_retry
    def _commit(ids: Sequence[uuid.UUID]) -> int:
        with session_factory() as session:
            with session.begin():
                return apply(session, ids)

    for index, chunk in enumerate(chunked(list(product_ids), chunk_size)):
        try:
            result["updated"] += _commit(chunk)
            logger.debug(f"[{tag}] 청크 {index + 1} 커밋 ({len(chunk)}개)")
            continue
        except Exception as e:
            logger.warning(f"[{tag}] 청크 {index + 1} 실패, 상품 단위로 재시도합니다: {e}")

        for product_id in chunk:
            try:
                result["updated"] += _commit([product_id])
            except Exception as e:
                logger.error(f"[{tag}] 상품 {product_id} 갱신 실패: {e}")
                error = e if isinstance(e, ShopCoreError) else PersistenceFailure(str(e), operation=tag.lower())
                result["failed"] += 1
                result["failed_ids"].append(product_id)
                result["errors"].append({
                    "entity_type": "product",
                    "entity_id": str(product_id),
                    "error_code": error.error_code,
                    "message": error.message,
                })

    return result


def merge_results(*results: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {"processed": 0, "updated": 0, "failed": 0, "errors": []}
    for result in results:
        merged["processed"] += result.get("processed", 0)
        merged["updated"] += result.get("updated", 0)
        merged["failed"] += result.get("failed", 0)
        merged["errors"].extend(result.get("errors", []))
    return merged


def ordered_unique(product_ids: Sequence[uuid.UUID]) -> List[uuid.UUID]:
    seen = set()
    unique = []
    for product_id in product_ids:
        if product_id not in seen:
            seen.add(product_id)
            unique.append(product_id)
    return unique
