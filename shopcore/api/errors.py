from fastapi import HTTPException

from shopcore.services.exceptions import (
    InsufficientInventory,
    InvalidActivityInput,
    InvalidAdjustment,
    InvalidOrderInput,
    InvalidTransition,
    InvalidUpdateRequest,
    OrderNotFound,
    PersistenceFailure,
    ProductNotFound,
    ShopCoreError,
    UpdateAlreadyInProgress,
)

_STATUS_CODES: list[tuple[type[ShopCoreError], int]] = [
    (InvalidOrderInput, 400),
    (InvalidAdjustment, 400),
    (InvalidUpdateRequest, 400),
    (InvalidActivityInput, 400),
    (ProductNotFound, 404),
    (OrderNotFound, 404),
    (InsufficientInventory, 409),
    (InvalidTransition, 409),
    (UpdateAlreadyInProgress, 409),
    (PersistenceFailure, 503),
]


def to_http_exception(error: ShopCoreError) -> HTTPException:
    """도메인 예외 → HTTPException (detail은 to_dict() 페이로드)"""
    status_code = 500
    for error_type, code in _STATUS_CODES:
        if isinstance(error, error_type):
            status_code = code
            break
    return HTTPException(status_code=status_code, detail=error.to_dict())
