from fastapi import APIRouter, Depends

from shopcore.api.deps import get_activity_tracker
from shopcore.api.errors import to_http_exception
from shopcore.schemas.activity import ActivityIn
from shopcore.services.activity_tracker import ActivityTracker
from shopcore.services.exceptions import ShopCoreError

router = APIRouter()


@router.post("", status_code=201)
def track_activity(payload: ActivityIn, tracker: ActivityTracker = Depends(get_activity_tracker)):
    try:
        event = tracker.track_activity(
            payload.product_id,
            payload.activity_type,
            user_id=payload.user_id,
            session_id=payload.session_id,
            metadata=payload.metadata,
        )
    except ShopCoreError as e:
        raise to_http_exception(e)

    return {"id": str(event.id), "product_id": str(event.product_id), "activity_type": event.activity_type}
