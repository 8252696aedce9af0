from pydantic import BaseModel, model_validator
from typing import Optional
import uuid


class ActivityIn(BaseModel):
    product_id: uuid.UUID
    activity_type: str
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    metadata: Optional[dict] = None

    @model_validator(mode="after")
    def validate_identity(self) -> "ActivityIn":
        if bool(self.user_id) == bool(self.session_id):
            raise ValueError("user_id 또는 session_id 중 정확히 하나가 필요합니다")
        return self


class ManualUpdateIn(BaseModel):
    product_ids: list[uuid.UUID]
