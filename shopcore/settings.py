from decimal import Decimal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "postgresql+psycopg://localhost/shopcore"
    db_retry_count: int = 3  # tenacity 재시도 횟수 (트랜잭션 단위)

    # cron 호출 인증 (비어 있으면 검사하지 않음)
    cron_secret: str = ""

    # 주문 스윕
    order_pending_min_dwell_seconds: int = 0     # PENDING → PROCESSING 최소 체류 시간
    order_processing_min_dwell_seconds: int = 60  # PROCESSING → SHIPPED 최소 체류 시간
    order_sweep_batch_limit: int = 500
    order_total_tolerance: Decimal = Decimal("0.01")

    # 재고
    default_low_stock_threshold: int = 5

    # 지표 재계산
    metrics_chunk_size: int = 100  # 청크 단위 커밋 (10~5000)

    # 인기 점수
    score_weight_view: float = 1.0
    score_weight_cart: float = 3.0
    score_weight_order: float = 5.0
    score_weight_purchase: float = 10.0
    score_recent_activity_weight: float = 2.0
    score_new_product_boost: float = 1.5
    score_trending_days: int = 7
    score_max: float = 100.0
    score_saturation: float = 500.0
    similar_price_band: float = 0.3  # ±30%

    # 점수 업데이트 큐
    update_batch_size: int = 10
    update_min_interval_seconds: int = 300
    update_max_pending: int = 100

    @field_validator("database_url")
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        if not v.startswith(("postgresql", "sqlite")):
            raise ValueError("DB URL은 'postgresql' 또는 'sqlite'로 시작해야 합니다.")
        return v

    @field_validator("order_pending_min_dwell_seconds", "order_processing_min_dwell_seconds")
    @classmethod
    def validate_dwell(cls, v: int) -> int:
        if v < 0:
            raise ValueError("체류 시간은 0 이상이어야 합니다.")
        return v

    @field_validator(
        "score_weight_view",
        "score_weight_cart",
        "score_weight_order",
        "score_weight_purchase",
        "score_recent_activity_weight",
    )
    @classmethod
    def validate_weight(cls, v: float) -> float:
        if v < 0:
            raise ValueError("점수 가중치는 0 이상이어야 합니다.")
        return v

    @field_validator("score_new_product_boost")
    @classmethod
    def validate_boost(cls, v: float) -> float:
        if v < 1:
            raise ValueError("신상품 부스트는 1 이상이어야 합니다.")
        return v

    @field_validator("score_max", "score_saturation")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("점수 상한/포화 값은 0보다 커야 합니다.")
        return v

    @field_validator("metrics_chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        if not 10 <= v <= 5000:
            raise ValueError("metrics_chunk_size는 10에서 5000 사이여야 합니다.")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=False)


settings = Settings()
