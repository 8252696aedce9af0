import logging

from fastapi import Depends, FastAPI
from sqlalchemy import text
from sqlalchemy.orm import Session

from shopcore.api.endpoints import activity, admin, cron, inventory, orders, products
from shopcore.db import get_session
from shopcore.services import events

logger = logging.getLogger(__name__)

app = FastAPI(title="shopcore")

app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])
app.include_router(inventory.router, prefix="/api/inventory", tags=["Inventory"])
app.include_router(activity.router, prefix="/api/activity", tags=["Activity"])
app.include_router(products.router, prefix="/api/products", tags=["Products"])
app.include_router(cron.router, prefix="/api/cron", tags=["Cron"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])


def log_low_stock(data: dict) -> None:
    logger.warning(
        f"[INVENTORY] 저재고 알림: product={data['product_id']}, "
        f"재고={data['inventory']}, 임계치={data['threshold']}"
    )


def log_out_of_stock(data: dict) -> None:
    logger.warning(f"[INVENTORY] 품절: product={data['product_id']}")


@app.on_event("startup")
def on_startup() -> None:
    events.bus.subscribe(events.LOW_STOCK, log_low_stock)
    events.bus.subscribe(events.OUT_OF_STOCK, log_out_of_stock)


@app.on_event("shutdown")
def on_shutdown() -> None:
    events.bus.unsubscribe(events.LOW_STOCK, log_low_stock)
    events.bus.unsubscribe(events.OUT_OF_STOCK, log_out_of_stock)


@app.get("/health")
def health(session: Session = Depends(get_session)):
    db_ok = False
    try:
        session.execute(text("SELECT 1"))
        db_ok = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")

    return {
        "status": "healthy" if db_ok else "unhealthy",
        "database": "ok" if db_ok else "error",
    }
