import logging

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config.settings import configure_logging
from ..engine.errors import (
    OrderDeskError, InvalidOrderInput, InvalidClassification, NotFound,
    ConsistencyViolation, PersistenceFailure,
)
from ..services import Services
from .orders_api import router as orders_router
from .reports_api import router as reports_router
from .state import get_services
from .uploads_api import router as uploads_router

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Order Desk API",
    description="Order pricing, reconciliation and back-office API",
    version=__version__,
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(orders_router)
app.include_router(uploads_router)
app.include_router(reports_router)

STATUS_CODES = (
    (InvalidOrderInput, 400),
    (InvalidClassification, 400),
    (NotFound, 404),
    (ConsistencyViolation, 409),
    (PersistenceFailure, 503),
)


@app.exception_handler(OrderDeskError)
async def order_desk_error_handler(request: Request, exc: OrderDeskError):
    status_code = next((code for cls, code in STATUS_CODES if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    content = {"detail": str(exc), "error": type(exc).__name__}
    if getattr(exc, 'field', None):
        content["field"] = exc.field
    return JSONResponse(status_code=status_code, content=content)


@app.get("/")
async def root():
    return {"status": "online", "message": "Order Desk API Active"}


@app.get("/system/status")
async def get_status(services: Services = Depends(get_services)):
    settings = services.settings
    return {
        "data_dir": str(settings.data_dir),
        "strict_status": settings.strict_status,
        "retention_days": settings.retention_days,
        "unreadable_orders": services.orders.unreadable_orders(),
        "version": __version__,
    }
