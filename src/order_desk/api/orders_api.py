"""
Orders API - FastAPI router for orders, customers, accounts, merged groups and sheets.
"""
from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..engine.models import Order, Sheet, BatchResult
from ..services import Services
from ..services.notifications import whatsapp_link, order_placed_message, in_distribution_message
from ..services.reconciliation import UpdateOutcome, NOTIFY_IN_DISTRIBUTION
from .state import get_services

router = APIRouter(prefix="/api", tags=["orders"])


# Pydantic models for API
class OrderCreate(BaseModel):
    """Request model for creating (or completing) an order."""
    customer_id: Optional[str] = None
    account_name: str = ""
    channel: str = "B"
    tier: Optional[str] = None
    gross_amount: Optional[float] = None
    pieces: Optional[float] = None
    deposit_paid: Optional[float] = None
    discount1: Optional[float] = None
    discount2: Optional[float] = None
    discount3: Optional[float] = None
    coupon: Optional[float] = None
    paid_to_source: Optional[float] = None
    extra_amount: Optional[float] = None
    loss_amount: Optional[float] = None
    paid_after_delivery: Optional[float] = None
    tracking_numbers: list[str] = Field(default_factory=list)
    existing_order_id: Optional[str] = None
    upload_id: Optional[str] = None


class FieldUpdate(BaseModel):
    """Request model for an inline edit of one order field."""
    field: str
    value: Any = None
    expected_version: Optional[int] = None


class BulkStatus(BaseModel):
    order_ids: list[str]
    status: str


class BulkIds(BaseModel):
    order_ids: list[str]


class CustomerCreate(BaseModel):
    name: str
    phone: str = ""
    tier: str = "Retail"


class MergeRequest(BaseModel):
    order_ids: list[str]
    name: str = ""
    tracking_number: str = ""


# Serialization helpers

def order_payload(order: Optional[Order]) -> Optional[dict]:
    if order is None:
        return None
    payload = {'id': order.id, **order.to_document()}
    if order.financials is not None and order.financials.trace:
        payload['trace'] = order.financials.get_trace_text()
    return payload


def batch_payload(result: BatchResult) -> dict:
    return {
        'succeeded': result.succeeded,
        'failed': result.failed,
        'success_count': result.success_count,
        'failure_count': result.failure_count,
        'summary': result.summary(),
    }


def outcome_payload(outcome: UpdateOutcome, services: Services) -> dict:
    notifications = []
    if outcome.notifications:
        settings_doc = services.settings_service.load()
        for kind in outcome.notifications:
            link = None
            if kind == NOTIFY_IN_DISTRIBUTION:
                message = in_distribution_message(outcome.order, settings_doc)
                link = whatsapp_link(outcome.order.phone, message, services.settings.phone_country_prefix)
            notifications.append({'kind': kind, 'order_id': outcome.order.order_id, 'link': link})
    return {
        'success': outcome.success,
        'order': order_payload(outcome.order),
        'invalidated': sorted(outcome.invalidated),
        'notifications': notifications,
        'error': outcome.error,
    }


# Endpoints

@router.get("/orders")
async def list_orders(
    channel: Optional[str] = None,
    status: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    account: Optional[str] = None,
    sheet: Optional[str] = None,
    by_sheet: bool = False,
    services: Services = Depends(get_services),
):
    """List orders sorted by code number (or grouped by sheet code)."""
    orders = services.orders.list_orders(
        channel=channel, status=status, date_from=date_from, date_to=date_to,
        account=account, sheet=sheet, by_sheet=by_sheet,
    )
    return [order_payload(o) for o in orders]


@router.post("/orders", status_code=201)
async def create_order(order_data: OrderCreate, services: Services = Depends(get_services)):
    """Create an order; the response carries the WhatsApp confirmation link."""
    order = services.orders.create_order(order_data.model_dump())
    message = order_placed_message(order, services.settings_service.load())
    return {
        'order': order_payload(order),
        'whatsapp_link': whatsapp_link(order.phone, message, services.settings.phone_country_prefix),
    }


@router.post("/orders/status")
async def set_status(request: BulkStatus, services: Services = Depends(get_services)):
    """Move several orders to one status."""
    result, outcomes = services.orders.set_status_bulk(request.order_ids, request.status)
    return {
        **batch_payload(result),
        'outcomes': [outcome_payload(o, services) for o in outcomes],
    }


@router.post("/orders/place")
async def place_orders(request: BulkIds, services: Services = Depends(get_services)):
    """Place Requested orders; each placed order comes with its confirmation link."""
    result, placed = services.orders.place_orders(request.order_ids)
    return {
        **batch_payload(result),
        'placed': [
            {'order': order_payload(order), 'whatsapp_link': link}
            for order, link in placed
        ],
    }


@router.post("/orders/delete")
async def delete_orders(request: BulkIds, services: Services = Depends(get_services)):
    return batch_payload(services.orders.delete_orders(request.order_ids))


@router.post("/orders/recompute")
async def recompute_orders(services: Services = Depends(get_services)):
    """Re-derive every order against the current pricing settings."""
    return batch_payload(services.updater.recompute_all())


@router.get("/orders/{order_id}")
async def get_order(order_id: str, services: Services = Depends(get_services)):
    return order_payload(services.orders.get_order(order_id))


@router.patch("/orders/{order_id}")
async def update_order(order_id: str, update: FieldUpdate, services: Services = Depends(get_services)):
    """Edit one field; derived fields are recomputed and saved together."""
    outcome = services.orders.update_field(order_id, update.field, update.value, update.expected_version)
    payload = outcome_payload(outcome, services)
    if not outcome.success:
        return JSONResponse(status_code=503, content=jsonable_encoder(payload))
    return payload


@router.get("/customers")
async def list_customers(services: Services = Depends(get_services)):
    return services.orders.list_customers()


@router.post("/customers", status_code=201)
async def create_customer(customer: CustomerCreate, services: Services = Depends(get_services)):
    return services.orders.create_customer(customer.name, customer.phone, customer.tier)


@router.get("/accounts")
async def list_accounts(services: Services = Depends(get_services)):
    return services.orders.list_accounts()


@router.get("/merged-groups")
async def list_merged_groups(services: Services = Depends(get_services)):
    return jsonable_encoder(services.orders.list_merged_groups())


@router.post("/merged-groups", status_code=201)
async def merge_orders(request: MergeRequest, services: Services = Depends(get_services)):
    group = services.orders.merge_orders(request.order_ids, request.name, request.tracking_number)
    return jsonable_encoder(group)


@router.delete("/merged-groups/{group_id}")
async def unmerge(group_id: str, services: Services = Depends(get_services)):
    removed = services.orders.unmerge(group_id)
    return {"success": removed}


def sheet_payload(sheet: Sheet, services: Services) -> dict:
    return {
        'id': sheet.id,
        **sheet.to_document(),
        'totals': services.orders.sheet_totals(sheet),
    }


@router.get("/sheets")
async def list_sheets(channel: Optional[str] = None, services: Services = Depends(get_services)):
    return [sheet_payload(s, services) for s in services.orders.list_sheets(channel)]


@router.post("/sheets", status_code=201)
async def create_sheet(request: BulkIds, services: Services = Depends(get_services)):
    """Put the selected same-channel orders on a new sheet."""
    return sheet_payload(services.orders.create_sheet(request.order_ids), services)


@router.get("/sheets/{sheet_id}")
async def get_sheet(sheet_id: str, services: Services = Depends(get_services)):
    sheet = services.orders.get_sheet(sheet_id)
    payload = sheet_payload(sheet, services)
    payload['order_details'] = [
        order_payload(o) for o in services.orders.list_orders(by_sheet=True) if o.sheet_id == sheet_id
    ]
    return payload


@router.delete("/sheets/{sheet_id}")
async def delete_sheet(sheet_id: str, services: Services = Depends(get_services)):
    return {"success": True, "unlinked": services.orders.delete_sheet(sheet_id)}


@router.delete("/sheets/{sheet_id}/orders/{order_id}")
async def remove_from_sheet(sheet_id: str, order_id: str, services: Services = Depends(get_services)):
    return sheet_payload(services.orders.remove_from_sheet(sheet_id, order_id), services)
