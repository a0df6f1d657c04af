"""
Reports & Settings API - dashboard aggregates and the system settings document.
"""
from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder

from ..engine.aggregation import GroupTotals, account_report, distribution_report, grand_totals
from ..services import Services
from .state import get_services

router = APIRouter(prefix="/api", tags=["reports"])


def totals_payload(group: GroupTotals) -> dict:
    payload = jsonable_encoder(group)
    payload['label'] = group.label
    payload['total_discounts'] = group.total_discounts
    return payload


@router.get("/reports/accounts")
async def accounts_report(
    channel: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    services: Services = Depends(get_services),
):
    """Totals per purchasing account with a per-day, per-hour breakdown."""
    orders = services.orders.list_orders(channel=channel, date_from=date_from, date_to=date_to)
    report = account_report(orders)
    return {
        'accounts': [
            {
                **totals_payload(summary.totals),
                'grand_total': summary.grand_total,
                'days': [totals_payload(day) for day in summary.days],
            }
            for summary in report
        ],
        'overall': totals_payload(grand_totals(s.totals for s in report)),
    }


@router.get("/reports/distribution")
async def distribution(channel: Optional[str] = None, services: Services = Depends(get_services)):
    """Client balances for orders in distribution or shipped to clients."""
    groups = distribution_report(services.orders.list_orders(channel=channel))
    return {
        'clients': [totals_payload(g) for g in groups],
        'overall': totals_payload(grand_totals(groups)),
    }


@router.get("/settings")
async def get_settings_doc(services: Services = Depends(get_services)):
    doc = services.settings_service.load()
    return {**doc, 'retentionDays': services.settings.retention_days}


@router.put("/settings")
async def save_settings(updates: dict[str, Any], services: Services = Depends(get_services)):
    """Merge the given keys into the settings; later calculations use the new rules."""
    updates.pop('retentionDays', None)
    return services.settings_service.save(updates)
