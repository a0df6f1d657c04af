"""
Uploads API - payment proof submission and admin approval.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..services import Services
from ..services.upload_service import NEW_ORDER
from .orders_api import order_payload
from .state import get_services

router = APIRouter(prefix="/api/uploads", tags=["uploads"])


class UploadCreate(BaseModel):
    """Request model for a customer's payment upload."""
    client_id: str
    payment_amount: Optional[float] = None
    order_reference: str = NEW_ORDER
    channel: str = "B"
    payment_images: list[str] = Field(default_factory=list)
    order_images: list[str] = Field(default_factory=list)


@router.get("")
async def list_uploads(status: Optional[str] = None, services: Services = Depends(get_services)):
    """List uploads, newest first; status "All" or omitted returns every row."""
    return services.uploads.list_uploads(status)


@router.get("/counts")
async def status_counts(services: Services = Depends(get_services)):
    return services.uploads.status_counts()


@router.post("", status_code=201)
async def submit_upload(upload: UploadCreate, services: Services = Depends(get_services)):
    return services.uploads.submit(
        upload.client_id,
        upload.payment_amount,
        order_reference=upload.order_reference,
        channel=upload.channel,
        payment_images=upload.payment_images,
        order_images=upload.order_images,
    )


@router.get("/{upload_id}")
async def get_upload(upload_id: str, services: Services = Depends(get_services)):
    return services.uploads.get_upload(upload_id)


@router.post("/{upload_id}/approve")
async def approve_upload(upload_id: str, services: Services = Depends(get_services)):
    """Approve a payment; new-order uploads return the prefill for completion."""
    result = services.uploads.approve(upload_id)
    return {
        'upload': result.upload,
        'requires_order_completion': result.requires_order_completion,
        'prefill': result.prefill or None,
        'order': order_payload(result.order_outcome.order) if result.order_outcome else None,
    }


@router.post("/{upload_id}/reject")
async def reject_upload(upload_id: str, services: Services = Depends(get_services)):
    upload, link = services.uploads.reject(upload_id)
    return {'upload': upload, 'whatsapp_link': link}
