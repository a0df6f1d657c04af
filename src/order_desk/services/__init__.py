"""Services subpackage - stores and the order, upload and settings workflows."""
from dataclasses import dataclass
from typing import Optional

from ..config.settings import Settings, get_settings
from ..engine.financials import OrderFinancialsCalculator
from .document_store import DocumentStore
from .order_service import OrderService
from .reconciliation import ReconciliationUpdater
from .settings_service import SettingsService
from .upload_service import UploadService


@dataclass
class Services:
    """Everything the API and dashboard need, wired to one store."""
    settings: Settings
    store: DocumentStore
    settings_service: SettingsService
    updater: ReconciliationUpdater
    orders: OrderService
    uploads: UploadService


def build_services(settings: Optional[Settings] = None) -> Services:
    settings = settings or get_settings()
    store = DocumentStore(settings.data_dir)
    settings_service = SettingsService(store)
    calculator = OrderFinancialsCalculator()
    updater = ReconciliationUpdater(
        store,
        settings_service.rules,
        calculator=calculator,
        strict_status=settings.strict_status,
    )
    orders = OrderService(
        store, settings_service, updater,
        calculator=calculator,
        phone_prefix=settings.phone_country_prefix,
    )
    uploads = UploadService(store, orders, settings_service, phone_prefix=settings.phone_country_prefix)
    return Services(
        settings=settings,
        store=store,
        settings_service=settings_service,
        updater=updater,
        orders=orders,
        uploads=uploads,
    )


__all__ = [
    'Services', 'build_services', 'DocumentStore', 'SettingsService',
    'ReconciliationUpdater', 'OrderService', 'UploadService',
]
