import os
import sys
from datetime import datetime

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from order_desk.config.settings import Settings
from order_desk.services import build_services


class FakeClock:
    """Settable "now" for services that stamp timestamps."""

    def __init__(self, now: datetime = datetime(2026, 3, 1, 10, 15)):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(scope="function")
def services(tmp_path, clock):
    """Fresh service container on an empty store in tmp_path."""
    settings = Settings(project_root=tmp_path, data_dir=tmp_path / 'data')
    built = build_services(settings)
    built.updater.clock = clock
    built.orders.clock = clock
    built.uploads.clock = clock
    return built


@pytest.fixture
def retail_customer(services):
    return services.orders.create_customer("Mona Adel", "0100 123 4567", "Retail")


@pytest.fixture
def wholesale_customer(services):
    return services.orders.create_customer("Samir Store", "01112223334", "Wholesale")


@pytest.fixture
def make_order(services, retail_customer):
    """Create an order with sensible defaults; keyword arguments override."""
    def _make(customer=None, **fields):
        payload = {
            'customer_id': (customer or retail_customer)['id'],
            'account_name': 'Main Account',
            'channel': 'B',
            'gross_amount': 1000,
            'pieces': 2,
        }
        payload.update(fields)
        return services.orders.create_order(payload)
    return _make
