"""
Shared service container for the API routers.

Routers depend on `get_services`; tests override it with a container built
on a temporary store.
"""
from typing import Optional

from ..services import Services, build_services

_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services()
    return _services
