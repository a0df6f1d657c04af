"""
Settings Service - the singleton system settings document.

Holds the pricing rules, message templates and code prefixes. Callers
take a fresh PricingRules snapshot per calculation via `rules()`.
"""
import copy
import logging
from datetime import datetime

from ..config.defaults import DEFAULT_SETTINGS
from ..engine.errors import InvalidOrderInput
from ..engine.models import PricingRules
from .document_store import DocumentStore, SETTINGS

logger = logging.getLogger(__name__)

SETTINGS_DOC_ID = 'general'

NUMERIC_KEYS = (
    'barryWholesaleBelow1500', 'barryWholesaleAbove1500',
    'gawyWholesaleBelow1500', 'gawyWholesaleAbove1500',
    'barryRetail', 'gawyRetail', 'wholesaleThreshold', 'extraMultiplier',
    'paidToWebsite', 'shipping', 'coupon',
)


class SettingsService:
    """Read / write the system settings document."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def load(self) -> dict:
        """Return the settings, seeding defaults on first use."""
        doc = self.store.get(SETTINGS, SETTINGS_DOC_ID)
        if doc is None:
            now = datetime.now().isoformat()
            doc = {**copy.deepcopy(DEFAULT_SETTINGS), 'createdAt': now, 'updatedAt': now}
            self.store.set(SETTINGS, SETTINGS_DOC_ID, doc)
            logger.info("Seeded default system settings")
            return doc

        # Keys added after the document was first written
        return {**copy.deepcopy(DEFAULT_SETTINGS), **doc}

    def save(self, updates: dict) -> dict:
        """Merge updates into the stored settings and return the new document."""
        errors = self.validate(updates)
        if errors:
            raise InvalidOrderInput("; ".join(errors), field="settings")
        current = self.load()
        current.update(updates)
        current['updatedAt'] = datetime.now().isoformat()
        self.store.set(SETTINGS, SETTINGS_DOC_ID, current)
        logger.info("System settings updated: %s", ", ".join(sorted(updates)))
        return current

    def validate(self, updates: dict) -> list[str]:
        errors = []
        for key in NUMERIC_KEYS:
            if key not in updates:
                continue
            try:
                value = float(updates[key])
            except (TypeError, ValueError):
                errors.append(f"{key} must be a number")
                continue
            if value <= 0:
                errors.append(f"{key} must be greater than 0")
        return errors

    def rules(self) -> PricingRules:
        """Fresh immutable pricing snapshot."""
        return PricingRules.from_settings(self.load())
