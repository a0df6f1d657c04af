#!/usr/bin/env python
"""
Recompute every stored order against the current pricing settings.

Run after changing rates outside the dashboard (the settings tab offers
the same action).

Usage:
    python scripts/recompute_orders.py
"""
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from order_desk.config.settings import get_settings, configure_logging
from order_desk.services import build_services


def main():
    settings = get_settings()
    configure_logging(settings)
    services = build_services(settings)

    print("=" * 60)
    print("ORDER RECOMPUTE")
    print("=" * 60)
    print(f"Data directory: {settings.data_dir}")
    print()

    result = services.updater.recompute_all()

    print(f"✅ {result.success_count} orders recomputed")
    if result.failed:
        print(f"❌ {result.failure_count} orders failed:")
        for order_id, error in result.failed.items():
            print(f"  {order_id}: {error}")
        sys.exit(1)


if __name__ == "__main__":
    main()
