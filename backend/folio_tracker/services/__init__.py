# backend/folio_tracker/services/__init__.py
"""
Service layer for business logic.

Services:
- Have NO knowledge of HTTP
- Raise domain-specific exceptions
- Receive database sessions as parameters

Architecture:
    services/
    ├── __init__.py                  # This file
    ├── exceptions.py                # Domain exceptions
    ├── constants.py                 # Tolerances, prefixes, labels
    ├── protocols.py                 # Source interfaces for injection
    ├── app_settings_service.py      # Key/value app settings
    └── holdings/                    # Replay, transfers, pricing, valuation
        ├── repository.py            # Ledger / asset / account loading
        └── service.py               # HoldingsService orchestrator

Usage:
    from folio_tracker.services.holdings import HoldingsService
"""
