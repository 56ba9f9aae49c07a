# backend/folio_tracker/__init__.py
"""
Folio Tracker - multi-account, multi-asset portfolio holdings engine.

Packages:
    config      - Environment settings (pydantic-settings)
    database    - SQLAlchemy engine and session factory
    models      - Ledger, asset, account and settings tables
    schemas     - Pydantic input contracts (ledger entries, filters)
    services    - Holdings reconstruction, valuation and app settings
    utils       - Logging and run context helpers
"""

__version__ = "0.1.0"
