# backend/folio_tracker/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain-specific errors and contain NO HTTP knowledge.

Bad but plausible ledger data (unvalued trades, unmatched transfers, missing
prices) is NOT an error: the holdings engine reports it through
cost_basis_status and nullable fields. These exceptions cover input the
engine cannot interpret at all.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    │   ├── InvalidSettingError
    │   └── InvalidReplayModeError
    ├── LedgerEntryError
    └── NotFoundError
        ├── AccountNotFoundError
        └── AssetNotFoundError
"""


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when a programmatic input fails validation.

    Attributes:
        field: The field that failed validation (optional)
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InvalidSettingError(ValidationError):
    """Raised when an unknown app setting key is written."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Unknown setting: '{key}'", field="key")


class InvalidReplayModeError(ValidationError):
    """Raised when a replay mode other than PURE / HONOR_RESETS is requested."""

    def __init__(self, mode: str) -> None:
        self.mode = mode
        super().__init__(
            f"Invalid replay mode: '{mode}'. Valid options: PURE, HONOR_RESETS",
            field="mode",
        )


# =============================================================================
# LEDGER DATA ERRORS
# =============================================================================


class LedgerEntryError(ServiceError):
    """
    Raised when a stored ledger row cannot be turned into a ledger entry.

    Malformed rows (missing asset, non-numeric quantity, NaN values) should be
    rejected by the data layer before they reach the engine.

    Attributes:
        transaction_id: ID of the offending row
    """

    def __init__(self, transaction_id: int | None, reason: str) -> None:
        self.transaction_id = transaction_id
        self.reason = reason
        super().__init__(f"Ledger transaction {transaction_id} is malformed: {reason}")


# =============================================================================
# NOT FOUND ERRORS
# =============================================================================


class NotFoundError(ServiceError):
    """
    Base exception for resource not found errors.

    Attributes:
        resource_type: Type of resource (e.g., "Account")
        resource_id: Identifier of the resource
    """

    def __init__(
            self,
            message: str,
            resource_type: str | None = None,
            resource_id: int | str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class AccountNotFoundError(NotFoundError):
    """Raised when a filter or reconciliation target references an account that does not exist."""

    def __init__(self, account_id: int) -> None:
        self.account_id = account_id
        super().__init__(
            f"Account {account_id} not found",
            resource_type="Account",
            resource_id=account_id,
        )


class AssetNotFoundError(NotFoundError):
    """Raised when a reconciliation target references an asset that does not exist."""

    def __init__(self, asset_id: int) -> None:
        self.asset_id = asset_id
        super().__init__(
            f"Asset {asset_id} not found",
            resource_type="Asset",
            resource_id=asset_id,
        )


__all__ = [
    "ServiceError",
    "ValidationError",
    "InvalidSettingError",
    "InvalidReplayModeError",
    "LedgerEntryError",
    "NotFoundError",
    "AccountNotFoundError",
    "AssetNotFoundError",
]
