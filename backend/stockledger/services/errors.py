"""
Ledger error taxonomy shared by the services and the API layer
"""
from decimal import Decimal
from typing import List, Optional, Union


class LedgerError(Exception):
    """Base class for every failure a ledger operation reports to its caller."""

    status_code = 500

    def to_dict(self) -> dict:
        return {"detail": str(self)}


class NotFoundError(LedgerError):
    """A referenced Item, Batch, Location or Company does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: Optional[Union[int, str]] = None):
        self.entity = entity
        self.entity_id = entity_id
        if entity_id is None:
            super().__init__(f"{entity} not found")
        else:
            super().__init__(f"{entity} {entity_id} not found")

    def to_dict(self) -> dict:
        return {"detail": str(self), "entity": self.entity, "entity_id": self.entity_id}


class ValidationFailedError(LedgerError):
    """Input violates one or more constraints; carries every violation found."""

    status_code = 400

    def __init__(self, errors: Union[str, List[str]]):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))

    def to_dict(self) -> dict:
        return {"detail": "Validation failed", "errors": self.errors}


class InsufficientFundsError(LedgerError):
    """A cash-committing step needs more than the company holds."""

    status_code = 400

    def __init__(self, required: Decimal, available: Decimal, currency: str = "USD"):
        self.required = required
        self.available = available
        self.currency = currency
        super().__init__(
            f"Insufficient funds: {currency} {required} required, {available} available"
        )

    def to_dict(self) -> dict:
        return {
            "detail": "Insufficient funds",
            "required": str(self.required),
            "available": str(self.available),
            "currency": self.currency,
        }


class ConsistencyConflictError(LedgerError):
    """A concurrent writer changed a row this operation depends on."""

    status_code = 409


class InternalError(LedgerError):
    """Store failure or conflict that survived every retry."""

    status_code = 500

    def to_dict(self) -> dict:
        return {"detail": "An unexpected error occurred"}
