"""
Exception types raised by the storefront services.

Operations that model a remote "RPC" result (cart discounts, coupon checks)
report business failures in their return value instead of raising. Everything
else raises one of these, and the API layer maps them onto HTTP status codes.
"""

from typing import Any, Optional, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class StorefrontError(Exception):
    """Base class for all storefront errors."""


class NotFoundError(StorefrontError):
    """A referenced entity does not exist."""

    def __init__(self, entity: str, key: str):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class ValidationError(StorefrontError, ValueError):
    """
    Input failed validation.

    Carries a field -> message mapping so admin forms can show errors
    next to the offending inputs.
    """

    def __init__(self, errors: dict[str, str], message: Optional[str] = None):
        self.errors = errors
        if message is None:
            message = "; ".join(f"{k}: {v}" for k, v in errors.items()) or "Invalid input"
        super().__init__(message)


class InsufficientStockError(StorefrontError):
    """One or more cart lines ask for more units than are available."""

    def __init__(self, shortages: dict[str, int]):
        # product_id -> units available
        self.shortages = shortages
        names = ", ".join(sorted(shortages))
        super().__init__(f"Insufficient stock for: {names}")


class ShippingNotAllowedError(StorefrontError):
    """The destination state cannot receive shipments right now."""

    def __init__(self, state_code: str, message: Optional[str] = None):
        self.state_code = state_code
        super().__init__(message or f"Shipping to {state_code} is not available")


class SlotUnavailableError(StorefrontError):
    """A pickup slot is full, inactive, or does not apply to the requested date."""


def field_errors(exc: ModelValidationError) -> dict[str, str]:
    """Field -> message map for a pydantic validation failure (first message per field)."""
    errors: dict[str, str] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "input"
        message = "This field is required" if error["type"] == "missing" else error["msg"]
        errors.setdefault(field, message)
    return errors


def build_model(model_cls: type[ModelT], data: dict[str, Any]) -> ModelT:
    """Construct a model from form data, reporting bad fields as a ValidationError."""
    try:
        return model_cls(**data)
    except ModelValidationError as exc:
        raise ValidationError(field_errors(exc)) from exc
