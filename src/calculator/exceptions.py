"""
Errors raised by the inheritance tax core.

Only input-validation failures are raised. Degraded data (missing life
table rows, unaffordable gifting, ineligible allowances) is reported through
``models.DataQualityFlag`` on the result instead.
"""

from typing import Any, Dict, List, Mapping, Optional

from calculator.decimal_math import Numeric, is_finite_number, to_decimal


class IHTCalculationError(Exception):
    """Base class for calculation errors surfaced to the caller."""

    code = "iht_calculation_error"

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": str(self)}


class InvalidEstateValue(IHTCalculationError, ValueError):
    """A monetary or percentage input was negative, non-numeric or non-finite."""

    code = "invalid_estate_value"

    def __init__(self, field: str, value: Any, reason: str = "must be a finite, non-negative amount"):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"{field} {reason} (got {value!r})")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "field": self.field,
            "value": str(self.value),
            "message": str(self),
        }


class MissingActuarialInput(IHTCalculationError):
    """A joint projection was requested without date of birth or gender for a party."""

    code = "missing_actuarial_input"

    def __init__(self, missing_fields: Mapping[str, List[str]]):
        self.missing_fields = {party: list(fields) for party, fields in missing_fields.items()}
        described = "; ".join(
            f"{party}: {', '.join(fields)}" for party, fields in self.missing_fields.items()
        )
        super().__init__(f"Date of birth and gender are required for a joint projection ({described})")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "missing_fields": self.missing_fields,
            "message": str(self),
        }


def require_money(value: Optional[Numeric], field: str, allow_none: bool = False):
    """
    Validate a monetary input and return it as Decimal.

    Raises:
        InvalidEstateValue: if the value is missing, negative or non-finite.
    """
    if value is None:
        if allow_none:
            return None
        raise InvalidEstateValue(field, value, "is required")
    if isinstance(value, bool) or not is_finite_number(value):
        raise InvalidEstateValue(field, value)
    amount = to_decimal(value)
    if amount < 0:
        raise InvalidEstateValue(field, value)
    return amount


def require_percentage(value: Numeric, field: str):
    """Validate a 0-100 percentage input and return it as Decimal."""
    amount = require_money(value, field)
    if amount > 100:
        raise InvalidEstateValue(field, value, "must be between 0 and 100")
    return amount
