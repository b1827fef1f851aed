"""Form input validation."""

from organizer.validation.validator import (
    TransactionValidator,
    ValidationError,
    parse_amount,
    suggest_category,
)

__all__ = [
    "TransactionValidator",
    "ValidationError",
    "parse_amount",
    "suggest_category",
]
