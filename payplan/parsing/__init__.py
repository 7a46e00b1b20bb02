"""Parsers for loosely formatted document values."""

from payplan.parsing.money import (
    format_amount,
    normalize_payment_method,
    parse_amount,
    parse_date,
    parse_installment_count,
)

__all__ = [
    "format_amount",
    "normalize_payment_method",
    "parse_amount",
    "parse_date",
    "parse_installment_count",
]
