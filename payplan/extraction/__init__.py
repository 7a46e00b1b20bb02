"""Financial terms extraction from document payloads."""

from payplan.extraction.resolver import (
    DEFAULT_ADAPTERS,
    TermsResolver,
    document_text,
    effective_date,
    placeholder_terms,
    raw_payment_method,
    resolve_installment_amounts,
    resolve_terms,
)

__all__ = [
    "DEFAULT_ADAPTERS",
    "TermsResolver",
    "document_text",
    "effective_date",
    "placeholder_terms",
    "raw_payment_method",
    "resolve_installment_amounts",
    "resolve_terms",
]
