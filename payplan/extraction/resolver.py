"""Resolve canonical financial terms from heterogeneous document payloads.

A subject document's payload can carry the same facts at several nesting
paths depending on which OCR pipeline version produced it. Each path is read
by a small adapter function returning ``ExtractedTerms`` or ``None``; the
resolver walks the adapters in priority order and keeps the first hit.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import date
from decimal import Decimal
from typing import Any, Callable

from payplan.exceptions import ExtractionIncompleteError
from payplan.models.enums import PaymentMethod
from payplan.models.financial import ExtractedTerms
from payplan.parsing.money import (
    ZERO,
    fold_accents,
    normalize_payment_method,
    parse_amount,
    parse_date,
    parse_installment_count,
    split_amount,
)

logger = logging.getLogger(__name__)

TermsAdapter = Callable[[dict], "ExtractedTerms | None"]

# "R$ 100,00 a R$ 120,00", "100,00 até 120,00", "R$ 100,00 to R$ 120,00"
_RANGE_RE = re.compile(
    r"(?:R\$\s*)?(\d[\d.,]*)\s*(?:a|à|até|ate|to|-)\s*(?:R\$\s*)?(\d[\d.,]*)",
    re.IGNORECASE,
)
_TEXT_TOTAL_RE = re.compile(
    r"(?:premio total|preco total|valor total)\s*:?\s*(?:r\$)?\s*(\d[\d.,]*)"
)
_TEXT_COUNT_RE = re.compile(r"(\d{1,2})\s*(?:x\b|parcelas?\b)")
_TEXT_METHOD_RE = re.compile(r"forma de pagamento\s*:?\s*([^\n]+)")

_EFFECTIVE_DATE_KEYS = ("vigencia_inicial", "vigencia_inicio", "inicio_vigencia")


def _dig(payload: Any, *path: str) -> Any:
    node = payload
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def effective_date(payload: dict) -> date | None:
    for proposal in (_dig(payload, "proposta"), _dig(payload, "resultado", "proposta")):
        if not isinstance(proposal, dict):
            continue
        for key in _EFFECTIVE_DATE_KEYS:
            found = parse_date(proposal.get(key))
            if found is not None:
                return found
    return None


def raw_payment_method(payload: Any) -> str | None:
    """Payment method text exactly as written in the payload, if any."""
    candidates = (
        (("resultado", "valores"), "forma_pagamento"),
        (("valores",), "forma_pagamento"),
        (("resultado", "proposta"), "forma_pagto"),
        (("proposta",), "forma_pagto"),
        (("valores_apolice",), "forma_pagamento"),
    )
    for path, key in candidates:
        value = _dig(payload, *path, key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def document_text(payload: Any) -> str | None:
    """Rendered document text stored alongside the extracted values."""
    for path in (("texto",), ("resultado", "texto")):
        value = _dig(payload, *path)
        if isinstance(value, str) and value.strip():
            return value
    return None


def resolve_installment_amounts(
    count: int,
    total: Decimal,
    explicit: Any = None,
    per_installment: Any = None,
) -> list[Decimal]:
    """Resolve one amount per installment.

    Precedence: explicit per-installment list, "from-to" range string, a
    single per-installment figure, then a uniform split of ``total``.

    Parameters
    ----------
    count : int
        Number of installments.
    total : Decimal
        Total premium, used for the uniform split.
    explicit : Any
        List of amounts, or of dicts carrying ``valor``.
    per_installment : Any
        ``"R$ 162,59"``, ``162.59`` or a range like ``"R$ 100,00 a R$ 120,00"``.

    Returns
    -------
    list[Decimal]
        Exactly ``count`` amounts.
    """
    uniform = split_amount(total, count)

    if isinstance(explicit, list) and explicit:
        values = [
            parse_amount(item.get("valor") if isinstance(item, dict) else item)
            for item in explicit[:count]
        ]
        return values + uniform[len(values):]

    if isinstance(per_installment, str):
        match = _RANGE_RE.search(per_installment)
        if match:
            first = parse_amount(match.group(1))
            last = parse_amount(match.group(2))
            return [first] * (count - 1) + [last]

    single = parse_amount(per_installment)
    if single > 0:
        return [single] * count

    return uniform


def _terms_from_financial(candidate: Any, payload: dict, source: str) -> ExtractedTerms | None:
    """Read a "valores" style object (preco_total, parcelamento...)."""
    if not isinstance(candidate, dict):
        return None
    if not (candidate.get("preco_total") or candidate.get("parcelamento")):
        return None

    plan = candidate.get("parcelamento")
    if not isinstance(plan, dict):
        plan = {"quantidade": plan}

    count = parse_installment_count(plan.get("quantidade") or candidate.get("quantidade_parcelas"))
    total = parse_amount(candidate.get("preco_total"))
    net = parse_amount(candidate.get("preco_liquido"))
    iof = parse_amount(candidate.get("iof"))

    return ExtractedTerms(
        payment_method=normalize_payment_method(
            candidate.get("forma_pagamento") or candidate.get("forma_pagto")
        ),
        installment_count=count,
        total_amount=total,
        net_premium=net,
        gross_premium=total if total > 0 else net + iof,
        iof=iof,
        installment_amounts=resolve_installment_amounts(
            count,
            total,
            explicit=plan.get("parcelas"),
            per_installment=plan.get("valor_parcela"),
        ),
        effective_date=effective_date(payload),
        source=source,
    )


def _terms_from_proposal(candidate: Any, payload: dict, source: str) -> ExtractedTerms | None:
    """Read a "proposta" style object (premio_total, quantidade_parcelas...)."""
    if not isinstance(candidate, dict):
        return None
    if not (candidate.get("premio_total") or candidate.get("quantidade_parcelas")):
        return None

    count = parse_installment_count(candidate.get("quantidade_parcelas"))
    total = parse_amount(candidate.get("premio_total"))
    net = parse_amount(candidate.get("premio_liquido"))
    iof = parse_amount(candidate.get("iof"))
    gross = parse_amount(candidate.get("premio_bruto"))

    return ExtractedTerms(
        payment_method=normalize_payment_method(
            candidate.get("forma_pagto") or candidate.get("forma_pagamento")
        ),
        installment_count=count,
        total_amount=total,
        net_premium=net,
        gross_premium=gross or total or net + iof,
        iof=iof,
        installment_amounts=resolve_installment_amounts(
            count,
            total,
            explicit=candidate.get("parcelas"),
            per_installment=candidate.get("valor_parcela"),
        ),
        effective_date=effective_date(payload),
        source=source,
    )


def result_financial_terms(payload: dict) -> ExtractedTerms | None:
    return _terms_from_financial(
        _dig(payload, "resultado", "valores"), payload, "result_financial_terms"
    )


def financial_terms(payload: dict) -> ExtractedTerms | None:
    candidate = payload.get("valores")
    if isinstance(candidate, str):
        try:
            candidate = json.loads(candidate)
        except ValueError:
            logger.debug("Ignoring non-JSON 'valores' string")
            return None
    return _terms_from_financial(candidate, payload, "financial_terms")


def result_proposal(payload: dict) -> ExtractedTerms | None:
    return _terms_from_proposal(_dig(payload, "resultado", "proposta"), payload, "result_proposal")


def proposal(payload: dict) -> ExtractedTerms | None:
    return _terms_from_proposal(payload.get("proposta"), payload, "proposal")


def policy_terms(payload: dict) -> ExtractedTerms | None:
    return _terms_from_financial(payload.get("valores_apolice"), payload, "policy_terms")


DEFAULT_ADAPTERS: tuple[TermsAdapter, ...] = (
    result_financial_terms,
    financial_terms,
    result_proposal,
    proposal,
    policy_terms,
)


def scan_rendered_text(text: str | None) -> ExtractedTerms:
    """Last-resort scan of the document's rendered text.

    Raises
    ------
    ExtractionIncompleteError
        When neither a total nor an installment count can be found.
    """
    if not isinstance(text, str) or not text.strip():
        raise ExtractionIncompleteError("no rendered text to scan")

    folded = fold_accents(text)
    total_match = _TEXT_TOTAL_RE.search(folded)
    count_match = _TEXT_COUNT_RE.search(folded)
    if not total_match and not count_match:
        raise ExtractionIncompleteError("rendered text has no total or installment plan")

    total = parse_amount(total_match.group(1)) if total_match else ZERO
    count = parse_installment_count(count_match.group(1)) if count_match else 1
    method_match = _TEXT_METHOD_RE.search(folded)

    return ExtractedTerms(
        payment_method=normalize_payment_method(method_match.group(1) if method_match else None),
        installment_count=count,
        total_amount=total,
        gross_premium=total,
        installment_amounts=split_amount(total, count),
        source="rendered_text",
    )


def placeholder_terms() -> ExtractedTerms:
    """Fixed stand-in terms used when nothing at all could be extracted."""
    return ExtractedTerms(
        payment_method=PaymentMethod.BOLETO_OR_BOOKLET,
        installment_count=3,
        total_amount=Decimal("1000.00"),
        net_premium=Decimal("900.00"),
        gross_premium=Decimal("1000.00"),
        installment_amounts=[Decimal("333.33")] * 3,
        source="placeholder",
    )


def empty_terms() -> ExtractedTerms:
    return ExtractedTerms(
        payment_method=PaymentMethod.BOLETO_OR_BOOKLET,
        installment_count=1,
        total_amount=ZERO,
        installment_amounts=[ZERO],
        source="empty",
    )


class TermsResolver:
    """Pick the most complete financial terms available for a document.

    Parameters
    ----------
    placeholder : bool
        When nothing can be extracted, return the fixed placeholder terms
        (``True``) or zeroed terms (``False``).
    adapters : tuple[TermsAdapter, ...] | None
        Adapter chain in priority order (default ``DEFAULT_ADAPTERS``).
    """

    def __init__(
        self,
        placeholder: bool = True,
        adapters: tuple[TermsAdapter, ...] | None = None,
    ) -> None:
        self.placeholder = placeholder
        self.adapters = adapters or DEFAULT_ADAPTERS

    def resolve(self, payload: Any, rendered_text: str | None = None) -> ExtractedTerms:
        """Resolve terms; never raises."""
        if not isinstance(payload, dict):
            payload = {}

        for adapter in self.adapters:
            try:
                terms = adapter(payload)
            except (TypeError, ValueError, AttributeError, ArithmeticError) as e:
                logger.warning("Adapter %s failed on payload: %s", adapter.__name__, e)
                continue
            if terms is not None:
                logger.debug(
                    "Terms resolved by %s: %d installments, total %s",
                    adapter.__name__,
                    terms.installment_count,
                    terms.total_amount,
                )
                return terms

        try:
            return scan_rendered_text(rendered_text or document_text(payload))
        except ExtractionIncompleteError as e:
            if self.placeholder:
                logger.warning("Financial terms missing (%s); using placeholder terms", e)
                return placeholder_terms()
            logger.warning("Financial terms missing (%s); using empty terms", e)
            return empty_terms()


def resolve_terms(
    payload: Any,
    rendered_text: str | None = None,
    placeholder: bool = True,
) -> ExtractedTerms:
    """Resolve terms with the default adapter chain."""
    return TermsResolver(placeholder=placeholder).resolve(payload, rendered_text)
