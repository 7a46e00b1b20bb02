"""Lenient parsing of Brazilian-locale money, counts, dates and payment methods.

None of the functions in this module raise on bad input: upstream OCR data
quality varies a lot, and a malformed field must degrade to a safe default
instead of aborting reconciliation.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from payplan.models.enums import PaymentMethod

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

# First number-like token: digits with optional "." / "," separators
_MONEY_TOKEN_RE = re.compile(r"[-\u2212]?\d[\d.,]*")
_THOUSANDS_ONLY_RE = re.compile(r"-?\d{1,3}(?:\.\d{3})+")
_DIGITS_RE = re.compile(r"\d+")

# Order matters: the first group with a matching keyword wins, so a bank
# name makes "Cartão de Crédito Itaú" a slip.
_PAYMENT_KEYWORDS: list[tuple[PaymentMethod, tuple[str, ...]]] = [
    (
        PaymentMethod.BOLETO_OR_BOOKLET,
        ("boleto", "carne", "ficha", "compensacao", "bradesco", "santander", "itau", "brasil", "caixa"),
    ),
    (PaymentMethod.DIRECT_DEBIT, ("debito", "conta", "automatico")),
    (PaymentMethod.CREDIT_CARD, ("cartao", "credito")),
]

_DATE_FORMATS = ("%d/%m/%Y", "%Y-%m-%d", "%d.%m.%Y", "%d-%m-%Y", "%Y.%m.%d", "%d/%m/%y")


def parse_amount(value: Any) -> Decimal:
    """Parse a pt-BR money value into a cent-quantized Decimal.

    Parameters
    ----------
    value : Any
        ``"R$ 1.234,56"``, ``"162,59"``, ``1625.93``, ``Decimal``, ``None``...

    Returns
    -------
    Decimal
        Parsed amount, or ``Decimal("0.00")`` when empty or unparsable.
    """
    if value is None or isinstance(value, bool):
        return ZERO

    if isinstance(value, (int, float, Decimal)):
        return _quantize(Decimal(str(value)))

    if not isinstance(value, str):
        return ZERO

    text = value.replace("R$", "").replace("\u00a0", " ")
    match = _MONEY_TOKEN_RE.search(text)
    if not match:
        return ZERO

    token = match.group(0).replace("\u2212", "-").rstrip(".,")
    if "," in token:
        integer, _, fraction = token.rpartition(",")
        normalized = integer.replace(".", "").replace(",", "") + "." + fraction
    elif _THOUSANDS_ONLY_RE.fullmatch(token):
        normalized = token.replace(".", "")
    elif token.count(".") > 1:
        integer, _, fraction = token.rpartition(".")
        normalized = integer.replace(".", "") + "." + fraction
    else:
        normalized = token

    try:
        return _quantize(Decimal(normalized))
    except InvalidOperation:
        return ZERO


def _quantize(amount: Decimal) -> Decimal:
    if not amount.is_finite():
        return ZERO
    try:
        return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # Too many digits for the context precision
        return ZERO


def format_amount(amount: Decimal | int | float) -> str:
    """Render an amount as pt-BR currency, e.g. ``R$ 1.234,56``."""
    quantized = _quantize(Decimal(str(amount)))
    us_style = f"{quantized:,.2f}"
    return "R$ " + us_style.replace(",", "_").replace(".", ",").replace("_", ".")


def split_amount(total: Decimal, count: int) -> list[Decimal]:
    """Split ``total`` into ``count`` cent amounts that add up exactly.

    Every installment gets ``total / count`` rounded to cents; the last one
    absorbs the rounding remainder.
    """
    if count <= 0:
        return [_quantize(total)]

    share = _quantize(total / count)
    amounts = [share] * (count - 1)
    amounts.append(_quantize(total) - share * (count - 1))
    return amounts


def fold_accents(text: str) -> str:
    """Lower-case and strip accents ("Cartão" -> "cartao")."""
    decomposed = unicodedata.normalize("NFKD", text.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_payment_method(value: Any) -> PaymentMethod:
    """Map free-text payment method labels onto the closed category set.

    Unrecognized or empty text maps to ``BOLETO_OR_BOOKLET``, the dominant
    case for insurance premiums. Already-normalized values (enum members,
    their values or their labels) map to themselves.
    """
    if isinstance(value, PaymentMethod):
        return value
    if not isinstance(value, str) or not value.strip():
        return PaymentMethod.BOLETO_OR_BOOKLET

    stripped = value.strip()
    for method in PaymentMethod:
        if stripped.upper() == method.value or stripped == method.label:
            return method

    folded = fold_accents(stripped)
    for method, keywords in _PAYMENT_KEYWORDS:
        if any(keyword in folded for keyword in keywords):
            return method
    return PaymentMethod.BOLETO_OR_BOOKLET


def parse_installment_count(value: Any) -> int:
    """Extract an installment count (``"10x"``, ``"3 parcelas"``, ``12``); defaults to 1."""
    if value is None or isinstance(value, bool):
        return 1
    if isinstance(value, (int, float, Decimal)):
        try:
            count = int(value)
        except (ValueError, OverflowError):
            return 1
        return count if count >= 1 else 1
    if not isinstance(value, str):
        return 1

    match = _DIGITS_RE.search(value)
    if not match:
        return 1
    count = int(match.group(0))
    return count if count >= 1 else 1


def parse_date(value: Any) -> date | None:
    """Parse a date in any of the formats seen in extracted documents.

    Returns ``None`` when nothing sensible can be read.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    numbers = _DIGITS_RE.findall(text)
    if len(numbers) < 3:
        return None
    if len(numbers[0]) == 4:
        year, month, day = (int(n) for n in numbers[:3])
    else:
        day, month, year = (int(n) for n in numbers[:3])
        if year < 100:
            year += 2000
    try:
        return date(year, month, day)
    except ValueError:
        return None
