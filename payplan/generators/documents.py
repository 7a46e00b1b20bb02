"""Synthetic subject documents carrying financial payloads."""

import random
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterator

from faker import Faker

from payplan.models.enums import InstallmentStatus
from payplan.models.financial import NextInstallment, SubjectDocument
from payplan.parsing.money import CENTS, format_amount, split_amount

SHAPES = (
    "result_terms",
    "terms",
    "result_proposal",
    "proposal",
    "range",
    "explicit",
    "text",
    "empty",
)

DOCUMENT_TYPES = ("apolice", "proposta", "endosso")

PAYMENT_METHOD_TEXTS = (
    "Boleto Bancário",
    "Carnê",
    "Ficha de Compensação",
    "Débito em Conta Corrente",
    "Débito Automático",
    "Cartão de Crédito",
    "Bradesco",
    "Itaú",
)

INSURERS = ("Porto Seguro", "Bradesco Seguros", "SulAmérica", "Allianz", "Tokio Marine", "HDI")

# IOF on auto/property premiums
IOF_RATE = Decimal("0.0738")


class SubjectDocumentGenerator:
    """Generate proposals, policies and endorsements with financial payloads.

    Each payload takes one of the shapes found in production documents so
    the resolver's adapter chain can be exercised end to end.

    Parameters
    ----------
    seed : int | None
        Seed for both Faker and the amount/choice RNG; same seed, same documents.
    locale : str
        Faker locale (default ``pt_BR``).
    """

    def __init__(self, seed: int | None = None, locale: str = "pt_BR") -> None:
        self.fake = Faker(locale)
        self.random = random.Random(seed)
        if seed is not None:
            self.fake.seed_instance(seed)

    def _money(self, low: int, high: int) -> Decimal:
        cents = self.random.randint(low * 100, high * 100)
        return (Decimal(cents) / 100).quantize(CENTS)

    def _premiums(self) -> tuple[Decimal, Decimal, Decimal]:
        total = self._money(400, 12000)
        net = (total / (1 + IOF_RATE)).quantize(CENTS, rounding=ROUND_HALF_UP)
        return total, net, total - net

    def _effective_date(self) -> date:
        return date.today() - timedelta(days=self.random.randint(0, 180))

    def _proposal_header(self) -> dict:
        return {
            "numero": str(self.fake.random_number(digits=10, fix_len=True)),
            "segurado": self.fake.name(),
            "cpf": self.fake.cpf(),
            "seguradora": self.random.choice(INSURERS),
            "vigencia_inicial": self._effective_date().strftime("%d/%m/%Y"),
        }

    def _terms_block(self, total: Decimal, net: Decimal, iof: Decimal, count: int) -> dict:
        return {
            "forma_pagamento": self.random.choice(PAYMENT_METHOD_TEXTS),
            "preco_total": format_amount(total),
            "preco_liquido": format_amount(net),
            "iof": format_amount(iof),
            "parcelamento": {
                "quantidade": f"{count}x",
                "valor_parcela": format_amount(split_amount(total, count)[0]),
            },
        }

    def _proposal_block(self, total: Decimal, net: Decimal, count: int) -> dict:
        return {
            **self._proposal_header(),
            "forma_pagto": self.random.choice(PAYMENT_METHOD_TEXTS),
            "premio_total": format_amount(total),
            "premio_liquido": format_amount(net),
            "premio_bruto": format_amount(total),
            "quantidade_parcelas": str(count),
            "valor_parcela": format_amount(split_amount(total, count)[0]),
        }

    def payload(self, shape: str) -> dict:
        """Build a payload of the given shape (one of ``SHAPES``)."""
        if shape not in SHAPES:
            raise ValueError(f"Unknown payload shape {shape!r}")

        total, net, iof = self._premiums()
        count = self.random.randint(1, 12)

        if shape == "result_terms":
            return {
                "resultado": {
                    "valores": self._terms_block(total, net, iof, count),
                    "proposta": self._proposal_header(),
                }
            }
        if shape == "terms":
            return {
                "valores": self._terms_block(total, net, iof, count),
                "proposta": self._proposal_header(),
            }
        if shape == "result_proposal":
            return {"resultado": {"proposta": self._proposal_block(total, net, count)}}
        if shape == "proposal":
            return {"proposta": self._proposal_block(total, net, count)}
        if shape == "range":
            count = self.random.randint(2, 10)
            first = self._money(80, 600)
            last = first + self._money(1, 60)
            total = first * (count - 1) + last
            block = self._terms_block(total, net, iof, count)
            block["parcelamento"]["valor_parcela"] = (
                f"{format_amount(first)} a {format_amount(last)}"
            )
            return {"valores": block, "proposta": self._proposal_header()}
        if shape == "explicit":
            amounts = split_amount(total, count)
            block = self._terms_block(total, net, iof, count)
            block["parcelamento"]["parcelas"] = [
                {"numero": n, "valor": format_amount(a)} for n, a in enumerate(amounts, start=1)
            ]
            return {"valores": block}
        if shape == "text":
            return {
                "texto": (
                    f"Segurado: {self.fake.name()}\n"
                    f"Prêmio total: {format_amount(total)}\n"
                    f"Forma de pagamento: {self.random.choice(PAYMENT_METHOD_TEXTS)}\n"
                    f"Pagamento em {count}x sem juros"
                )
            }
        return {"proposta": {"segurado": self.fake.name()}}

    def generate(self, shape: str | None = None) -> SubjectDocument:
        """Generate one subject document.

        Parameters
        ----------
        shape : str | None
            Payload shape; random when omitted.

        Returns
        -------
        SubjectDocument
            Document with a fresh id and no cached next-installment projection.
        """
        return SubjectDocument(
            id=self.fake.uuid4(),
            document_type=self.random.choice(DOCUMENT_TYPES),
            payload=self.payload(shape or self.random.choice(SHAPES)),
            status=self.random.choices(["ativo", "cancelado"], weights=[9, 1])[0],
        )

    def generate_with_projection(self, number: int, total: int, paid: bool) -> SubjectDocument:
        """Document without installment rows, only a cached next-installment projection."""
        document = self.generate("proposal")
        document.next_installment = NextInstallment(
            number=number,
            total=total,
            status=InstallmentStatus.PAID if paid else InstallmentStatus.PENDING,
            due_date=self._effective_date() + timedelta(days=30 * number),
        )
        return document

    def generate_batch(self, count: int, shape: str | None = None) -> Iterator[SubjectDocument]:
        for _ in range(count):
            yield self.generate(shape)
