"""Tests for the financial terms resolver."""

import json
import logging
from datetime import date
from decimal import Decimal

import pytest

from payplan.extraction.resolver import (
    TermsResolver,
    document_text,
    placeholder_terms,
    raw_payment_method,
    resolve_installment_amounts,
    resolve_terms,
    scan_rendered_text,
)
from payplan.exceptions import ExtractionIncompleteError
from payplan.models.enums import PaymentMethod


class TestResolveInstallmentAmounts:
    """Tests for per-installment amount precedence."""

    def test_range_three_installments(self) -> None:
        """Test "from-to" strings: first value repeated, last value at the end."""
        amounts = resolve_installment_amounts(
            3, Decimal("320.00"), per_installment="R$ 100,00 a R$ 120,00"
        )
        assert amounts == [Decimal("100.00"), Decimal("100.00"), Decimal("120.00")]

    def test_range_two_installments(self) -> None:
        amounts = resolve_installment_amounts(2, Decimal("0"), per_installment="100,00 até 120,00")
        assert amounts == [Decimal("100.00"), Decimal("120.00")]

    @pytest.mark.parametrize("separator", ["a", "à", "até", "to", "-"])
    def test_range_separators(self, separator: str) -> None:
        amounts = resolve_installment_amounts(
            2, Decimal("0"), per_installment=f"R$ 50,00 {separator} R$ 60,00"
        )
        assert amounts == [Decimal("50.00"), Decimal("60.00")]

    def test_explicit_list_wins(self) -> None:
        """Test that an explicit list beats the per-installment figure."""
        amounts = resolve_installment_amounts(
            3,
            Decimal("300.00"),
            explicit=[{"valor": "R$ 90,00"}, {"valor": "110,00"}, "100,00"],
            per_installment="R$ 1,00 a R$ 2,00",
        )
        assert amounts == [Decimal("90.00"), Decimal("110.00"), Decimal("100.00")]

    def test_explicit_list_padded_with_uniform_split(self) -> None:
        amounts = resolve_installment_amounts(3, Decimal("300.00"), explicit=["90,00"])
        assert amounts == [Decimal("90.00"), Decimal("100.00"), Decimal("100.00")]

    def test_single_figure_repeated(self) -> None:
        amounts = resolve_installment_amounts(4, Decimal("1000.00"), per_installment="R$ 262,50")
        assert amounts == [Decimal("262.50")] * 4

    def test_uniform_split(self) -> None:
        amounts = resolve_installment_amounts(3, Decimal("100.00"))
        assert amounts == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
        assert sum(amounts) == Decimal("100.00")


class TestAdapters:
    """Tests for adapter priority and field mapping."""

    def test_financial_terms(self, card_payload: dict) -> None:
        terms = resolve_terms(card_payload)

        assert terms.source == "financial_terms"
        assert terms.payment_method == PaymentMethod.CREDIT_CARD
        assert terms.installment_count == 10
        assert terms.total_amount == Decimal("1625.93")
        assert terms.gross_premium == Decimal("1625.93")
        assert terms.installment_amounts == [Decimal("162.59")] * 10

    def test_result_financial_terms_has_priority(self, card_payload: dict) -> None:
        payload = {
            **card_payload,
            "resultado": {"valores": {"preco_total": "500,00", "parcelamento": {"quantidade": "2"}}},
        }
        terms = resolve_terms(payload)

        assert terms.source == "result_financial_terms"
        assert terms.installment_count == 2
        assert terms.installment_amounts == [Decimal("250.00"), Decimal("250.00")]

    def test_financial_terms_as_json_string(self, card_payload: dict) -> None:
        payload = {"valores": json.dumps(card_payload["valores"])}
        terms = resolve_terms(payload)

        assert terms.source == "financial_terms"
        assert terms.installment_count == 10

    def test_proposal(self) -> None:
        payload = {
            "proposta": {
                "premio_total": "R$ 1.200,00",
                "premio_liquido": "1.117,52",
                "quantidade_parcelas": "4",
                "forma_pagto": "Débito automático",
                "vigencia_inicial": "01/02/2025",
            }
        }
        terms = resolve_terms(payload)

        assert terms.source == "proposal"
        assert terms.payment_method == PaymentMethod.DIRECT_DEBIT
        assert terms.net_premium == Decimal("1117.52")
        assert terms.gross_premium == Decimal("1200.00")
        assert terms.installment_amounts == [Decimal("300.00")] * 4
        assert terms.effective_date == date(2025, 2, 1)

    def test_result_proposal_before_proposal(self) -> None:
        payload = {
            "resultado": {"proposta": {"premio_total": "300,00", "quantidade_parcelas": "3"}},
            "proposta": {"premio_total": "999,00", "quantidade_parcelas": "1"},
        }
        terms = resolve_terms(payload)

        assert terms.source == "result_proposal"
        assert terms.total_amount == Decimal("300.00")

    def test_gross_from_net_plus_iof(self) -> None:
        payload = {"valores": {"parcelamento": {"quantidade": "1"}, "preco_liquido": "100,00", "iof": "7,38"}}
        terms = resolve_terms(payload)

        assert terms.gross_premium == Decimal("107.38")

    def test_policy_terms(self) -> None:
        payload = {"valores_apolice": {"preco_total": "600,00", "parcelamento": {"quantidade": "6x"}}}
        terms = resolve_terms(payload)

        assert terms.source == "policy_terms"
        assert terms.installment_amounts == [Decimal("100.00")] * 6

    def test_unqualified_candidate_is_skipped(self) -> None:
        """Test that a terms object without total or plan does not win."""
        payload = {
            "valores": {"forma_pagamento": "Boleto"},
            "proposta": {"premio_total": "200,00", "quantidade_parcelas": "2"},
        }
        assert resolve_terms(payload).source == "proposal"

    def test_raw_payment_method(self, card_payload: dict) -> None:
        assert raw_payment_method(card_payload) == "Cartão de Crédito"
        assert raw_payment_method({"proposta": {"forma_pagto": "Ficha"}}) == "Ficha"
        assert raw_payment_method({}) is None


class TestFallbacks:
    """Tests for rendered text scanning and placeholder defaulting."""

    def test_rendered_text(self) -> None:
        text = "Prêmio total: R$ 1.500,00\nForma de pagamento: Débito em conta\nPagamento em 5x"
        terms = resolve_terms({}, rendered_text=text)

        assert terms.source == "rendered_text"
        assert terms.total_amount == Decimal("1500.00")
        assert terms.installment_count == 5
        assert terms.payment_method == PaymentMethod.DIRECT_DEBIT

    def test_rendered_text_from_payload(self) -> None:
        payload = {"texto": "Valor total: 300,00 em 3 parcelas"}

        assert document_text(payload) == payload["texto"]
        assert resolve_terms(payload).installment_amounts == [Decimal("100.00")] * 3

    def test_scan_raises_when_nothing_found(self) -> None:
        with pytest.raises(ExtractionIncompleteError):
            scan_rendered_text("Nada de útil aqui")

    def test_placeholder_terms(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that an empty payload degrades to placeholder terms, loudly."""
        with caplog.at_level(logging.WARNING, logger="payplan.extraction.resolver"):
            terms = resolve_terms({"proposta": {"segurado": "Fulano"}})

        assert terms == placeholder_terms()
        assert terms.total_amount == Decimal("1000.00")
        assert terms.net_premium == Decimal("900.00")
        assert terms.installment_amounts == [Decimal("333.33")] * 3
        assert "placeholder" in caplog.text

    def test_placeholder_disabled(self) -> None:
        terms = TermsResolver(placeholder=False).resolve({})

        assert terms.source == "empty"
        assert terms.installment_count == 1
        assert terms.total_amount == Decimal("0.00")

    @pytest.mark.parametrize("payload", [None, "texto", 42, []])
    def test_never_raises(self, payload: object) -> None:
        assert resolve_terms(payload).source == "placeholder"

    def test_failing_adapter_is_skipped(self, card_payload: dict) -> None:
        def broken(payload: dict) -> None:
            raise TypeError("boom")

        from payplan.extraction.resolver import financial_terms

        terms = TermsResolver(adapters=(broken, financial_terms)).resolve(card_payload)
        assert terms.source == "financial_terms"

    def test_oversized_total_resolves_to_zero(self) -> None:
        payload = {"valores": {"preco_total": 1e30, "parcelamento": {"quantidade": 2}}}
        terms = resolve_terms(payload)

        assert terms.source == "financial_terms"
        assert terms.total_amount == Decimal("0.00")
        assert terms.installment_amounts == [Decimal("0.00"), Decimal("0.00")]

    def test_arithmetic_error_in_adapter_is_skipped(self, card_payload: dict) -> None:
        def overflowing(payload: dict) -> None:
            raise ArithmeticError("overflow")

        from payplan.extraction.resolver import financial_terms

        terms = TermsResolver(adapters=(overflowing, financial_terms)).resolve(card_payload)
        assert terms.source == "financial_terms"
