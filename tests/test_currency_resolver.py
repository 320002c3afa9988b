from __future__ import annotations

import pytest

from spendlens.modules.currency.service import CurrencyResolver, CurrencySource


def test_merchant_table_wins_with_high_confidence(resolver):
    result = resolver.resolve("REWE Markt GmbH")
    assert result.code == "EUR"
    assert result.confidence == pytest.approx(0.9)
    assert result.source == CurrencySource.MERCHANT


def test_longest_merchant_key_wins(resolver):
    assert resolver.resolve("Amazon India").code == "INR"
    assert resolver.resolve("Amazon Marketplace").code == "USD"


def test_short_merchant_keys_match_whole_words_only(resolver):
    # "dm" must not fire inside "Admiral".
    result = resolver.resolve("Admiral Pub")
    assert result.source == CurrencySource.FALLBACK
    assert result.code == "USD"
    assert result.confidence == pytest.approx(0.1)


def test_location_markers_in_description(resolver):
    result = resolver.resolve("Corner Cafe", "221B Baker Street, London")
    assert result.code == "GBP"
    assert result.confidence == pytest.approx(0.7)
    assert result.source == CurrencySource.LOCATION


def test_postal_code_marker(resolver):
    assert resolver.resolve("Corner Cafe", extracted_text="Deliver to M5V 2T6").code == "CAD"
    assert resolver.resolve("Corner Cafe", extracted_text="Ship to 560001").code == "INR"


def test_locale_layer_before_fallback():
    resolver = CurrencyResolver(locale_currency="JPY")
    result = resolver.resolve("Corner Cafe")
    assert result.code == "JPY"
    assert result.confidence == pytest.approx(0.3)
    assert result.source == CurrencySource.LOCALE


def test_merchant_table_beats_conflicting_locale():
    result = CurrencyResolver(locale_currency="JPY").resolve("Tesco Extra", "Tokyo branch")
    assert result.code == "GBP"
    assert result.confidence >= 0.9


def test_unsupported_locale_is_ignored():
    resolver = CurrencyResolver(locale_currency="XXX", fallback_currency="EUR")
    assert resolver.resolve("Corner Cafe").code == "EUR"


def test_confidences_are_configurable():
    resolver = CurrencyResolver(merchant_confidence=0.95, fallback_confidence=0.05)
    assert resolver.resolve("Tesco").confidence == pytest.approx(0.95)
    assert resolver.resolve("Corner Cafe").confidence == pytest.approx(0.05)


def test_reconcile_replaces_unsupported_code(resolver):
    assert resolver.reconcile("XYZ", merchant="Tesco Express") == "GBP"
    assert resolver.reconcile(None, merchant="Tesco Express") == "GBP"
    assert resolver.reconcile("", merchant="Corner Cafe") == "USD"


def test_reconcile_keeps_supported_code_even_when_merchant_disagrees(resolver):
    assert resolver.reconcile("USD", merchant="Tesco") == "USD"
    assert resolver.reconcile("eur", merchant="Tesco") == "EUR"
    assert resolver.reconcile("£", merchant="Corner Cafe") == "GBP"


def test_chain_helpers():
    assert CurrencyResolver.is_international_chain("Starbucks Reserve")
    assert not CurrencyResolver.is_international_chain("Corner Cafe")
    assert "JPY" in CurrencyResolver.alternate_currencies("McDonald's Shibuya")
    assert CurrencyResolver.alternate_currencies("Corner Cafe") == []
