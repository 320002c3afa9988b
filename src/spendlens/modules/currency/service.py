from __future__ import annotations

import locale
import logging
import re
from dataclasses import dataclass
from enum import StrEnum
from functools import lru_cache

from spendlens.core.config import Settings
from spendlens.core.currencies import is_supported_currency, normalize_currency
from spendlens.core.logging import get_logger, log_event
from spendlens.modules.currency.tables import (
    ALTERNATE_CURRENCIES,
    INTERNATIONAL_CHAINS,
    LOCATION_PATTERNS,
    MERCHANT_CURRENCIES,
)

logger = get_logger(__name__)


class CurrencySource(StrEnum):
    MERCHANT = "merchant"
    LOCATION = "location"
    LOCALE = "locale"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class CurrencyConfidence:
    code: str
    confidence: float
    source: CurrencySource


@lru_cache(maxsize=256)
def _word_pattern(fragment: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![a-z0-9]){re.escape(fragment)}(?![a-z0-9])")


_MERCHANT_KEYS: tuple[str, ...] = tuple(sorted(MERCHANT_CURRENCIES, key=len, reverse=True))


def detect_locale_currency() -> str | None:
    try:
        symbol = locale.localeconv().get("int_curr_symbol") or ""
    except (ValueError, locale.Error):
        return None
    return normalize_currency(symbol)


class CurrencyResolver:
    """
    Layered currency inference: merchant table, location markers, process locale,
    then a fixed fallback. Each layer carries its own confidence.
    """

    def __init__(
        self,
        *,
        fallback_currency: str = "USD",
        locale_currency: str | None = None,
        merchant_confidence: float = 0.9,
        location_confidence: float = 0.7,
        locale_confidence: float = 0.3,
        fallback_confidence: float = 0.1,
        disagreement_threshold: float = 0.8,
    ) -> None:
        self.fallback_currency = fallback_currency
        self.locale_currency = locale_currency
        self.merchant_confidence = merchant_confidence
        self.location_confidence = location_confidence
        self.locale_confidence = locale_confidence
        self.fallback_confidence = fallback_confidence
        self.disagreement_threshold = disagreement_threshold

    @classmethod
    def from_settings(cls, s: Settings) -> CurrencyResolver:
        return cls(
            fallback_currency=s.fallback_currency,
            locale_currency=normalize_currency(s.locale_currency) or detect_locale_currency(),
            merchant_confidence=s.currency_merchant_confidence,
            location_confidence=s.currency_location_confidence,
            locale_confidence=s.currency_locale_confidence,
            fallback_confidence=s.currency_fallback_confidence,
            disagreement_threshold=s.currency_disagreement_threshold,
        )

    def resolve(
        self,
        merchant: str,
        description: str | None = None,
        extracted_text: str | None = None,
    ) -> CurrencyConfidence:
        merchant_lower = (merchant or "").lower()
        for key in _MERCHANT_KEYS:
            if _word_pattern(key).search(merchant_lower):
                return CurrencyConfidence(
                    MERCHANT_CURRENCIES[key], self.merchant_confidence, CurrencySource.MERCHANT
                )

        full_text = " ".join(part for part in (merchant, description, extracted_text) if part)
        for pattern, code in LOCATION_PATTERNS:
            if pattern.search(full_text):
                return CurrencyConfidence(code, self.location_confidence, CurrencySource.LOCATION)

        if is_supported_currency(self.locale_currency):
            return CurrencyConfidence(
                self.locale_currency, self.locale_confidence, CurrencySource.LOCALE
            )

        return CurrencyConfidence(
            self.fallback_currency, self.fallback_confidence, CurrencySource.FALLBACK
        )

    def reconcile(
        self, asserted: str | None, *, merchant: str, description: str | None = None
    ) -> str:
        """
        Pick the currency to store for a record whose model-asserted code is `asserted`.

        An unsupported code is replaced by the resolver's answer. A supported code
        is kept even when a confident resolver disagrees; the disagreement is only logged.
        """
        code = normalize_currency(asserted)
        resolved = self.resolve(merchant, description)
        if not is_supported_currency(code):
            log_event(
                logger,
                "currency.override",
                level=logging.WARNING,
                asserted=asserted,
                resolved=resolved.code,
                confidence=resolved.confidence,
                source=resolved.source.value,
            )
            return resolved.code
        if resolved.code != code and resolved.confidence > self.disagreement_threshold:
            log_event(
                logger,
                "currency.disagreement",
                asserted=code,
                resolved=resolved.code,
                confidence=resolved.confidence,
                source=resolved.source.value,
            )
        return code

    @staticmethod
    def is_international_chain(merchant: str) -> bool:
        merchant_lower = (merchant or "").lower()
        return any(chain in merchant_lower for chain in INTERNATIONAL_CHAINS)

    @staticmethod
    def alternate_currencies(merchant: str) -> list[str]:
        merchant_lower = (merchant or "").lower()
        for chain, codes in ALTERNATE_CURRENCIES.items():
            if chain in merchant_lower:
                return list(codes)
        return []
