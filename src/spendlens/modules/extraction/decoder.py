from __future__ import annotations

import json
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from spendlens.core.errors import UnparseableResponseError
from spendlens.core.logging import get_logger, log_event
from spendlens.modules.extraction.validation import normalize_amount_text

logger = get_logger(__name__)

_REQUIRED_FIELDS: tuple[str, ...] = ("date", "merchant", "amount", "currency", "category")
_MONEY_FIELDS: tuple[str, ...] = (
    "amount",
    "tax_amount",
    "subtotal",
    "discounts",
    "fees",
    "tip",
    "items_total",
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _numeric_date_text(value: Any) -> str | None:
    """20250301 -> "20250301"; anything that is not a whole number -> None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Decimal) and value.is_finite() and value == value.to_integral_value():
        return str(value.to_integral_value())
    return None


def _money_text(value: Any) -> Any:
    # "12,50" is a decimal comma; leave non-strings for pydantic to judge.
    return normalize_amount_text(value) if isinstance(value, str) else value


class ExtractedLineItem(_CamelModel):
    name: str
    quantity: Decimal | None = None
    unit_price: Decimal | None = None
    total_price: Decimal
    category: str | None = None
    description: str | None = None

    @field_validator("quantity", "unit_price", "total_price", mode="before")
    @classmethod
    def normalize_money(cls, value: Any) -> Any:
        return _money_text(value)


class ExtractionRecord(_CamelModel):
    """The model's reading of one receipt, before validation."""

    date: str
    merchant: str
    amount: Decimal
    currency: str
    category: str
    description: str | None = None
    payment_method: str | None = None
    tax_amount: Decimal | None = None
    confidence: float = Field(ge=0.0, le=1.0)
    items: list[ExtractedLineItem] | None = None
    subtotal: Decimal | None = None
    discounts: Decimal | None = None
    fees: Decimal | None = None
    tip: Decimal | None = None
    items_total: Decimal | None = None

    @field_validator("date", mode="before")
    @classmethod
    def date_as_text(cls, value: Any) -> Any:
        return _numeric_date_text(value) or value

    @field_validator(*_MONEY_FIELDS, mode="before")
    @classmethod
    def normalize_money(cls, value: Any) -> Any:
        return _money_text(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: Any) -> Any:
        try:
            c = float(value)
        except (TypeError, ValueError):
            return value
        return max(0.0, min(1.0, c))


# Safe accessors over an untyped JSON document: wrong type or missing key -> None.


def json_str(obj: dict[str, Any], key: str) -> str | None:
    value = obj.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return None


def json_decimal(obj: dict[str, Any], key: str) -> Decimal | None:
    value = obj.get(key)
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = Decimal(str(value))
    elif isinstance(value, str):
        try:
            number = Decimal(normalize_amount_text(value))
        except InvalidOperation:
            return None
    else:
        return None
    # NaN and Infinity are valid JSON to Python but never an amount.
    return number if number.is_finite() else None


def json_float(obj: dict[str, Any], key: str) -> float | None:
    value = json_decimal(obj, key)
    return float(value) if value is not None else None


def _loads(text: str) -> Any:
    return json.loads(text, parse_float=Decimal)


def _strip_items_array(text: str) -> str:
    """Remove the `"items": [...]` span (up to its matching bracket or the end of text)."""
    m = re.search(r'"items"\s*:\s*\[', text)
    if not m:
        return text
    depth = 0
    in_string = False
    escaped = False
    end = len(text)
    for idx in range(m.end() - 1, len(text)):
        ch = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                end = idx + 1
                break
    head = text[: m.start()]
    tail = text[end:]
    # Keep the remainder well-formed: "items": null, ...
    return head + '"items": null' + tail


def _scalar_lookup(text: str) -> dict[str, Any]:
    """Pull top-level scalar fields out of text that is not valid JSON."""
    out: dict[str, Any] = {}
    for key in (*_REQUIRED_FIELDS, "description", "paymentMethod", "taxAmount",
                "subtotal", "discounts", "fees", "tip", "itemsTotal"):
        string_match = re.search(rf'"{key}"\s*:\s*"((?:[^"\\]|\\.)*)"', text)
        if string_match:
            try:
                out[key] = json.loads(f'"{string_match.group(1)}"')
            except json.JSONDecodeError:
                out[key] = string_match.group(1)
            continue
        number_match = re.search(rf'"{key}"\s*:\s*(-?\d+(?:\.\d+)?)', text)
        if number_match:
            out[key] = Decimal(number_match.group(1))
    return out


def decode_basic_fields(text: str, *, confidence: float = 0.7) -> ExtractionRecord | None:
    """
    Permissive decode of the top-level fields only.

    Items are always dropped and `confidence` replaces whatever the model
    claimed. Returns None when any required field is missing; never raises.
    """
    remainder = _strip_items_array(text or "")
    obj: Any = None
    try:
        obj = _loads(remainder)
    except (json.JSONDecodeError, ValueError):
        obj = None
    if not isinstance(obj, dict):
        obj = _scalar_lookup(remainder)

    date = json_str(obj, "date") or _numeric_date_text(obj.get("date"))
    merchant = json_str(obj, "merchant")
    amount = json_decimal(obj, "amount")
    currency = json_str(obj, "currency")
    category = json_str(obj, "category")
    if not (date and merchant and amount is not None and currency and category):
        return None

    try:
        return ExtractionRecord(
            date=date,
            merchant=merchant,
            amount=amount,
            currency=currency,
            category=category,
            description=json_str(obj, "description"),
            payment_method=json_str(obj, "paymentMethod"),
            tax_amount=json_decimal(obj, "taxAmount"),
            confidence=confidence,
            items=None,
            subtotal=json_decimal(obj, "subtotal"),
            discounts=json_decimal(obj, "discounts"),
            fees=json_decimal(obj, "fees"),
            tip=json_decimal(obj, "tip"),
            items_total=json_decimal(obj, "itemsTotal"),
        )
    except ValidationError as e:
        log_event(
            logger,
            "extraction.decode.fallback_rejected",
            level=logging.DEBUG,
            error=str(e).splitlines()[0][:200],
        )
        return None


def decode_extraction(text: str, *, fallback_confidence: float = 0.7) -> ExtractionRecord:
    try:
        return ExtractionRecord.model_validate(_loads(text))
    except (json.JSONDecodeError, ValueError, ValidationError) as e:
        strict_error = str(e).splitlines()[0][:200]

    record = decode_basic_fields(text, confidence=fallback_confidence)
    if record is None:
        log_event(
            logger,
            "extraction.decode.failed",
            level=logging.WARNING,
            error=strict_error,
            response_chars=len(text or ""),
        )
        raise UnparseableResponseError("Model response could not be decoded")

    log_event(
        logger,
        "extraction.decode.fallback",
        level=logging.WARNING,
        error=strict_error,
        confidence=fallback_confidence,
    )
    return record
