from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

EXPENSE_CATEGORIES: tuple[str, ...] = (
    "Food & Dining",
    "Transportation",
    "Shopping",
    "Entertainment",
    "Bills & Utilities",
    "Healthcare",
    "Travel",
    "Education",
    "Business",
    "Other",
)

PAYMENT_METHODS: tuple[str, ...] = (
    "Cash",
    "Credit Card",
    "Debit Card",
    "Digital Payment",
    "Bank Transfer",
    "Check",
    "Other",
)

_MARKUP_DENYLIST: tuple[str, ...] = ("<script", "javascript:", "data:", "vbscript:")
_FREE_TEXT_DENYLIST: tuple[str, ...] = (*_MARKUP_DENYLIST, "<?php")

_CATEGORY_RE = re.compile(r"^[A-Za-z0-9 \-_&()]+$")
_PAYMENT_METHOD_RE = re.compile(r"^[A-Za-z0-9 \-_]+$")

MAX_MERCHANT_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
MAX_CATEGORY_LENGTH = 50
MAX_PAYMENT_METHOD_LENGTH = 50
MAX_ITEM_NAME_LENGTH = 200


@dataclass(frozen=True)
class ValidationResult:
    value: Any = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.reason is None

    @classmethod
    def accept(cls, value: Any) -> ValidationResult:
        return cls(value=value)

    @classmethod
    def reject(cls, reason: str) -> ValidationResult:
        return cls(reason=reason)


def sanitize_text(value: Any) -> str:
    """Trim and drop control characters (tabs and newlines collapse to spaces)."""
    if value is None:
        return ""
    out: list[str] = []
    for ch in str(value):
        if ch in "\t\r\n":
            out.append(" ")
            continue
        if unicodedata.category(ch) in {"Cc", "Cf"}:
            continue
        out.append(ch)
    return re.sub(r" {2,}", " ", "".join(out)).strip()


def _contains_denied(text: str, denylist: tuple[str, ...]) -> str | None:
    lowered = text.lower()
    for marker in denylist:
        if marker in lowered:
            return marker
    return None


def _validate_free_text(
    value: Any,
    *,
    label: str,
    max_length: int,
    required: bool,
    denylist: tuple[str, ...],
) -> ValidationResult:
    text = sanitize_text(value)
    if not text:
        if required:
            return ValidationResult.reject(f"{label} is required")
        return ValidationResult.accept(None)
    if len(text) > max_length:
        return ValidationResult.reject(f"{label} exceeds {max_length} characters")
    marker = _contains_denied(text, denylist)
    if marker:
        return ValidationResult.reject(f"{label} contains disallowed content ({marker})")
    return ValidationResult.accept(text)


def validate_merchant(value: Any) -> ValidationResult:
    return _validate_free_text(
        value,
        label="merchant",
        max_length=MAX_MERCHANT_LENGTH,
        required=True,
        denylist=_MARKUP_DENYLIST,
    )


def validate_description(value: Any) -> ValidationResult:
    return _validate_free_text(
        value,
        label="description",
        max_length=MAX_DESCRIPTION_LENGTH,
        required=False,
        denylist=_FREE_TEXT_DENYLIST,
    )


def validate_line_item_name(value: Any) -> ValidationResult:
    return _validate_free_text(
        value,
        label="item name",
        max_length=MAX_ITEM_NAME_LENGTH,
        required=True,
        denylist=_FREE_TEXT_DENYLIST,
    )


def validate_category(value: Any) -> ValidationResult:
    text = sanitize_text(value)
    if not text:
        return ValidationResult.reject("category is required")
    if len(text) > MAX_CATEGORY_LENGTH:
        return ValidationResult.reject(f"category exceeds {MAX_CATEGORY_LENGTH} characters")
    if not _CATEGORY_RE.match(text):
        return ValidationResult.reject("category contains invalid characters")
    return ValidationResult.accept(text)


def normalize_category(value: str) -> str:
    lowered = value.strip().lower()
    for category in EXPENSE_CATEGORIES:
        if category.lower() == lowered:
            return category
    return "Other"


def validate_payment_method(value: Any) -> ValidationResult:
    text = sanitize_text(value)
    if not text:
        return ValidationResult.accept(None)
    if len(text) > MAX_PAYMENT_METHOD_LENGTH:
        return ValidationResult.reject(
            f"payment method exceeds {MAX_PAYMENT_METHOD_LENGTH} characters"
        )
    if not _PAYMENT_METHOD_RE.match(text):
        return ValidationResult.reject("payment method contains invalid characters")
    return ValidationResult.accept(text)


def normalize_amount_text(value: str) -> str:
    s = sanitize_text(value).replace(" ", "")
    # "12,50" is a decimal comma; "1,234.50" uses the comma as a thousands separator.
    if "," in s and "." not in s and re.fullmatch(r"-?\d+,\d{1,2}", s):
        return s.replace(",", ".")
    return s.replace(",", "")


def validate_amount(value: Any, *, ceiling: int | Decimal = 1_000_000) -> ValidationResult:
    """Non-negative, at most `ceiling`, at most two decimal places."""
    if value is None or isinstance(value, bool):
        return ValidationResult.reject("amount is required")
    raw = normalize_amount_text(value) if isinstance(value, str) else str(value)
    if not raw:
        return ValidationResult.reject("amount is required")
    try:
        amount = Decimal(raw)
    except InvalidOperation:
        return ValidationResult.reject("amount is not numeric")
    if not amount.is_finite():
        return ValidationResult.reject("amount is not numeric")
    if amount < 0:
        return ValidationResult.reject("amount must not be negative")
    if amount > Decimal(ceiling):
        return ValidationResult.reject(f"amount exceeds {ceiling}")
    exponent = amount.normalize().as_tuple().exponent
    if isinstance(exponent, int) and exponent < -2:
        return ValidationResult.reject("amount has more than two decimal places")
    return ValidationResult.accept(amount.quantize(Decimal("0.01")))
