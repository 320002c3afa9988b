from __future__ import annotations

import json
from datetime import date
from decimal import Decimal

import pytest

from spendlens.core.credentials import InMemoryCredentialStore
from spendlens.core.db import SessionLocal
from spendlens.core.errors import PreconditionError, TransportError
from spendlens.modules.expenses.service import count_expenses, list_expenses
from spendlens.modules.extraction.documents import DocumentRenderer
from spendlens.modules.extraction.service import ReceiptPipeline, Upload, stable_expense_id

TODAY = date(2025, 9, 10)


def _reply(**overrides) -> str:
    payload = {
        "date": "2025-09-06",
        "merchant": "Tesco Express",
        "amount": 12.40,
        "currency": "GBP",
        "category": "Food & Dining",
        "paymentMethod": "Credit Card",
        "taxAmount": 0.6,
        "confidence": 0.9,
        "items": [
            {"name": "Milk", "quantity": 2, "unitPrice": 1.2, "totalPrice": 2.4},
            {"name": "Sandwich", "quantity": 1, "unitPrice": 10.0, "totalPrice": 10.0},
        ],
        "subtotal": 12.4,
        "discounts": None,
        "fees": None,
        "tip": None,
        "itemsTotal": 12.4,
    }
    payload.update(overrides)
    return json.dumps(payload)


def _image(tag: str) -> bytes:
    return b"\xff\xd8\xff\xe0" + tag.encode()


def _pipeline(model, credentials, resolver, **kwargs) -> ReceiptPipeline:
    return ReceiptPipeline(
        model_client=model,
        credentials=credentials,
        resolver=resolver,
        session_factory=SessionLocal,
        today=lambda: TODAY,
        **kwargs,
    )


def test_extract_persists_validated_record(scripted_model, credentials, resolver):
    model = scripted_model("```json\n" + _reply() + "\n```")
    changes: list[int] = []
    pipeline = _pipeline(model, credentials, resolver, on_records_changed=lambda: changes.append(1))

    expense = pipeline.extract(_image("a"))

    assert expense.id == stable_expense_id(_image("a"))
    assert expense.merchant == "Tesco Express"
    assert expense.amount == Decimal("12.40")
    assert expense.currency == "GBP"
    assert expense.expense_date == date(2025, 9, 6)
    assert expense.payment_method == "Credit Card"
    assert expense.extraction_confidence == pytest.approx(0.9)
    assert [i.name for i in expense.line_items] == ["Milk", "Sandwich"]
    assert expense.line_items[0].unit_price == Decimal("1.20")
    assert changes == [1]

    prompt, image = model.calls[0]
    assert image == _image("a")
    assert "Food & Dining" in prompt


def test_missing_api_key_fails_before_any_model_call(scripted_model, resolver):
    model = scripted_model(_reply())
    pipeline = _pipeline(model, InMemoryCredentialStore(), resolver)

    with pytest.raises(PreconditionError):
        pipeline.extract(_image("a"))

    assert model.calls == []
    with SessionLocal() as session:
        assert count_expenses(session) == 0


def test_resubmitting_the_same_image_is_a_no_op(scripted_model, credentials, resolver):
    model = scripted_model(_reply())
    changes: list[int] = []
    pipeline = _pipeline(model, credentials, resolver, on_records_changed=lambda: changes.append(1))

    first = pipeline.extract(_image("a"))
    second = pipeline.extract(_image("a"))

    assert first.id == second.id
    assert len(model.calls) == 1
    assert changes == [1]


def test_batch_isolates_invalid_records(scripted_model, credentials, resolver):
    model = scripted_model(
        _reply(merchant="Tesco Express"),
        _reply(merchant="<script>alert(1)</script>"),
        _reply(merchant="Corner Cafe"),
    )
    pipeline = _pipeline(model, credentials, resolver)

    result = pipeline.process_images(
        [_image("a"), _image("b"), _image("c")], sources=["a.jpg", "b.jpg", "c.jpg"]
    )

    assert result.summary == "processed 2 of 3"
    assert [e.merchant for e in result.expenses] == ["Tesco Express", "Corner Cafe"]
    assert len(result.failures) == 1
    failure = result.failures[0]
    assert failure.index == 1
    assert failure.kind == "invalid_record"
    assert failure.retryable is False
    assert failure.source == "b.jpg"


def test_transport_failure_mid_batch_keeps_siblings(scripted_model, credentials, resolver):
    model = scripted_model(
        _reply(merchant="Tesco Express"),
        TransportError("Model request timed out"),
        _reply(merchant="Corner Cafe"),
    )
    pipeline = _pipeline(model, credentials, resolver)

    result = pipeline.process_images([_image("a"), _image("b"), _image("c")])

    assert result.processed == 2
    assert result.summary == "processed 2 of 3"
    assert result.failures[0].index == 1
    with SessionLocal() as session:
        assert count_expenses(session) == 2


def test_transport_failure_is_reported_as_retryable(scripted_model, credentials, resolver):
    model = scripted_model(TransportError("Model request timed out"))
    pipeline = _pipeline(model, credentials, resolver)

    result = pipeline.process_images([_image("a")])

    assert result.processed == 0
    assert result.failures[0].kind == "transport"
    assert result.failures[0].retryable is True


def test_unsupported_currency_is_replaced_from_merchant(scripted_model, credentials, resolver):
    pipeline = _pipeline(scripted_model(_reply(currency="ZZZ")), credentials, resolver)
    assert pipeline.extract(_image("a")).currency == "GBP"


def test_zero_amount_is_rejected(scripted_model, credentials, resolver):
    pipeline = _pipeline(scripted_model(_reply(amount=0)), credentials, resolver)

    result = pipeline.process_images([_image("a")])

    assert result.failures[0].kind == "invalid_record"


def test_invalid_optional_fields_are_dropped(scripted_model, credentials, resolver):
    reply = _reply(
        paymentMethod="<card>",
        tip=-3,
        discounts=-2.5,
        items=[
            {"name": "Milk", "totalPrice": 2.4},
            {"name": "", "totalPrice": 1.0},
            {"name": "Bag", "totalPrice": -0.1},
        ],
    )
    pipeline = _pipeline(scripted_model(reply), credentials, resolver)

    expense = pipeline.extract(_image("a"))

    assert expense.payment_method is None
    assert expense.tip is None
    assert expense.discounts == Decimal("2.50")
    assert [i.name for i in expense.line_items] == ["Milk"]


def test_structurally_broken_items_store_basic_fields(scripted_model, credentials, resolver):
    reply = _reply(items=[{"name": "Milk", "quantity": 2}])
    pipeline = _pipeline(scripted_model(reply), credentials, resolver, fallback_confidence=0.7)

    expense = pipeline.extract(_image("a"))

    assert expense.extraction_confidence == pytest.approx(0.7)
    assert expense.line_items == []
    assert expense.amount == Decimal("12.40")


def test_truncated_reply_keeps_completed_items(scripted_model, credentials, resolver):
    full = _reply()
    truncated = full[: full.index('"Sandwich"') + 4]
    pipeline = _pipeline(scripted_model(truncated), credentials, resolver)

    expense = pipeline.extract(_image("a"))

    assert [i.name for i in expense.line_items] == ["Milk"]
    assert expense.items_total is None


class _TwoPageRenderer(DocumentRenderer):
    def render_pages(self, body: bytes) -> list[bytes]:
        return [body + b":page1", body + b":page2"]


def test_uploads_expand_pdfs_and_fail_unsupported_files_in_place(
    scripted_model, credentials, resolver
):
    model = scripted_model(_reply())
    pipeline = _pipeline(model, credentials, resolver, renderer=_TwoPageRenderer())

    result = pipeline.process_uploads(
        [
            Upload(filename="scan.pdf", content_type="application/pdf", body=b"%PDF-1.4 scan"),
            Upload(filename="notes.txt", content_type="text/plain", body=b"just text"),
            Upload(filename="photo.jpg", content_type="image/jpeg", body=_image("photo")),
        ]
    )

    assert result.total == 4
    assert result.processed == 3
    assert len(model.calls) == 3
    assert len(result.failures) == 1
    assert result.failures[0].source == "notes.txt"
    assert result.failures[0].index is None
    assert result.failures[0].retryable is False


def test_decimal_comma_amount_is_stored_as_written(scripted_model, credentials, resolver):
    reply = _reply(amount="12,50", currency="EUR", merchant="Corner Cafe", items=None)
    pipeline = _pipeline(scripted_model(reply), credentials, resolver)

    expense = pipeline.extract(_image("a"))

    assert expense.amount == Decimal("12.50")
    assert expense.currency == "EUR"


def test_non_finite_amount_fails_only_its_own_image(scripted_model, credentials, resolver):
    model = scripted_model(
        _reply(merchant="Tesco Express"),
        _reply(amount="NaN"),
        _reply(merchant="Corner Cafe"),
    )
    pipeline = _pipeline(model, credentials, resolver)

    result = pipeline.process_images([_image("a"), _image("b"), _image("c")])

    assert result.summary == "processed 2 of 3"
    assert result.failures[0].index == 1
    assert result.failures[0].kind == "unparseable"


def test_unexpected_error_is_confined_to_its_image(scripted_model, credentials, resolver):
    model = scripted_model(
        _reply(merchant="Tesco Express"),
        ValueError("client bug"),
        _reply(merchant="Corner Cafe"),
    )
    pipeline = _pipeline(model, credentials, resolver)

    result = pipeline.process_images(
        [_image("a"), _image("b"), _image("c")], sources=["a", "b", "c"]
    )

    assert result.summary == "processed 2 of 3"
    failure = result.failures[0]
    assert failure.index == 1
    assert failure.kind == "unexpected"
    assert failure.retryable is False
    assert failure.source == "b"
    assert "ValueError" in failure.message
    with SessionLocal() as session:
        assert count_expenses(session) == 2


def test_numeric_date_does_not_reject_the_record(scripted_model, credentials, resolver):
    pipeline = _pipeline(scripted_model(_reply(date=20250301)), credentials, resolver)

    expense = pipeline.extract(_image("a"))

    assert expense.expense_date == date(2025, 3, 1)


class _RepeatedPageRenderer(DocumentRenderer):
    def render_pages(self, body: bytes) -> list[bytes]:
        return [body, body]


def test_document_pages_keep_distinct_identities(scripted_model, credentials, resolver):
    model = scripted_model(_reply())
    pipeline = _pipeline(model, credentials, resolver, renderer=_RepeatedPageRenderer())

    result = pipeline.process_document(b"%PDF-1.4 two identical pages")

    assert result.summary == "processed 2 of 2"
    assert [e.id for e in result.expenses] == [
        stable_expense_id(b"%PDF-1.4 two identical pages", page=0),
        stable_expense_id(b"%PDF-1.4 two identical pages", page=1),
    ]
    assert len(model.calls) == 2
    with SessionLocal() as session:
        assert len(list_expenses(session)) == 2
