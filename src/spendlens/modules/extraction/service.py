from __future__ import annotations

import hashlib
import logging
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from spendlens.core.credentials import OPENAI_API_KEY, CredentialStore
from spendlens.core.db import SessionFactory
from spendlens.core.errors import (
    ExtractionError,
    InvalidRecordError,
    PreconditionError,
    UnreadableDocumentError,
)
from spendlens.core.logging import (
    bind_context,
    get_logger,
    log_event,
    log_exception,
    monotonic_ms,
    reset_context,
)
from spendlens.core.models import utcnow
from spendlens.modules.currency.service import CurrencyResolver
from spendlens.modules.expenses.models import Expense, ExpenseLineItem
from spendlens.modules.expenses.service import get_expense, upsert_expense
from spendlens.modules.extraction.ai import ModelClient
from spendlens.modules.extraction.dates import normalize_receipt_date
from spendlens.modules.extraction.decoder import ExtractionRecord, decode_extraction
from spendlens.modules.extraction.documents import (
    DocumentRenderer,
    PdfPageRenderer,
    detect_upload_kind,
)
from spendlens.modules.extraction.prompts import EXTRACTION_PROMPT_VERSION, build_extraction_prompt
from spendlens.modules.extraction.repair import repair_response
from spendlens.modules.extraction.validation import (
    ValidationResult,
    normalize_category,
    sanitize_text,
    validate_amount,
    validate_category,
    validate_description,
    validate_line_item_name,
    validate_merchant,
    validate_payment_method,
)

logger = get_logger(__name__)

_EXPENSE_ID_NAMESPACE = uuid.UUID("5b8f3c1e-7d2a-4c39-9a61-0e4f2d8b7a10")


def stable_expense_id(source: bytes | None, *, page: int = 0) -> uuid.UUID:
    """Same source image (and page) -> same identity, so re-submission is a no-op."""
    if not source:
        return uuid.uuid4()
    digest = hashlib.sha256(source).hexdigest()
    return uuid.uuid5(_EXPENSE_ID_NAMESPACE, f"{digest}:{page}")


def _optional_amount(value: Decimal | None, *, ceiling: int, field_name: str) -> Decimal | None:
    if value is None:
        return None
    result = validate_amount(value, ceiling=ceiling)
    if not result.ok:
        log_event(
            logger,
            "extraction.field.dropped",
            level=logging.DEBUG,
            field=field_name,
            reason=result.reason,
        )
        return None
    return result.value


def _optional_text(result: ValidationResult, *, field_name: str) -> Any:
    if not result.ok:
        log_event(
            logger,
            "extraction.field.dropped",
            level=logging.DEBUG,
            field=field_name,
            reason=result.reason,
        )
        return None
    return result.value


def _line_items(record: ExtractionRecord, *, ceiling: int) -> list[ExpenseLineItem]:
    out: list[ExpenseLineItem] = []
    for item in record.items or []:
        name = validate_line_item_name(item.name)
        total = validate_amount(item.total_price, ceiling=ceiling)
        if not name.ok or not total.ok:
            log_event(
                logger,
                "extraction.line_item.dropped",
                level=logging.DEBUG,
                reason=name.reason or total.reason,
            )
            continue
        category = validate_category(item.category) if item.category else None
        quantity = item.quantity if item.quantity is not None and item.quantity > 0 else None
        out.append(
            ExpenseLineItem(
                position=len(out),
                name=name.value,
                quantity=quantity,
                unit_price=_optional_amount(
                    item.unit_price, ceiling=ceiling, field_name="unitPrice"
                ),
                total_price=total.value,
                category=category.value if category and category.ok else None,
                description=_optional_text(
                    validate_description(item.description), field_name="item.description"
                ),
            )
        )
    return out


def assemble_expense(
    record: ExtractionRecord,
    *,
    resolver: CurrencyResolver,
    reference: date,
    expense_id: uuid.UUID | None = None,
    max_amount: int = 1_000_000,
) -> Expense:
    """
    Validate a decoded extraction and build the record to persist.

    Required fields that fail validation reject the whole record; optional
    fields and individual line items that fail are dropped.
    """
    merchant = validate_merchant(record.merchant)
    if not merchant.ok:
        raise InvalidRecordError("merchant", merchant.reason or "invalid")

    amount = validate_amount(record.amount, ceiling=max_amount)
    if not amount.ok:
        raise InvalidRecordError("amount", amount.reason or "invalid")
    if amount.value <= 0:
        raise InvalidRecordError("amount", "amount must be greater than zero")

    category = validate_category(record.category)
    if not category.ok:
        raise InvalidRecordError("category", category.reason or "invalid")

    description = _optional_text(validate_description(record.description), field_name="description")
    payment_method = _optional_text(
        validate_payment_method(record.payment_method), field_name="paymentMethod"
    )
    currency = resolver.reconcile(
        sanitize_text(record.currency), merchant=merchant.value, description=description
    )
    discounts = record.discounts.copy_abs() if record.discounts is not None else None

    return Expense(
        id=expense_id or uuid.uuid4(),
        expense_date=normalize_receipt_date(record.date, reference),
        merchant=merchant.value,
        amount=amount.value,
        currency=currency,
        category=normalize_category(category.value),
        description=description,
        payment_method=payment_method,
        tax_amount=_optional_amount(record.tax_amount, ceiling=max_amount, field_name="taxAmount"),
        subtotal=_optional_amount(record.subtotal, ceiling=max_amount, field_name="subtotal"),
        discounts=_optional_amount(discounts, ceiling=max_amount, field_name="discounts"),
        fees=_optional_amount(record.fees, ceiling=max_amount, field_name="fees"),
        tip=_optional_amount(record.tip, ceiling=max_amount, field_name="tip"),
        items_total=_optional_amount(
            record.items_total, ceiling=max_amount, field_name="itemsTotal"
        ),
        extraction_confidence=record.confidence,
        prompt_version=EXTRACTION_PROMPT_VERSION,
        line_items=_line_items(record, ceiling=max_amount),
    )


@dataclass(frozen=True)
class BatchFailure:
    index: int | None
    kind: str
    message: str
    retryable: bool
    source: str | None = None


@dataclass
class BatchResult:
    total: int = 0
    expenses: list[Expense] = field(default_factory=list)
    failures: list[BatchFailure] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.expenses)

    @property
    def summary(self) -> str:
        return f"processed {self.processed} of {self.total}"


@dataclass(frozen=True)
class Upload:
    filename: str
    content_type: str | None
    body: bytes


class ReceiptPipeline:
    """
    Receipt image -> persisted expense.

    Collaborators are injected; nothing here reaches for module-level singletons.
    """

    def __init__(
        self,
        *,
        model_client: ModelClient,
        credentials: CredentialStore,
        resolver: CurrencyResolver,
        session_factory: SessionFactory,
        renderer: DocumentRenderer | None = None,
        today: Callable[[], date] = lambda: utcnow().date(),
        on_records_changed: Callable[[], None] | None = None,
        fallback_confidence: float = 0.7,
        max_amount: int = 1_000_000,
        credential_name: str = OPENAI_API_KEY,
    ) -> None:
        self.model_client = model_client
        self.credentials = credentials
        self.resolver = resolver
        self.session_factory = session_factory
        self.renderer = renderer or PdfPageRenderer()
        self.today = today
        self.on_records_changed = on_records_changed
        self.fallback_confidence = fallback_confidence
        self.max_amount = max_amount
        self.credential_name = credential_name

    def _check_preconditions(self) -> None:
        if not self.credentials.has(self.credential_name):
            raise PreconditionError("OpenAI API key is not configured")

    def extract(self, image: bytes, *, page: int = 0) -> Expense:
        start = time.monotonic()
        self._check_preconditions()

        expense_id = stable_expense_id(image, page=page)
        with self.session_factory() as session:
            existing = get_expense(session, expense_id=expense_id)
            if existing is not None:
                log_event(logger, "extraction.skipped_duplicate", expense_id=str(expense_id))
                return existing

        log_event(logger, "extraction.start", expense_id=str(expense_id), image_bytes=len(image))
        raw = self.model_client.call(build_extraction_prompt(), image)
        record = decode_extraction(
            repair_response(raw), fallback_confidence=self.fallback_confidence
        )
        expense = assemble_expense(
            record,
            resolver=self.resolver,
            reference=self.today(),
            expense_id=expense_id,
            max_amount=self.max_amount,
        )

        with self.session_factory() as session:
            stored, created = upsert_expense(session, expense=expense)

        log_event(
            logger,
            "extraction.finish",
            expense_id=str(stored.id),
            created=created,
            confidence=stored.extraction_confidence,
            line_items=len(stored.line_items),
            duration_ms=monotonic_ms(start),
        )
        if created and self.on_records_changed is not None:
            self.on_records_changed()
        return stored

    def process_images(
        self,
        images: Sequence[bytes],
        *,
        sources: Sequence[str] | None = None,
        pages: Sequence[int] | None = None,
    ) -> BatchResult:
        """
        Sequential; one image failing never stops its siblings.

        `pages` carries each image's page index within its source document, so
        identical page images from different pages keep distinct identities.
        """
        result = BatchResult(total=len(images))
        token = bind_context(batch_id=uuid.uuid4().hex[:12])
        start = time.monotonic()
        try:
            for idx, image in enumerate(images):
                source = sources[idx] if sources and idx < len(sources) else None
                page = pages[idx] if pages and idx < len(pages) else 0
                try:
                    result.expenses.append(self.extract(image, page=page))
                except ExtractionError as e:
                    result.failures.append(
                        BatchFailure(
                            index=idx,
                            kind=e.kind,
                            message=str(e),
                            retryable=e.retryable,
                            source=source,
                        )
                    )
                    log_event(
                        logger,
                        "extraction.image.failed",
                        level=logging.WARNING,
                        index=idx,
                        kind=e.kind,
                        retryable=e.retryable,
                        error=str(e)[:200],
                    )
                except Exception as e:
                    # Anything outside the taxonomy is still confined to this image.
                    result.failures.append(
                        BatchFailure(
                            index=idx,
                            kind="unexpected",
                            message=f"{type(e).__name__}: {str(e)[:200]}",
                            retryable=False,
                            source=source,
                        )
                    )
                    log_exception(logger, "extraction.image.unexpected_error", index=idx)
            log_event(
                logger,
                "extraction.batch.finish",
                total=result.total,
                processed=result.processed,
                failed=len(result.failures),
                duration_ms=monotonic_ms(start),
            )
            return result
        finally:
            reset_context(token)

    def process_document(self, body: bytes) -> BatchResult:
        pages = self.renderer.render_pages(body)
        return self.process_images(pages, pages=range(len(pages)))

    def process_uploads(self, uploads: Sequence[Upload]) -> BatchResult:
        """PDF uploads expand to one image per page; unsupported uploads fail in place."""
        images: list[bytes] = []
        sources: list[str] = []
        page_indexes: list[int] = []
        early_failures: list[BatchFailure] = []
        for upload in uploads:
            kind = detect_upload_kind(
                filename=upload.filename, content_type=upload.content_type, body=upload.body
            )
            if kind == "image":
                images.append(upload.body)
                sources.append(upload.filename)
                page_indexes.append(0)
                continue
            if kind == "pdf":
                try:
                    pages = self.renderer.render_pages(upload.body)
                except UnreadableDocumentError as e:
                    early_failures.append(
                        BatchFailure(
                            index=None,
                            kind=e.kind,
                            message=str(e),
                            retryable=e.retryable,
                            source=upload.filename,
                        )
                    )
                    continue
                images.extend(pages)
                sources.extend(f"{upload.filename}#page={n + 1}" for n in range(len(pages)))
                page_indexes.extend(range(len(pages)))
                continue
            early_failures.append(
                BatchFailure(
                    index=None,
                    kind=UnreadableDocumentError.kind,
                    message=f"Unsupported upload type ({kind})",
                    retryable=False,
                    source=upload.filename,
                )
            )

        result = self.process_images(images, sources=sources, pages=page_indexes)
        result.total += len(early_failures)
        result.failures = early_failures + result.failures
        return result
