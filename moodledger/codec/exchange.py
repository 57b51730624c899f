"""
Import / Export Codec

Serializes the ledger to a portable JSON document and back.

Document shape (version 1):

    {
      "version": 1,
      "exportedAt": "2024-05-01T10:00:00+00:00",
      "currency": "CNY",
      "expenseCategories": [{"id": ..., "name": ..., "emoji": ...}],
      "incomeCategories": [...],
      "transactions": [
        {"id", "type", "amount", "category", "description", "date",
         "emotion", "currency", "accountId", "transferGroupId", "isTransfer"}
      ]
    }

DESIGN DECISION: Import is a RESTORE, not a merge. Parsing happens
completely before anything is handed back, so a malformed document
never leaves the ledger half-replaced.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    ValidationError,
)

from moodledger.models.currency import Currency
from moodledger.models.identity import ServerId, new_local_id, parse_record_id
from moodledger.models.ledger import (
    Category,
    LedgerSnapshot,
    Transaction,
    TransactionType,
    utcnow,
)


EXPORT_FORMAT_VERSION = 1

JsonAmount = Annotated[
    Decimal,
    PlainSerializer(float, return_type=float, when_used="json"),
]


class ExportedTransaction(BaseModel):
    """One transaction as it appears in an export file."""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    id: Optional[Union[str, int]] = None
    type: TransactionType
    amount: JsonAmount = Field(..., ge=0)
    category: str = "other"
    description: Optional[str] = ""
    date: datetime
    emotion: Optional[str] = None
    currency: Optional[Currency] = None
    account_id: Optional[str] = Field(default=None, alias="accountId")
    transfer_group_id: Optional[str] = Field(default=None, alias="transferGroupId")
    is_transfer: bool = Field(default=False, alias="isTransfer")


class ExportDocument(BaseModel):
    """The whole export file."""
    model_config = ConfigDict(populate_by_name=True)

    version: int = EXPORT_FORMAT_VERSION
    exported_at: Optional[datetime] = Field(default=None, alias="exportedAt")
    currency: Optional[Currency] = None
    expense_categories: list[Category] = Field(default_factory=list, alias="expenseCategories")
    income_categories: list[Category] = Field(default_factory=list, alias="incomeCategories")
    transactions: list[ExportedTransaction]


class ImportPayload(BaseModel):
    """Ledger content recovered from a document, ready to install."""

    transactions: list[Transaction]
    currency: Optional[Currency] = None
    expense_categories: list[Category] = Field(default_factory=list)
    income_categories: list[Category] = Field(default_factory=list)
    regenerated_ids: int = 0


class ImportResult(BaseModel):
    """Tagged result of an import attempt."""

    ok: bool
    error: Optional[str] = None
    transaction_count: int = 0
    payload: Optional[ImportPayload] = Field(default=None, exclude=True)

    @classmethod
    def failure(cls, error: str) -> "ImportResult":
        return cls(ok=False, error=error)


def export_ledger(snapshot: LedgerSnapshot, exported_at: Optional[datetime] = None) -> str:
    """Serialize currency, both catalogs and all transactions."""
    document = ExportDocument(
        version=EXPORT_FORMAT_VERSION,
        exported_at=exported_at or utcnow(),
        currency=snapshot.currency,
        expense_categories=list(snapshot.expense_categories),
        income_categories=list(snapshot.income_categories),
        transactions=[
            ExportedTransaction(
                id=str(tx.id),
                type=tx.type,
                amount=tx.amount,
                category=tx.category,
                description=tx.description,
                date=tx.occurred_at,
                emotion=tx.emotion,
                currency=tx.currency,
                account_id=str(tx.account_id) if tx.account_id else None,
                transfer_group_id=tx.transfer_group_id,
                is_transfer=tx.is_transfer,
            )
            for tx in snapshot.transactions
        ],
    )
    return json.dumps(
        document.model_dump(mode="json", by_alias=True),
        ensure_ascii=False,
        indent=2,
    )


def _describe_validation_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"Invalid document at '{location}': {first.get('msg')}"


def parse_import(text: str, fallback_currency: Currency = Currency.CNY) -> ImportResult:
    """
    Parse an export document.

    Ids that are not server-shaped are replaced with fresh local ids,
    so an import can never collide with ids already known locally.
    Transactions without a currency take the document currency, or
    `fallback_currency` when the document has none either.

    Returns:
        ImportResult with ok=False and a diagnostic on any structural
        problem, otherwise ok=True with the payload attached
    """
    try:
        raw = json.loads(text, parse_float=Decimal)
    except (TypeError, ValueError) as e:
        return ImportResult.failure(f"Not valid JSON: {e}")

    if not isinstance(raw, dict):
        return ImportResult.failure("Document must be a JSON object")

    try:
        document = ExportDocument.model_validate(raw)
    except ValidationError as e:
        return ImportResult.failure(_describe_validation_error(e))

    if document.version > EXPORT_FORMAT_VERSION:
        return ImportResult.failure(
            f"Unsupported format version {document.version} "
            f"(this build reads up to {EXPORT_FORMAT_VERSION})"
        )

    currency = document.currency or fallback_currency
    transactions: list[Transaction] = []
    seen_ids: set[str] = set()
    regenerated = 0

    try:
        for entry in document.transactions:
            record_id = parse_record_id(entry.id) if entry.id else None
            if not isinstance(record_id, ServerId) or str(record_id) in seen_ids:
                record_id = new_local_id()
                regenerated += 1
            seen_ids.add(str(record_id))

            transactions.append(Transaction(
                id=record_id,
                type=entry.type,
                amount=entry.amount,
                category=entry.category,
                description=entry.description or "",
                occurred_at=entry.date,
                currency=entry.currency or currency,
                account_id=entry.account_id or None,
                emotion=entry.emotion,
                transfer_group_id=entry.transfer_group_id,
                is_transfer=entry.is_transfer,
            ))
    except ValidationError as e:
        return ImportResult.failure(_describe_validation_error(e))
    except ValueError as e:
        return ImportResult.failure(f"Invalid document: {e}")

    payload = ImportPayload(
        transactions=transactions,
        currency=document.currency,
        expense_categories=document.expense_categories,
        income_categories=document.income_categories,
        regenerated_ids=regenerated,
    )
    return ImportResult(ok=True, transaction_count=len(transactions), payload=payload)
