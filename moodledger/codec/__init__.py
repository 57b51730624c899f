"""Import/export codec package."""

from moodledger.codec.exchange import (
    EXPORT_FORMAT_VERSION,
    ExportDocument,
    ExportedTransaction,
    ImportPayload,
    ImportResult,
    export_ledger,
    parse_import,
)

__all__ = [
    "EXPORT_FORMAT_VERSION",
    "ExportDocument",
    "ExportedTransaction",
    "ImportPayload",
    "ImportResult",
    "export_ledger",
    "parse_import",
]
