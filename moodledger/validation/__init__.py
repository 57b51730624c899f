"""Ledger invariant validation package."""

from moodledger.validation.validator import LedgerValidator

__all__ = ["LedgerValidator"]
