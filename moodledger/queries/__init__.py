"""Statistics query package."""

from moodledger.queries.statistics import (
    CategoryTotals,
    PeriodSummary,
    category_breakdown,
    monthly_summary,
    period_summary,
    top_categories,
    transfer_fees,
)

__all__ = [
    "CategoryTotals",
    "PeriodSummary",
    "category_breakdown",
    "monthly_summary",
    "period_summary",
    "top_categories",
    "transfer_fees",
]
