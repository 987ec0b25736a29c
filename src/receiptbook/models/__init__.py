"""receiptbook models package."""

from .analysis import (
    ERROR_VENDOR,
    MANUAL_ENTRY_VENDOR,
    AnalyzeReceiptRequest,
    AnalyzeReceiptResponse,
    ReceiptAnalysis,
)
from .receipt import (
    CATEGORY_LABELS,
    Receipt,
    ReceiptCategory,
    ReceiptDraft,
    ReceiptUpdate,
)

__all__ = [
    "CATEGORY_LABELS",
    "ERROR_VENDOR",
    "MANUAL_ENTRY_VENDOR",
    "AnalyzeReceiptRequest",
    "AnalyzeReceiptResponse",
    "Receipt",
    "ReceiptAnalysis",
    "ReceiptCategory",
    "ReceiptDraft",
    "ReceiptUpdate",
]
