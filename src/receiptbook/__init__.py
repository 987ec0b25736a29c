"""receiptbook - receipt capture and bookkeeping with AI extraction."""

__version__ = "0.1.0"
