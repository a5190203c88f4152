"""PayFinder - payroll export ingestion, indexing and lookup."""

__version__ = "0.1.0"
