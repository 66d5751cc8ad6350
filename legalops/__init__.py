"""legalops: client spreadsheet import and billing reminder core."""

__version__ = "0.1.0"
