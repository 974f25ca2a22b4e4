"""xlsvc - asynchronous job client for the spreadsheet-cleaning service."""

__version__ = "0.3.0"
