"""Automation for uploading NF invoices to the NFScan portal."""

__version__ = "0.1.0"
