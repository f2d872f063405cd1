"""Bank Statement Import and Reconciliation.

Parses bank statement documents (PDF and spreadsheet exports) into
normalized transaction records with a period summary, persists them as
statement lines, and reconciles those lines against ledger entries.
"""

__version__ = "1.0.0"
__author__ = "Finance Tooling Team"
