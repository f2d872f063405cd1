"""Statement line reconciliation against ledger entries."""
