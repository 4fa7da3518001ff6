"""Usage ledger persistence."""
