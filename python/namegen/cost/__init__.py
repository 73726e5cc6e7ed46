"""Cost estimation and the usage ledger."""
