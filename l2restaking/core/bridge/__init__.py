"""CCIP lanes, transaction records and pending-transaction reconciliation."""
