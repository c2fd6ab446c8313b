"""Leave Ledger — balance ledger and leave request lifecycle service."""
