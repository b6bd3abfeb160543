"""Settlement boundary: cooldown dedup, validation, balance reconciliation, swap submission."""
