"""On-chain access (balances, allowances, signing, submission)."""
