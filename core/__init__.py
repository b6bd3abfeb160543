"""Core domain modules.

This package contains the building blocks of the scan -> gate -> settle pipeline:

- opportunities: pair scanning and lane threshold evaluation
- fees: per-swap cost model (gas, slippage, MEV margin, failure buffer)
- portfolio: capital tracking, trade sizing and live balance checks
- risk: drawdown and lane-B circuit breakers
- execution: per-chain settlement queue and collaborator protocols
- settlement: the settlement engine, cooldown stores, errors and retry policy
- market_data: DEX aggregator client (quotes and transaction builds)
- chain: EVM access (balances, allowances, signing, submission)
- tokens: static token registry
- automation: bot loop scheduler and audit trail
- storage: settlement ledger (in-memory or SQLAlchemy)
"""
