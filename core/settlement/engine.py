"""Settlement engine: turns one trade request into at most one on-chain swap.

Pipeline (each step short-circuits with a structured failure):

1. cooldown dedup (shared store, then in-process window)
2. chain / token validation
3. amount parsing
4. credential checks (signing key, RPC URL, signer address)
5. balance reconciliation (clip, haircut, stable minimum)
6. quote (with retry policy)
7. allowance / approval
8. transaction build (with retry policy)
9. signed submission

Steps 5 to 9 hold a per-chain lock so that two settlements for the same wallet
never interleave their balance reads, approvals and nonce assignment.

`settle()` never raises.
"""

from __future__ import annotations

import asyncio
import logging
import time
from decimal import Decimal
from typing import Callable, Optional

from core.chain.client import MAX_UINT256, normalize_private_key
from core.config import SettlementConfig
from core.execution.interfaces import ChainClient, QuoteService, TransactionBuilder
from core.settlement.cooldown import CooldownStore, CooldownStoreError, LocalCooldownWindow, cooldown_key
from core.settlement.errors import (
    BELOW_MIN_NOTIONAL,
    BUILD_FAILED,
    CONFLICTING_RISK_PARAMS,
    IDENTICAL_TOKENS,
    INSUFFICIENT_NATIVE_BALANCE,
    INTERNAL_ERROR,
    INVALID_AMOUNT,
    MISSING_RPC_URL,
    MISSING_SIGNING_KEY,
    QUOTE_BELOW_FLOOR,
    SIGNER_ADDRESS_MISMATCH,
    UNSUPPORTED_CHAIN,
    UNSUPPORTED_TOKEN,
    BuildFailedError,
    ConfigurationError,
    InsufficientBalanceError,
    OnChainFailureError,
    RateLimitedError,
    SettlementError,
    ValidationError,
    truncate,
)
from core.settlement.retry import run_with_retry
from core.storage.ledger import SettlementLedger
from core.tokens.registry import TokenRegistry, is_stablecoin
from core.types import SettlementRecord, SettlementRequest, SettlementResult, TokenInfo

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Trade execution failed. Check server logs for full trace."


def parse_amount(raw: object) -> int:
    """Parse a base-unit amount. Only positive integers are accepted."""
    if isinstance(raw, bool):
        raise ValidationError("amount must be an integer number of base units", code=INVALID_AMOUNT)
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str) and raw.strip().isdigit():
        value = int(raw.strip())
    else:
        raise ValidationError(f"invalid amount: {truncate(raw, 64)!r}", code=INVALID_AMOUNT)
    if value <= 0:
        raise ValidationError("amount must be greater than zero", code=INVALID_AMOUNT)
    return value


class SettlementEngine:
    """Executes validated swaps for a single signing wallet."""

    def __init__(
        self,
        *,
        config: SettlementConfig,
        registry: TokenRegistry,
        quotes: QuoteService,
        builder: TransactionBuilder,
        chain: ChainClient,
        cooldown_store: CooldownStore,
        local_window: Optional[LocalCooldownWindow] = None,
        ledger: Optional[SettlementLedger] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.registry = registry
        self.quotes = quotes
        self.builder = builder
        self.chain = chain
        self.cooldown_store = cooldown_store
        self.local_window = local_window or LocalCooldownWindow(config.cooldown_seconds, clock=clock)
        self.ledger = ledger
        self._chain_locks: dict[int, asyncio.Lock] = {}

    async def settle(self, request: SettlementRequest) -> SettlementResult:
        amount_hint = request.amount if isinstance(request.amount, int) and not isinstance(request.amount, bool) else 0
        try:
            tx_hash, amount = await self._settle(request)
            result = SettlementResult(ok=True, tx_hash=tx_hash)
            amount_hint = amount
        except SettlementError as e:
            logger.warning(
                "Settlement rejected chain=%s %s->%s code=%s: %s",
                request.chain_id,
                request.src_symbol,
                request.dest_symbol,
                e.code,
                e.message,
            )
            result = SettlementResult(ok=False, error=truncate(e.message), error_code=e.code, details=e.details)
        except Exception:
            logger.exception(
                "Unexpected settlement failure chain=%s %s->%s",
                request.chain_id,
                request.src_symbol,
                request.dest_symbol,
            )
            result = SettlementResult(ok=False, error=GENERIC_FAILURE, error_code=INTERNAL_ERROR)

        await self._record(request, result, amount_hint)
        return result

    async def _record(self, request: SettlementRequest, result: SettlementResult, amount: int) -> None:
        if self.ledger is None:
            return
        record = SettlementRecord(
            chain_id=request.chain_id,
            src_symbol=str(request.src_symbol),
            dest_symbol=str(request.dest_symbol),
            lane=request.lane,
            amount_base_units=amount,
            ok=result.ok,
            tx_hash=result.tx_hash,
            error_code=result.error_code,
            error=result.error,
        )
        try:
            await self.ledger.append(record)
        except Exception as e:
            logger.error("Failed to append settlement record: %s", e)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _settle(self, request: SettlementRequest) -> tuple[str, int]:
        logger.info(
            "Settlement request chain=%s %s->%s amount=%s lane=%s",
            request.chain_id,
            request.src_symbol,
            request.dest_symbol,
            request.amount,
            request.lane or "-",
        )

        await self._check_cooldown(request)

        src, dest = self._resolve_tokens(request)
        amount = parse_amount(request.amount)
        signer = self._check_credentials(request)

        async with self._chain_lock(request.chain_id):
            return await self._submit(request, src, dest, signer, amount)

    def _chain_lock(self, chain_id: int) -> asyncio.Lock:
        lock = self._chain_locks.get(chain_id)
        if lock is None:
            lock = asyncio.Lock()
            self._chain_locks[chain_id] = lock
        return lock

    async def _submit(
        self,
        request: SettlementRequest,
        src: TokenInfo,
        dest: TokenInfo,
        signer: str,
        requested: int,
    ) -> tuple[str, int]:
        amount = await self._reconcile_amount(request.chain_id, src, signer, requested)

        quote = await run_with_retry(
            self.config.retry_policy,
            lambda relaxed: self.quotes.get_quote(
                chain_id=request.chain_id, src=src, dest=dest, amount=amount, relaxed=relaxed
            ),
            f"quote {src.symbol}->{dest.symbol}",
        )
        if quote.src_usd < self.config.min_quote_notional_usd:
            raise ValidationError(
                f"quoted notional ${quote.src_usd} is below the ${self.config.min_quote_notional_usd} floor",
                code=QUOTE_BELOW_FLOOR,
            )
        logger.info("Quote OK %s->%s srcUSD=%s destUSD=%s", src.symbol, dest.symbol, quote.src_usd, quote.dest_usd)

        if not src.is_native:
            await self._ensure_allowance(request.chain_id, src, signer, amount, quote.token_transfer_proxy)

        slippage_bps, dest_amount = self._risk_params(request)
        tx = await run_with_retry(
            self.config.retry_policy,
            lambda relaxed: self.builder.build(
                chain_id=request.chain_id,
                src=src,
                dest=dest,
                amount=amount,
                quote=quote,
                user_address=signer,
                slippage_bps=slippage_bps,
                dest_amount=dest_amount,
                relaxed=relaxed,
            ),
            f"build {src.symbol}->{dest.symbol}",
        )
        logger.info("Build OK %s->%s to=%s value=%s", src.symbol, dest.symbol, tx.to, tx.value)

        try:
            tx_hash = await self.chain.send_transaction(request.chain_id, tx, self.config.gas_limit_multiplier)
        except SettlementError:
            raise
        except Exception as e:
            raise OnChainFailureError("Transaction submission failed", details=str(e)) from e

        logger.info("Submitted %s->%s on chain %s: %s", src.symbol, dest.symbol, request.chain_id, tx_hash)
        return tx_hash, amount

    async def _check_cooldown(self, request: SettlementRequest) -> None:
        wallet = request.from_address or self.config.trader_address or self.chain.signer_address() or "unknown"
        key = cooldown_key(wallet, request.chain_id, str(request.src_symbol), str(request.dest_symbol))
        ttl = self.config.cooldown_seconds
        message = f"cooldown({ttl}s): trade execution restricted, cooldown in progress"

        try:
            acquired = await self.cooldown_store.set_if_absent(key, ttl)
        except CooldownStoreError as e:
            logger.warning("Cooldown store unavailable, using in-process window only: %s", e)
            acquired = True
        if not acquired:
            raise RateLimitedError(message)

        if not self.local_window.try_acquire(key):
            raise RateLimitedError(message)
        logger.debug("Cooldown passed for %s", key)

    def _resolve_tokens(self, request: SettlementRequest) -> tuple[TokenInfo, TokenInfo]:
        chain_id = request.chain_id
        if chain_id not in self.config.enabled_chains or not self.registry.is_supported_chain(chain_id):
            raise ValidationError(f"Unsupported or disabled chain: {chain_id}", code=UNSUPPORTED_CHAIN)

        src = self.registry.resolve(chain_id, str(request.src_symbol))
        if src is None:
            raise ValidationError(f"Unsupported token {request.src_symbol} on chain {chain_id}", code=UNSUPPORTED_TOKEN)
        dest = self.registry.resolve(chain_id, str(request.dest_symbol))
        if dest is None:
            raise ValidationError(f"Unsupported token {request.dest_symbol} on chain {chain_id}", code=UNSUPPORTED_TOKEN)
        if src.address.lower() == dest.address.lower():
            raise ValidationError("Source and destination tokens are identical", code=IDENTICAL_TOKENS)

        logger.debug("Resolved %s=%s %s=%s", src.symbol, src.address, dest.symbol, dest.address)
        return src, dest

    def _check_credentials(self, request: SettlementRequest) -> str:
        if normalize_private_key(self.config.private_key) is None:
            raise ConfigurationError("Signing key is missing or malformed", code=MISSING_SIGNING_KEY)
        if not self.config.rpc_url(request.chain_id):
            raise ConfigurationError(f"No RPC URL configured for chain {request.chain_id}", code=MISSING_RPC_URL)

        signer = self.chain.signer_address()
        if not signer:
            raise ConfigurationError("Signing key is missing or malformed", code=MISSING_SIGNING_KEY)
        expected = (self.config.trader_address or request.from_address or "").lower()
        if expected and signer.lower() != expected:
            raise ConfigurationError(
                "Derived signer address does not match the expected trader address",
                code=SIGNER_ADDRESS_MISMATCH,
            )
        return signer

    async def _reconcile_amount(self, chain_id: int, src: TokenInfo, signer: str, requested: int) -> int:
        haircut = self.config.balance_haircut
        try:
            if src.is_native:
                balance = await self.chain.get_native_balance(chain_id, signer)
            else:
                balance = await self.chain.get_token_balance(chain_id, src.address, signer)
        except Exception as e:
            raise OnChainFailureError(f"Balance read failed for {src.symbol}", details=str(e)) from e

        if src.is_native:
            available = balance - self.config.native_gas_reserve_wei
            shortfall_code = INSUFFICIENT_NATIVE_BALANCE
        else:
            available = balance
            shortfall_code = None

        amount = requested
        clipped = False
        if requested > available:
            amount = int(Decimal(max(available, 0)) * haircut)
            clipped = True
            if amount <= 0:
                raise InsufficientBalanceError(
                    f"Insufficient {src.symbol} balance after gas reserve" if src.is_native
                    else f"Insufficient {src.symbol} balance",
                    code=shortfall_code,
                )
            logger.info("Clipped %s amount %s -> %s (balance %s)", src.symbol, requested, amount, balance)

        if is_stablecoin(src.symbol):
            min_units = int(self.config.min_stable_notional_usd * (Decimal(10) ** src.decimals))
            if amount < min_units:
                if clipped or available < min_units:
                    raise InsufficientBalanceError(
                        f"{src.symbol} amount is below the ${self.config.min_stable_notional_usd} minimum notional",
                        code=BELOW_MIN_NOTIONAL,
                    )
                logger.info("Bumped %s amount %s -> %s (minimum notional)", src.symbol, amount, min_units)
                amount = min_units

        return amount

    async def _ensure_allowance(
        self,
        chain_id: int,
        src: TokenInfo,
        signer: str,
        amount: int,
        spender: Optional[str],
    ) -> None:
        if not spender:
            raise BuildFailedError("Quote has no token transfer proxy", code=BUILD_FAILED, is_transient=False)

        try:
            allowance = await self.chain.get_allowance(chain_id, src.address, signer, spender)
        except Exception as e:
            raise OnChainFailureError("Allowance read failed", details=str(e)) from e

        if allowance >= amount:
            logger.info("Allowance OK for %s (%s >= %s)", src.symbol, allowance, amount)
            return

        try:
            approve_hash = await self.chain.approve(chain_id, src.address, spender, MAX_UINT256)
            logger.info("Approve sent for %s: %s", src.symbol, approve_hash)
            confirmed = await self.chain.wait_for_receipt(chain_id, approve_hash, self.config.receipt_timeout_seconds)
        except Exception as e:
            raise OnChainFailureError(f"Approval for {src.symbol} failed", details=str(e)) from e
        if not confirmed:
            raise OnChainFailureError(f"Approval for {src.symbol} reverted")
        logger.info("Approve confirmed for %s", src.symbol)

    def _risk_params(self, request: SettlementRequest) -> tuple[Optional[int], Optional[int]]:
        if request.slippage_bps is not None and request.dest_amount is not None:
            raise ValidationError(
                "Slippage and destination amount cannot both be set",
                code=CONFLICTING_RISK_PARAMS,
            )
        if request.dest_amount is not None:
            return None, int(request.dest_amount)
        slippage = request.slippage_bps if request.slippage_bps is not None else self.config.default_slippage_bps
        return int(slippage), None
