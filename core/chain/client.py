"""EVM chain access over web3's async HTTP provider.

One `AsyncWeb3` instance per chain, created lazily from the configured RPC
URLs. Every RPC round-trip is bounded by `rpc_timeout`.
"""

from __future__ import annotations

import asyncio
import logging
import re
from decimal import Decimal
from typing import Any, Awaitable, Mapping, Optional, TypeVar

from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from core.settlement.errors import MISSING_RPC_URL, ConfigurationError
from core.types import BuiltTransaction

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_UINT256 = 2**256 - 1

ERC20_ABI = [
    {"constant": True, "inputs": [{"name": "account", "type": "address"}], "name": "balanceOf", "outputs": [{"name": "", "type": "uint256"}], "type": "function"},
    {"constant": True, "inputs": [{"name": "owner", "type": "address"}, {"name": "spender", "type": "address"}], "name": "allowance", "outputs": [{"name": "", "type": "uint256"}], "type": "function"},
    {"constant": False, "inputs": [{"name": "spender", "type": "address"}, {"name": "amount", "type": "uint256"}], "name": "approve", "outputs": [{"name": "", "type": "bool"}], "type": "function"},
]

_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")

APPROVE_FALLBACK_GAS = 60_000


def normalize_private_key(key: Optional[str]) -> Optional[str]:
    """Return the key with a 0x prefix, or None when absent or malformed."""
    if not key:
        return None
    key = key.strip()
    if not _KEY_RE.match(key):
        return None
    return key if key.startswith("0x") else f"0x{key}"


def derive_address(private_key: str) -> str:
    return Account.from_key(private_key).address


class Web3ChainClient:
    """ChainClient implementation bound to a single signing key."""

    def __init__(
        self,
        rpc_urls: Mapping[int, str],
        private_key: Optional[str] = None,
        *,
        rpc_timeout: float = 30.0,
    ) -> None:
        self._rpc_urls = dict(rpc_urls)
        self._private_key = normalize_private_key(private_key)
        self._address = derive_address(self._private_key) if self._private_key else None
        self.rpc_timeout = rpc_timeout
        self._web3: dict[int, AsyncWeb3] = {}

    def signer_address(self) -> Optional[str]:
        return self._address

    def _w3(self, chain_id: int) -> AsyncWeb3:
        w3 = self._web3.get(chain_id)
        if w3 is None:
            url = self._rpc_urls.get(chain_id)
            if not url:
                raise ConfigurationError(f"No RPC URL configured for chain {chain_id}", code=MISSING_RPC_URL)
            w3 = AsyncWeb3(AsyncHTTPProvider(url))
            self._web3[chain_id] = w3
        return w3

    def _require_signer(self) -> tuple[str, str]:
        if not self._private_key or not self._address:
            raise RuntimeError("chain client has no signing key")
        return self._private_key, self._address

    async def _rpc(self, call: Awaitable[T]) -> T:
        return await asyncio.wait_for(call, timeout=self.rpc_timeout)

    def _erc20(self, w3: AsyncWeb3, token: str) -> Any:
        return w3.eth.contract(address=Web3.to_checksum_address(token), abi=ERC20_ABI)

    async def get_native_balance(self, chain_id: int, address: str) -> int:
        w3 = self._w3(chain_id)
        return int(await self._rpc(w3.eth.get_balance(Web3.to_checksum_address(address))))

    async def get_token_balance(self, chain_id: int, token: str, owner: str) -> int:
        w3 = self._w3(chain_id)
        call = self._erc20(w3, token).functions.balanceOf(Web3.to_checksum_address(owner)).call()
        return int(await self._rpc(call))

    async def get_allowance(self, chain_id: int, token: str, owner: str, spender: str) -> int:
        w3 = self._w3(chain_id)
        call = self._erc20(w3, token).functions.allowance(
            Web3.to_checksum_address(owner), Web3.to_checksum_address(spender)
        ).call()
        return int(await self._rpc(call))

    async def get_gas_price(self, chain_id: int) -> int:
        w3 = self._w3(chain_id)
        return int(await self._rpc(w3.eth.gas_price))

    async def _sign_and_send(self, w3: AsyncWeb3, tx: dict[str, Any], private_key: str) -> str:
        signed = Account.sign_transaction(tx, private_key)
        raw = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction")
        tx_hash = await self._rpc(w3.eth.send_raw_transaction(raw))
        return Web3.to_hex(tx_hash)

    async def approve(self, chain_id: int, token: str, spender: str, amount: int = MAX_UINT256) -> str:
        private_key, sender = self._require_signer()
        w3 = self._w3(chain_id)
        contract = self._erc20(w3, token)
        spender_cs = Web3.to_checksum_address(spender)

        base = {
            "chainId": chain_id,
            "from": sender,
            "nonce": await self._rpc(w3.eth.get_transaction_count(sender, "pending")),
            "value": 0,
            "gasPrice": await self.get_gas_price(chain_id),
        }
        try:
            estimate = await self._rpc(contract.functions.approve(spender_cs, int(amount)).estimate_gas({"from": sender}))
        except Exception as e:
            logger.warning("approve gas estimate failed on chain %s, using fallback: %s", chain_id, e)
            estimate = APPROVE_FALLBACK_GAS
        tx = await contract.functions.approve(spender_cs, int(amount)).build_transaction(
            {**base, "gas": int(estimate * 1.2)}
        )
        tx_hash = await self._sign_and_send(w3, tx, private_key)
        logger.info("Approval sent on chain %s: token=%s spender=%s tx=%s", chain_id, token, spender_cs, tx_hash)
        return tx_hash

    async def wait_for_receipt(self, chain_id: int, tx_hash: str, timeout: float) -> bool:
        w3 = self._w3(chain_id)
        receipt = await w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        return int(receipt.get("status", 0)) == 1

    async def send_transaction(self, chain_id: int, tx: BuiltTransaction, gas_multiplier: Decimal) -> str:
        private_key, sender = self._require_signer()
        w3 = self._w3(chain_id)

        payload: dict[str, Any] = {
            "chainId": chain_id,
            "from": sender,
            "to": Web3.to_checksum_address(tx.to),
            "data": tx.data,
            "value": int(tx.value),
            "nonce": await self._rpc(w3.eth.get_transaction_count(sender, "pending")),
            "gasPrice": await self.get_gas_price(chain_id),
        }
        gas_limit = tx.gas
        if not gas_limit:
            gas_limit = int(await self._rpc(w3.eth.estimate_gas(payload)))
        payload["gas"] = max(21_000, int(Decimal(gas_limit) * gas_multiplier))

        return await self._sign_and_send(w3, payload, private_key)
