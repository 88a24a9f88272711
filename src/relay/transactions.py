"""
Transaction submission for the relay wallet and for end users.

Every gas-paying write leaves the process through ``RelayWallet.submit``. The
relay wallet is one account shared by every request, so nonce allocation,
signing and broadcast run under a single ``asyncio.Lock``; gas estimation
(a read) and the confirmation wait happen outside it.

A broadcast transaction is a commitment point: once it is on the wire the
caller gets a receipt back, marked ``pending`` when confirmation did not
arrive within ``confirmation_timeout``.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import TimeExhausted

from src.data_models.relay_schemas import SubmissionReceipt
from src.relay.errors import TransactionReverted, is_already_voted_error
from src.relay.key_custodian import KeyCustodian
from src.utils.logger import logger, short_hex

DEFAULT_FALLBACK_GAS_LIMIT = 1_000_000
DEFAULT_GAS_BUFFER_PERCENT = 20
DEFAULT_CONFIRMATION_TIMEOUT = 120.0


@dataclass
class ContractCall:
    """A contract write described by function name and arguments."""
    contract: Any
    fn_name: str
    args: Tuple[Any, ...] = field(default_factory=tuple)
    value: int = 0

    def function(self):
        return getattr(self.contract.functions, self.fn_name)(*self.args)

    def describe(self) -> str:
        return f"{self.fn_name}/{len(self.args)}"


class TransactionSender:
    """Shared estimate/build/broadcast/confirm cycle."""

    def __init__(
        self,
        w3,
        confirmation_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT,
        gas_buffer_percent: int = DEFAULT_GAS_BUFFER_PERCENT,
        fallback_gas_limit: int = DEFAULT_FALLBACK_GAS_LIMIT,
    ):
        self.w3 = w3
        self.confirmation_timeout = confirmation_timeout
        self.gas_buffer_percent = gas_buffer_percent
        self.fallback_gas_limit = fallback_gas_limit

    async def _gas_limit(
        self, call: ContractCall, sender: str, gas_hint: Optional[int], allow_gas_fallback: bool,
    ) -> int:
        if gas_hint:
            return int(gas_hint)
        try:
            estimate = await call.function().estimate_gas({"from": sender, "value": call.value})
        except Exception as e:
            if not allow_gas_fallback or is_already_voted_error(e):
                # Known double vote: nothing to broadcast
                raise
            logger.warning(
                "Gas estimation failed for %s, using fixed limit %d: %s",
                call.describe(), self.fallback_gas_limit, e,
            )
            return self.fallback_gas_limit
        buffered = int(estimate) * (100 + self.gas_buffer_percent) // 100
        logger.debug("Gas estimate for %s: %d (with buffer: %d)", call.describe(), estimate, buffered)
        return buffered

    async def _build(self, call: ContractCall, sender: str, nonce: int, gas: int) -> Dict[str, Any]:
        return await call.function().build_transaction({
            "from": sender,
            "nonce": nonce,
            "gas": gas,
            "value": call.value,
        })

    async def _broadcast(self, signed) -> str:
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    async def _await_receipt(self, tx_hash: str, call: ContractCall) -> SubmissionReceipt:
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.confirmation_timeout)
        except TimeExhausted:
            logger.warning(
                "%s tx %s not confirmed after %.0fs, reporting as pending",
                call.describe(), short_hex(tx_hash), self.confirmation_timeout,
            )
            return SubmissionReceipt(tx_hash=tx_hash, pending=True)
        except Exception as e:
            # Already broadcast; only the outcome report failed
            logger.warning("Receipt lookup for %s failed, reporting as pending: %s", short_hex(tx_hash), e)
            return SubmissionReceipt(tx_hash=tx_hash, pending=True)

        block_number = receipt.get("blockNumber")
        if receipt.get("status") == 0:
            logger.error("%s tx %s reverted in block %s", call.describe(), short_hex(tx_hash), block_number)
            raise TransactionReverted(tx_hash, block_number)
        logger.info("%s confirmed in block %s (tx %s)", call.describe(), block_number, short_hex(tx_hash))
        return SubmissionReceipt(tx_hash=tx_hash, block_number=block_number, status=True)


class RelayWallet(TransactionSender):
    """The admin account paying gas for every relayed write."""

    def __init__(self, w3, account: LocalAccount, **kwargs):
        super().__init__(w3, **kwargs)
        self._account = account
        self.address = account.address
        self._lock = asyncio.Lock()
        self._next_nonce: Optional[int] = None

    async def _allocate_nonce(self) -> int:
        if self._next_nonce is None:
            self._next_nonce = await self.w3.eth.get_transaction_count(self.address, "pending")
            logger.debug("RelayWallet: nonce synced from node: %d", self._next_nonce)
        return self._next_nonce

    async def submit(
        self, call: ContractCall, gas_hint: Optional[int] = None, allow_gas_fallback: bool = True,
    ) -> SubmissionReceipt:
        gas = await self._gas_limit(call, self.address, gas_hint, allow_gas_fallback)
        async with self._lock:
            nonce = await self._allocate_nonce()
            try:
                tx = await self._build(call, self.address, nonce, gas)
                signed = self._account.sign_transaction(tx)
                tx_hash = await self._broadcast(signed)
            except Exception:
                # The node may or may not have seen the nonce; resync next time
                self._next_nonce = None
                raise
            self._next_nonce = nonce + 1
        logger.info("RelayWallet: sent %s nonce=%d gas=%d tx=%s", call.describe(), nonce, gas, short_hex(tx_hash))
        return await self._await_receipt(tx_hash, call)


class UserTransactionSender(TransactionSender):
    """Submits a transaction signed and paid for by the end user's own key.

    Not gasless: the user's account needs native balance unless the network
    sponsors fees for it.
    """

    async def submit(
        self, call: ContractCall, custodian: KeyCustodian, gas_hint: Optional[int] = None,
    ) -> SubmissionReceipt:
        gas = await self._gas_limit(call, custodian.address, gas_hint, allow_gas_fallback=True)
        nonce = await self.w3.eth.get_transaction_count(custodian.address, "pending")
        tx = await self._build(call, custodian.address, nonce, gas)
        signed = custodian.sign_transaction(tx)
        tx_hash = await self._broadcast(signed)
        logger.info("UserTransactionSender: sent %s for %s tx=%s", call.describe(), custodian.address, short_hex(tx_hash))
        return await self._await_receipt(tx_hash, call)
