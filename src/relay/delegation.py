"""
Delegation executor: makes a holder's voting power usable.

Delegation is idempotent on-chain, so the executor keeps no memory between
calls. Each call checks the current delegatee first, then runs a bounded
retry loop over the available methods, re-reading ``delegates`` after each
submission before declaring success. Failures are returned, never raised,
because delegation is a best-effort follow-up to whatever triggered it.
"""

import asyncio
import time
from typing import Awaitable, Callable, List, Optional, Tuple

from web3 import Web3

from src.data_models.relay_schemas import DelegationResult, SubmissionReceipt
from src.relay.chain_reader import ZERO_ADDRESS, ChainReader
from src.relay.errors import ChainReadError, sanitize_error
from src.relay.key_custodian import KeyHandle
from src.relay.transactions import RelayWallet
from src.relay.typed_data import DELEGATION_TYPES, build_domain, delegation_value, split_signature
from src.utils.logger import logger, short_hex

METHOD_ADMIN_DIRECT = "admin-direct"
METHOD_META_TRANSACTION = "meta-transaction"
METHOD_ALREADY_DELEGATED = "already-delegated"

DelegationMethod = Callable[[str, str], Awaitable[SubmissionReceipt]]


class DelegationExecutor:

    def __init__(
        self,
        reader: ChainReader,
        wallet: RelayWallet,
        max_attempts: int = 3,
        backoff_seconds: float = 2.0,
        signature_ttl: int = 3600,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.reader = reader
        self.wallet = wallet
        self.max_attempts = max(1, int(max_attempts))
        self.backoff_seconds = backoff_seconds
        self.signature_ttl = signature_ttl
        self._sleep = sleep
        self._clock = clock

    async def _current_delegatee(self, holder: str) -> Optional[str]:
        try:
            current = await self.reader.delegates(holder)
        except ChainReadError as e:
            logger.warning("DelegationExecutor: could not read delegatee of %s: %s", holder, e)
            return None
        return Web3.to_checksum_address(current) if current else ZERO_ADDRESS

    async def is_delegated(self, holder: str) -> bool:
        """True if ``holder`` has any non-zero delegatee."""
        current = await self._current_delegatee(holder)
        return current is not None and current != ZERO_ADDRESS

    def _methods(self, key_handle: Optional[KeyHandle], holder: str) -> List[Tuple[str, DelegationMethod]]:
        methods: List[Tuple[str, DelegationMethod]] = []
        if self.reader.has_token_function("adminDelegateFor"):
            methods.append((METHOD_ADMIN_DIRECT, self._admin_direct))
        if key_handle is not None and key_handle.address == holder:
            methods.append((METHOD_META_TRANSACTION, lambda h, d: self._meta_transaction(h, d, key_handle)))
        return methods

    async def _admin_direct(self, holder: str, delegatee: str) -> SubmissionReceipt:
        call = self.reader.token_call("adminDelegateFor", holder, delegatee)
        # Without an estimate the call is most likely unsupported; do not burn gas on it
        return await self.wallet.submit(call, allow_gas_fallback=False)

    async def _meta_transaction(self, holder: str, delegatee: str, key_handle: KeyHandle) -> SubmissionReceipt:
        nonce = await self.reader.token_nonce(holder)
        expiry = int(self._clock()) + self.signature_ttl
        domain = build_domain(await self.reader.token_name(), await self.reader.chain_id(), self.reader.token_address)
        async with key_handle.unlock_async() as custodian:
            signed = custodian.sign_typed_data(domain, DELEGATION_TYPES, delegation_value(delegatee, nonce, expiry))
        v, r, s = split_signature(signed)
        logger.info(
            "DelegationExecutor: delegation signed by %s: v=%d, r=%s, s=%s",
            holder, v, short_hex(r), short_hex(s),
        )
        call = self.reader.token_call("delegateBySig", delegatee, nonce, expiry, v, r, s)
        return await self.wallet.submit(call)

    async def delegate(self, holder: str, delegatee: str, key_handle: Optional[KeyHandle] = None) -> DelegationResult:
        try:
            holder = Web3.to_checksum_address(holder)
            delegatee = Web3.to_checksum_address(delegatee)
        except (TypeError, ValueError) as e:
            return DelegationResult(success=False, delegation_error=True, message=f"Invalid address: {sanitize_error(e)}")

        if await self._current_delegatee(holder) == delegatee:
            logger.info("DelegationExecutor: %s already delegates to %s", holder, delegatee)
            return DelegationResult(
                success=True, method=METHOD_ALREADY_DELEGATED, already_delegated=True,
                message="Voting power is already delegated",
            )

        methods = self._methods(key_handle, holder)
        if not methods:
            return DelegationResult(
                success=False, delegation_error=True,
                message="No delegation method available: the token has no admin delegation entry point "
                        "and the holder's key was not supplied",
            )

        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            for name, method in methods:
                logger.info("DelegationExecutor: attempt %d/%d via %s for %s", attempt, self.max_attempts, name, holder)
                try:
                    receipt = await method(holder, delegatee)
                except Exception as e:
                    last_error = e
                    logger.warning("DelegationExecutor: %s failed for %s: %s", name, holder, e)
                    continue

                if receipt.pending:
                    # Already broadcast; retrying would race the pending transaction
                    return DelegationResult(
                        success=False, method=name, tx_hash=receipt.tx_hash, delegation_error=True,
                        attempts=attempt,
                        message="Delegation transaction was submitted but is not confirmed yet",
                    )

                current = await self._current_delegatee(holder)
                if current == delegatee or current is None:
                    if current is None:
                        logger.warning("DelegationExecutor: confirmed %s but could not re-read delegatee", name)
                    logger.info("DelegationExecutor: %s now delegates to %s via %s", holder, delegatee, name)
                    return DelegationResult(
                        success=True, method=name, tx_hash=receipt.tx_hash, attempts=attempt,
                        message="Voting power activated",
                    )
                last_error = f"{name} confirmed but delegatee is still {current}"
                logger.warning("DelegationExecutor: %s", last_error)

            if attempt < self.max_attempts:
                await self._sleep(self.backoff_seconds * attempt)

        reason = sanitize_error(last_error) if last_error is not None else "unknown error"
        logger.error("DelegationExecutor: delegation for %s failed after %d attempts: %s", holder, self.max_attempts, reason)
        return DelegationResult(
            success=False, delegation_error=True, attempts=self.max_attempts,
            message=f"Voting power could not be activated: {reason}",
        )
