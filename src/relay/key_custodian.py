"""
Ephemeral signing capability for one end user.

A ``KeyHandle`` names a user's key without holding it decrypted; only
``unlock()`` produces a ``KeyCustodian``, and the custodian is revoked when
the ``with`` block exits, so key material never outlives one signing step.
"""

import asyncio
from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncIterator, Dict, Iterator, Optional

from eth_account.datastructures import SignedMessage
from eth_account.signers.local import LocalAccount
from web3 import Web3

from src.relay.errors import RelayError


class KeyCustodian:
    """Decrypted signer, valid only inside its ``KeyHandle.unlock()`` block."""

    def __init__(self, account: LocalAccount):
        self._account: Optional[LocalAccount] = account
        self.address = account.address

    def _require_account(self) -> LocalAccount:
        if self._account is None:
            raise RelayError("Key custodian has already been released")
        return self._account

    def sign_typed_data(self, domain: Dict[str, Any], types: Dict[str, Any], value: Dict[str, Any]) -> SignedMessage:
        return self._require_account().sign_typed_data(
            domain_data=domain, message_types=types, message_data=value,
        )

    def sign_transaction(self, tx: Dict[str, Any]):
        return self._require_account().sign_transaction(tx)

    def release(self) -> None:
        self._account = None


class KeyHandle:
    """A user's key by reference. ``address`` never needs decryption."""

    def __init__(self, address: str):
        self.address = Web3.to_checksum_address(address)

    def _load_account(self) -> LocalAccount:
        raise NotImplementedError

    @contextmanager
    def unlock(self) -> Iterator[KeyCustodian]:
        custodian = KeyCustodian(self._load_account())
        try:
            yield custodian
        finally:
            custodian.release()

    @asynccontextmanager
    async def unlock_async(self) -> AsyncIterator[KeyCustodian]:
        """``unlock()`` for coroutines: key loading (PIN derivation) runs in a worker thread."""
        custodian = KeyCustodian(await asyncio.to_thread(self._load_account))
        try:
            yield custodian
        finally:
            custodian.release()


class AccountKeyHandle(KeyHandle):
    """Handle over an already-loaded account (scripts, tests, the relay itself)."""

    def __init__(self, account: LocalAccount):
        super().__init__(account.address)
        self._account = account

    def _load_account(self) -> LocalAccount:
        return self._account
