"""Tests for the delegation executor."""
import asyncio
from unittest.mock import AsyncMock

from src.relay.chain_reader import ZERO_ADDRESS
from src.relay.delegation import (
    METHOD_ADMIN_DIRECT,
    METHOD_ALREADY_DELEGATED,
    METHOD_META_TRANSACTION,
    DelegationExecutor,
)

from .fakes import ALICE, BOB, FakeChain, FakeReader, FakeWallet, handle


def _executor(token_functions=(), max_attempts=3):
    chain = FakeChain()
    reader = FakeReader(chain, token_functions=set(token_functions))
    wallet = FakeWallet(chain)
    sleep = AsyncMock()
    executor = DelegationExecutor(
        reader, wallet, max_attempts=max_attempts, backoff_seconds=2.0,
        sleep=sleep, clock=lambda: 1_700_000_000,
    )
    return chain, reader, wallet, sleep, executor


class TestDelegate:

    def test_meta_transaction_self_delegation(self):
        chain, _, wallet, _, executor = _executor()
        result = asyncio.run(executor.delegate(ALICE.address, ALICE.address, key_handle=handle(ALICE)))
        assert result.success
        assert result.method == METHOD_META_TRANSACTION
        assert result.attempts == 1
        assert chain.delegates[ALICE.address] == ALICE.address
        assert chain.token_nonces[ALICE.address] == 1
        call = wallet.submitted[0]
        assert call.fn_name == "delegateBySig"
        # expiry = now + one hour
        assert call.args[2] == 1_700_000_000 + 3600

    def test_admin_direct_preferred_when_available(self):
        chain, _, wallet, _, executor = _executor(token_functions={"adminDelegateFor"})
        result = asyncio.run(executor.delegate(ALICE.address, ALICE.address, key_handle=handle(ALICE)))
        assert result.success
        assert result.method == METHOD_ADMIN_DIRECT
        assert wallet.names() == ["adminDelegateFor"]

    def test_admin_direct_falls_back_to_meta_transaction(self):
        _, _, wallet, _, executor = _executor(token_functions={"adminDelegateFor"})
        wallet.failing["adminDelegateFor"] = RuntimeError("execution reverted: not admin")
        result = asyncio.run(executor.delegate(ALICE.address, ALICE.address, key_handle=handle(ALICE)))
        assert result.success
        assert result.method == METHOD_META_TRANSACTION
        assert wallet.names() == ["adminDelegateFor", "delegateBySig"]

    def test_idempotent_second_call(self):
        _, _, wallet, _, executor = _executor()
        first = asyncio.run(executor.delegate(ALICE.address, ALICE.address, key_handle=handle(ALICE)))
        second = asyncio.run(executor.delegate(ALICE.address, ALICE.address, key_handle=handle(ALICE)))
        assert first.success and second.success
        assert second.already_delegated
        assert second.method == METHOD_ALREADY_DELEGATED
        assert wallet.names() == ["delegateBySig"]

    def test_delegating_to_someone_else(self):
        chain, _, _, _, executor = _executor()
        result = asyncio.run(executor.delegate(ALICE.address, BOB.address, key_handle=handle(ALICE)))
        assert result.success
        assert chain.delegates[ALICE.address] == BOB.address

    def test_lowercase_addresses_accepted(self):
        chain, _, _, _, executor = _executor()
        result = asyncio.run(executor.delegate(ALICE.address.lower(), ALICE.address.lower(), key_handle=handle(ALICE)))
        assert result.success
        assert chain.delegates[ALICE.address] == ALICE.address


class TestFailures:

    def test_bounded_retries_with_linear_backoff(self):
        _, _, wallet, sleep, executor = _executor()
        wallet.failing["delegateBySig"] = RuntimeError("execution reverted: signature expired")
        result = asyncio.run(executor.delegate(ALICE.address, ALICE.address, key_handle=handle(ALICE)))
        assert not result.success
        assert result.delegation_error
        assert result.attempts == 3
        assert "Voting power could not be activated" in result.message
        assert wallet.names() == ["delegateBySig"] * 3
        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 4.0]

    def test_no_method_available(self):
        _, _, wallet, _, executor = _executor()
        result = asyncio.run(executor.delegate(ALICE.address, ALICE.address))
        assert not result.success
        assert result.delegation_error
        assert wallet.submitted == []

    def test_key_for_another_holder_is_not_used(self):
        _, _, wallet, _, executor = _executor()
        result = asyncio.run(executor.delegate(ALICE.address, ALICE.address, key_handle=handle(BOB)))
        assert not result.success
        assert wallet.submitted == []

    def test_invalid_address_never_raises(self):
        _, _, _, _, executor = _executor()
        result = asyncio.run(executor.delegate("0x123", ALICE.address))
        assert not result.success
        assert result.delegation_error

    def test_unverified_delegation_retries(self):
        chain, _, wallet, _, executor = _executor(token_functions={"adminDelegateFor"}, max_attempts=2)

        original_apply = chain.apply

        def apply_without_effect(call, sender):
            if call.fn_name != "adminDelegateFor":
                original_apply(call, sender)

        chain.apply = apply_without_effect
        result = asyncio.run(executor.delegate(ALICE.address, ALICE.address))
        assert not result.success
        assert wallet.names() == ["adminDelegateFor", "adminDelegateFor"]
        assert chain.delegates.get(ALICE.address, ZERO_ADDRESS) == ZERO_ADDRESS

    def test_pending_submission_stops_retrying(self):
        _, _, wallet, sleep, executor = _executor()
        wallet.pending.add("delegateBySig")
        result = asyncio.run(executor.delegate(ALICE.address, ALICE.address, key_handle=handle(ALICE)))
        assert not result.success
        assert result.tx_hash
        assert wallet.names() == ["delegateBySig"]
        sleep.assert_not_awaited()

    def test_is_delegated(self):
        chain, _, _, _, executor = _executor()
        assert not asyncio.run(executor.is_delegated(ALICE.address))
        chain.delegates[ALICE.address] = BOB.address
        assert asyncio.run(executor.is_delegated(ALICE.address))
