"""Tests for the shared EIP-712 domain builder and signature splitting."""
import asyncio
import threading

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data

from src.relay.errors import RelayError
from src.relay.key_custodian import AccountKeyHandle
from src.relay.typed_data import (
    BALLOT_TYPES,
    DELEGATION_TYPES,
    ballot_value,
    build_domain,
    delegation_value,
    split_signature,
)

from .fakes import ALICE, GOVERNOR, TOKEN


class TestBuildDomain:

    def test_domain_shape(self):
        domain = build_domain("AlphinGovernor", 11155111, GOVERNOR.lower())
        assert domain == {
            "name": "AlphinGovernor",
            "version": "1",
            "chainId": 11155111,
            "verifyingContract": GOVERNOR,
        }

    def test_types_match_contract_structs(self):
        assert [f["name"] for f in BALLOT_TYPES["Ballot"]] == ["proposalId", "support"]
        assert [f["type"] for f in BALLOT_TYPES["Ballot"]] == ["uint256", "uint8"]
        assert [f["name"] for f in DELEGATION_TYPES["Delegation"]] == ["delegatee", "nonce", "expiry"]
        assert [f["type"] for f in DELEGATION_TYPES["Delegation"]] == ["address", "uint256", "uint256"]


class TestSignatures:

    def test_ballot_signature_recovers_voter(self):
        domain = build_domain("AlphinGovernor", 1, GOVERNOR)
        value = ballot_value(42, 1)
        with AccountKeyHandle(ALICE).unlock() as custodian:
            signed = custodian.sign_typed_data(domain, BALLOT_TYPES, value)
        v, r, s = split_signature(signed)
        assert v in (27, 28)
        assert len(r) == 32 and len(s) == 32
        signable = encode_typed_data(domain_data=domain, message_types=BALLOT_TYPES, message_data=value)
        assert Account.recover_message(signable, signature=r + s + bytes([v])) == ALICE.address

    def test_delegation_signature_recovers_holder(self):
        domain = build_domain("Alphin", 1, TOKEN)
        value = delegation_value(ALICE.address.lower(), 0, 1_700_000_000)
        with AccountKeyHandle(ALICE).unlock() as custodian:
            signed = custodian.sign_typed_data(domain, DELEGATION_TYPES, value)
        v, r, s = split_signature(signed.signature)
        signable = encode_typed_data(domain_data=domain, message_types=DELEGATION_TYPES, message_data=value)
        assert Account.recover_message(signable, signature=r + s + bytes([v])) == ALICE.address

    def test_split_hex_string(self):
        raw = "0x" + "11" * 32 + "22" * 32 + "1b"
        v, r, s = split_signature(raw)
        assert v == 27
        assert r == bytes.fromhex("11" * 32)
        assert s == bytes.fromhex("22" * 32)

    def test_split_normalises_zero_one_v(self):
        v, _, _ = split_signature(bytes(64) + b"\x01")
        assert v == 28

    def test_split_rejects_wrong_length(self):
        with pytest.raises(ValueError):
            split_signature(b"\x00" * 64)


class TestKeyCustodian:

    def test_custodian_released_after_block(self):
        handle = AccountKeyHandle(ALICE)
        with handle.unlock() as custodian:
            assert custodian.address == ALICE.address
        with pytest.raises(Exception):
            custodian.sign_typed_data({}, BALLOT_TYPES, ballot_value(1, 1))

    def test_async_unlock_loads_key_in_worker_thread(self):
        loop_threads = []

        class RecordingHandle(AccountKeyHandle):
            def _load_account(self):
                loop_threads.append(threading.get_ident())
                return super()._load_account()

        async def sign():
            async with RecordingHandle(ALICE).unlock_async() as custodian:
                custodian.sign_typed_data(build_domain("Gov", 1, GOVERNOR), BALLOT_TYPES, ballot_value(1, 1))
            return threading.get_ident(), custodian

        loop_thread, custodian = asyncio.run(sign())
        assert loop_threads and loop_threads[0] != loop_thread
        with pytest.raises(RelayError):
            custodian.sign_typed_data({}, BALLOT_TYPES, ballot_value(1, 1))

    def test_handle_address_needs_no_unlock(self):
        assert AccountKeyHandle(ALICE).address == ALICE.address
