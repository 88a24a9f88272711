"""Tests for token grants and their best-effort delegation."""
import asyncio
from unittest.mock import AsyncMock

import pytest

from src.relay.delegation import METHOD_ADMIN_DIRECT, DelegationExecutor
from src.relay.errors import ValidationError
from src.relay.token_grants import TokenGrantService, from_base_units, to_base_units

from .fakes import ADMIN, ALICE, FakeChain, FakeReader, FakeWallet, handle


def _service(token_functions=(), admins=("42",)):
    chain = FakeChain()
    reader = FakeReader(chain, token_functions=set(token_functions))
    wallet = FakeWallet(chain)
    delegation = DelegationExecutor(reader, wallet, max_attempts=1, sleep=AsyncMock())
    service = TokenGrantService(reader, wallet, delegation, dao_admins=admins, welcome_tokens="10", welcome_admins="10000")
    return chain, reader, wallet, service


class TestToBaseUnits:

    @pytest.mark.parametrize("amount,decimals,expected", [
        ("1", 18, 10 ** 18),
        ("1.5", 18, 15 * 10 ** 17),
        (10, 6, 10_000_000),
        ("0.000001", 6, 1),
    ])
    def test_scales(self, amount, decimals, expected):
        assert to_base_units(amount, decimals) == expected

    @pytest.mark.parametrize("amount", ["0", "-1", "abc", "NaN", "0.0000001"])
    def test_rejects(self, amount):
        with pytest.raises(ValidationError):
            to_base_units(amount, 6)


class TestFromBaseUnits:

    @pytest.mark.parametrize("raw,decimals,expected", [
        (0, 18, "0"),
        (15 * 10 ** 17, 18, "1.5"),
        (10 ** 19, 18, "10"),
        (1, 6, "0.000001"),
    ])
    def test_formats(self, raw, decimals, expected):
        assert from_base_units(raw, decimals) == expected


class TestTransfer:

    def test_transfers_from_relay_wallet(self):
        chain, _, wallet, service = _service()
        result = asyncio.run(service.transfer_tokens(ALICE.address, "2.5"))
        assert result.success
        assert result.amount == "2.5"
        assert chain.balances[ALICE.address] == 25 * 10 ** 17
        assert wallet.names() == ["transfer"]

    def test_insufficient_relay_balance(self):
        chain, _, wallet, service = _service()
        chain.balances[ADMIN.address] = 10
        result = asyncio.run(service.transfer_tokens(ALICE.address, "1"))
        assert not result.success
        assert "Insufficient" in result.error
        assert wallet.submitted == []

    def test_invalid_recipient(self):
        _, _, wallet, service = _service()
        result = asyncio.run(service.transfer_tokens("0xnothex", "1"))
        assert not result.success
        assert wallet.submitted == []

    def test_pending_transfer_warns(self):
        _, _, wallet, service = _service()
        wallet.pending.add("transfer")
        result = asyncio.run(service.transfer_tokens(ALICE.address, "1"))
        assert result.success
        assert result.warning


class TestGrantWithDelegation:

    def test_grant_activates_voting_power(self):
        chain, _, wallet, service = _service()
        result = asyncio.run(service.grant_with_delegation(ALICE.address, "10", key_handle=handle(ALICE)))
        assert result.success
        assert result.delegation.success
        assert result.warning is None
        assert chain.delegates[ALICE.address] == ALICE.address
        assert wallet.names() == ["transfer", "delegateBySig"]

    def test_delegation_failure_is_a_warning(self):
        _, _, wallet, service = _service(token_functions={"adminDelegateFor"})
        wallet.failing["adminDelegateFor"] = RuntimeError("execution reverted: Ownable: caller is not the owner")
        result = asyncio.run(service.grant_with_delegation(ALICE.address, "10"))
        assert result.success
        assert not result.delegation.success
        assert result.delegation.delegation_error
        assert result.warning.startswith("Voting power could not be activated")
        assert wallet.names() == ["transfer", "adminDelegateFor"]

    def test_no_delegation_method_is_a_warning(self):
        _, _, wallet, service = _service()
        result = asyncio.run(service.grant_with_delegation(ALICE.address, "10"))
        assert result.success
        assert not result.delegation.success
        assert result.warning.startswith("No delegation method available")
        assert wallet.names() == ["transfer"]

    def test_pending_transfer_skips_delegation(self):
        _, _, wallet, service = _service()
        wallet.pending.add("transfer")
        result = asyncio.run(service.grant_with_delegation(ALICE.address, "10", key_handle=handle(ALICE)))
        assert result.success
        assert result.delegation is None
        assert wallet.names() == ["transfer"]

    def test_failed_transfer_skips_delegation(self):
        _, _, wallet, service = _service()
        wallet.failing["transfer"] = RuntimeError("execution reverted")
        result = asyncio.run(service.grant_with_delegation(ALICE.address, "10", key_handle=handle(ALICE)))
        assert not result.success
        assert result.delegation is None


class TestWelcome:

    def test_regular_user_amount(self):
        chain, _, _, service = _service(token_functions={"adminDelegateFor"})
        result = asyncio.run(service.send_welcome_tokens(ALICE.address, 7))
        assert result.amount == "10"
        assert result.delegation.method == METHOD_ADMIN_DIRECT
        assert chain.balances[ALICE.address] == 10 * 10 ** 18

    def test_admin_amount(self):
        _, _, _, service = _service(token_functions={"adminDelegateFor"})
        assert service.welcome_amount(42) == "10000"
        result = asyncio.run(service.send_welcome_tokens(ALICE.address, "42"))
        assert result.amount == "10000"
