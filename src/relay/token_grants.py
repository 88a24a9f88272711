"""
Token grants from the relay wallet, with best-effort voting-power activation.

A grant and its follow-up delegation are decoupled: the transfer result is
final on its own, and a delegation problem is reported as a warning on the
grant rather than failing it.
"""

from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from web3 import Web3

from src.data_models.relay_schemas import TokenGrantResult
from src.relay.chain_reader import ChainReader
from src.relay.delegation import DelegationExecutor
from src.relay.errors import ChainReadError, ValidationError, sanitize_error
from src.relay.key_custodian import KeyHandle
from src.relay.transactions import RelayWallet
from src.utils.logger import logger


def to_base_units(amount, decimals: int) -> int:
    """Scale a human decimal amount ("1.5") to the token's integer units."""
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid token amount: {amount!r}")
    if not value.is_finite() or value <= 0:
        raise ValidationError(f"Token amount must be positive: {amount!r}")
    scaled = value.scaleb(int(decimals))
    if scaled != scaled.to_integral_value():
        raise ValidationError(f"Token amount {amount} has more than {decimals} decimal places")
    return int(scaled)


def from_base_units(raw: int, decimals: int) -> str:
    """Integer token units as a plain decimal string ("1.5", "0")."""
    return format(Decimal(int(raw)).scaleb(-int(decimals)).normalize(), "f")


class TokenGrantService:

    def __init__(
        self,
        reader: ChainReader,
        wallet: RelayWallet,
        delegation: DelegationExecutor,
        dao_admins: Optional[Iterable[str]] = None,
        welcome_tokens: str = "10",
        welcome_admins: str = "10000",
    ):
        self.reader = reader
        self.wallet = wallet
        self.delegation = delegation
        self.dao_admins = {str(a) for a in (dao_admins or [])}
        self.welcome_tokens = welcome_tokens
        self.welcome_admins = welcome_admins

    def welcome_amount(self, user_id) -> str:
        return self.welcome_admins if str(user_id) in self.dao_admins else self.welcome_tokens

    async def transfer_tokens(self, to: str, amount) -> TokenGrantResult:
        try:
            to = Web3.to_checksum_address(to)
            units = to_base_units(amount, await self.reader.token_decimals())
            available = await self.reader.balance_of(self.wallet.address)
        except (ValidationError, ValueError, TypeError, ChainReadError) as e:
            logger.error("TokenGrantService: transfer of %s to %s rejected: %s", amount, to, e)
            return TokenGrantResult(success=False, amount=str(amount), error=sanitize_error(e))

        if available < units:
            logger.error("TokenGrantService: relay wallet holds %d units, %d needed", available, units)
            return TokenGrantResult(success=False, amount=str(amount), error="Insufficient tokens in the relay wallet")

        logger.info("TokenGrantService: transferring %s tokens to %s", amount, to)
        try:
            receipt = await self.wallet.submit(self.reader.token_call("transfer", to, units))
        except Exception as e:
            logger.error("TokenGrantService: transfer to %s failed: %s", to, e)
            return TokenGrantResult(success=False, amount=str(amount), error=sanitize_error(e))

        return TokenGrantResult(
            success=True,
            amount=str(amount),
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            warning="Transfer submitted but not confirmed yet" if receipt.pending else None,
        )

    async def grant_with_delegation(self, to: str, amount, key_handle: Optional[KeyHandle] = None) -> TokenGrantResult:
        result = await self.transfer_tokens(to, amount)
        if not result.success:
            return result
        if result.warning:
            # Balance is not visible until the transfer lands; delegate later
            return result

        to = Web3.to_checksum_address(to)
        try:
            balance = await self.reader.balance_of(to)
        except ChainReadError as e:
            logger.warning("TokenGrantService: could not confirm balance of %s: %s", to, e)
            balance = None
        if balance == 0:
            result.warning = "Tokens were sent but the balance is not visible yet; voting power was not activated"
            return result

        result.delegation = await self.delegation.delegate(to, to, key_handle=key_handle)
        if not result.delegation.success:
            result.warning = result.delegation.message or "Voting power could not be activated"
            logger.warning("TokenGrantService: grant to %s succeeded without delegation: %s", to, result.warning)
        return result

    async def send_welcome_tokens(self, address: str, user_id, key_handle: Optional[KeyHandle] = None) -> TokenGrantResult:
        amount = self.welcome_amount(user_id)
        logger.info("TokenGrantService: welcome grant of %s tokens for user %s", amount, user_id)
        return await self.grant_with_delegation(address, amount, key_handle=key_handle)
