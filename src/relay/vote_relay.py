"""
VoteRelay: records a user's vote on-chain without the user paying gas.

Flow of one attempt::

    validate --fail--> rejected (method "validation")
             --pass--> tier 1 --fail--> tier 2 --fail--> tier 3 --fail--> all-methods-failed
                          |ok              |ok              |ok
                       recorded         recorded         recorded (with warning)

Tiers are an ordered list of attempt functions. Each tier boundary turns any
exception into a ``TierFailure`` value; the loop stops at the first success
and never retries a tier. Raw chain errors never leave this module: user
facing text always goes through ``sanitize_error``.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

from src.data_models.relay_schemas import (
    SubmissionReceipt,
    VoteAttemptResult,
    VoteMethod,
    VoteType,
)
from src.relay.chain_reader import ChainReader, parse_proposal_id
from src.relay.errors import (
    ALREADY_VOTED_MESSAGE,
    ValidationError,
    is_already_voted_error,
    sanitize_error,
)
from src.relay.key_custodian import KeyHandle
from src.relay.transactions import RelayWallet, UserTransactionSender
from src.relay.typed_data import BALLOT_TYPES, ballot_value, build_domain, split_signature
from src.relay.vote_validator import VoteValidator
from src.utils.logger import logger, short_hex

ADMIN_ASSISTED_WARNING = (
    "Your vote was recorded through the admin-assisted path: the relay submitted it "
    "on your behalf because the signed-vote methods failed."
)
ADMIN_IDENTITY_WARNING = (
    "Your vote was recorded by the relay wallet under its own identity, not your address. "
    "It counts the relay's voting power, not yours."
)
PENDING_WARNING = (
    "Your vote was submitted but is not confirmed yet. It may still be recorded; "
    "check the proposal again shortly."
)
ADMIN_IDENTITY_SPENT = "The relay wallet has already used its own vote on this proposal"


@dataclass
class TierFailure:
    method: VoteMethod
    error: str


TierAttempt = Callable[[int, KeyHandle, VoteType], Awaitable[SubmissionReceipt]]
TierOutcome = Union[VoteAttemptResult, TierFailure]


class VoteRelay:

    def __init__(
        self,
        reader: ChainReader,
        validator: VoteValidator,
        wallet: RelayWallet,
        user_sender: Optional[UserTransactionSender] = None,
        enable_direct_user_vote: bool = True,
        enable_admin_assisted_vote: bool = True,
        allow_admin_identity_vote: bool = False,
    ):
        self.reader = reader
        self.validator = validator
        self.wallet = wallet
        self.user_sender = user_sender
        self.enable_direct_user_vote = enable_direct_user_vote
        self.enable_admin_assisted_vote = enable_admin_assisted_vote
        self.allow_admin_identity_vote = allow_admin_identity_vote
        self._pair_locks: Dict[Tuple[str, int], asyncio.Lock] = {}
        self._pair_users: Dict[Tuple[str, int], int] = {}

    # ------------------------------------------------------------------
    # Tier attempts
    # ------------------------------------------------------------------
    async def _meta_transaction(self, proposal_id: int, key_handle: KeyHandle, support: VoteType) -> SubmissionReceipt:
        domain = build_domain(
            await self.reader.governor_name(), await self.reader.chain_id(), self.reader.governor_address,
        )
        async with key_handle.unlock_async() as custodian:
            signed = custodian.sign_typed_data(domain, BALLOT_TYPES, ballot_value(proposal_id, int(support)))
        v, r, s = split_signature(signed)
        logger.info(
            "VoteRelay: ballot signed by %s: v=%d, r=%s, s=%s", key_handle.address, v, short_hex(r), short_hex(s),
        )
        call = self.reader.governor_call("castVoteBySig", proposal_id, int(support), v, r, s)
        return await self.wallet.submit(call)

    async def _direct_user_vote(self, proposal_id: int, key_handle: KeyHandle, support: VoteType) -> SubmissionReceipt:
        call = self.reader.governor_call("castVote", proposal_id, int(support))
        async with key_handle.unlock_async() as custodian:
            return await self.user_sender.submit(call, custodian)

    async def _admin_assisted(self, proposal_id: int, key_handle: KeyHandle, support: VoteType) -> SubmissionReceipt:
        call = self.reader.governor_call("castVoteOnBehalf", proposal_id, int(support), key_handle.address)
        return await self.wallet.submit(call)

    async def _admin_identity(self, proposal_id: int, key_handle: KeyHandle, support: VoteType) -> SubmissionReceipt:
        call = self.reader.governor_call("castVote", proposal_id, int(support))
        return await self.wallet.submit(call)

    def _tiers(self) -> List[Tuple[VoteMethod, TierAttempt]]:
        tiers: List[Tuple[VoteMethod, TierAttempt]] = [(VoteMethod.META_TRANSACTION, self._meta_transaction)]
        if self.enable_direct_user_vote and self.user_sender is not None:
            tiers.append((VoteMethod.DIRECT_USER_VOTE, self._direct_user_vote))
        if self.enable_admin_assisted_vote and self.reader.has_governor_function("castVoteOnBehalf"):
            tiers.append((VoteMethod.ADMIN_ASSISTED, self._admin_assisted))
        if self.allow_admin_identity_vote:
            tiers.append((VoteMethod.ADMIN_DIRECT_VOTE, self._admin_identity))
        return tiers

    async def _run_tier(
        self, method: VoteMethod, attempt: TierAttempt, proposal_id: int, key_handle: KeyHandle, support: VoteType,
    ) -> TierOutcome:
        logger.info("VoteRelay: trying %s for %s on proposal %s", method.value, key_handle.address, proposal_id)
        try:
            receipt = await attempt(proposal_id, key_handle, support)
        except Exception as e:
            logger.warning("VoteRelay: %s failed: %s", method.value, e)
            return TierFailure(method=method, error=str(e) or type(e).__name__)

        warnings = []
        if method == VoteMethod.ADMIN_ASSISTED:
            warnings.append(ADMIN_ASSISTED_WARNING)
        elif method == VoteMethod.ADMIN_DIRECT_VOTE:
            warnings.append(ADMIN_IDENTITY_WARNING)
        if receipt.pending:
            warnings.append(PENDING_WARNING)
        return VoteAttemptResult(
            success=True,
            method=method,
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            pending=receipt.pending,
            warning_message=" ".join(warnings) or None,
        )

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------
    @asynccontextmanager
    async def _pair_guard(self, key: Tuple[str, int]):
        lock = self._pair_locks.setdefault(key, asyncio.Lock())
        self._pair_users[key] = self._pair_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._pair_users[key] -= 1
            if self._pair_users[key] == 0:
                del self._pair_users[key]
                del self._pair_locks[key]

    async def cast_vote(self, proposal_id, key_handle: KeyHandle, vote_type) -> VoteAttemptResult:
        try:
            pid = parse_proposal_id(proposal_id)
            support = VoteType(int(vote_type))
        except (ValidationError, ValueError, TypeError) as e:
            return VoteAttemptResult(success=False, method=VoteMethod.VALIDATION, error=sanitize_error(e))

        # Same voter + proposal is serialised so a second call re-validates after the first lands
        async with self._pair_guard((key_handle.address, pid)):
            return await self._cast_vote(pid, key_handle, support)

    async def _cast_vote(self, proposal_id: int, key_handle: KeyHandle, support: VoteType) -> VoteAttemptResult:
        voter = key_handle.address
        try:
            validation = await self.validator.validate(proposal_id, voter)
        except Exception as e:
            logger.error("VoteRelay: validation crashed for %s on %s: %s", voter, proposal_id, e, exc_info=True)
            return VoteAttemptResult(success=False, method=VoteMethod.VALIDATION, error=sanitize_error(e))

        if not validation.valid:
            return VoteAttemptResult(success=False, method=VoteMethod.VALIDATION, error=validation.message)
        if validation.inconclusive_checks:
            logger.info("VoteRelay: proceeding with inconclusive checks: %s", ", ".join(validation.inconclusive_checks))

        last_failure: Optional[TierFailure] = None
        for method, attempt in self._tiers():
            outcome = await self._run_tier(method, attempt, proposal_id, key_handle, support)
            if isinstance(outcome, VoteAttemptResult):
                logger.info(
                    "VoteRelay: vote by %s on %s recorded via %s (tx %s)",
                    voter, proposal_id, method.value, short_hex(outcome.tx_hash or ""),
                )
                return outcome
            last_failure = outcome
            if is_already_voted_error(outcome.error):
                if method == VoteMethod.ADMIN_DIRECT_VOTE:
                    last_failure = TierFailure(method=method, error=ADMIN_IDENTITY_SPENT)
                    break
                # The chain says this voter already voted; later tiers could only double-count
                logger.info("VoteRelay: %s reported already voted, stopping fallback chain", method.value)
                return VoteAttemptResult(
                    success=False, method=VoteMethod.VALIDATION, error=ALREADY_VOTED_MESSAGE,
                )

        error = last_failure.error if last_failure else "No vote submission method is enabled"
        logger.error("VoteRelay: all methods failed for %s on %s: %s", voter, proposal_id, error)
        return VoteAttemptResult(success=False, method=VoteMethod.ALL_METHODS_FAILED, error=sanitize_error(error))

