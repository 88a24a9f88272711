"""
Relay exception types and user-facing error sanitisation.

Raw node/RPC errors carry addresses, revert payloads, JSON-RPC bodies and
provider URLs. Nothing of that shape may reach an end user, so every message
leaving the relay boundary goes through ``sanitize_error``.
"""

import re
from typing import Optional

from web3 import Web3

DEFAULT_MAX_LENGTH = 100

ALREADY_VOTED_MESSAGE = "You have already voted on this proposal"
NO_VOTING_POWER_MESSAGE = (
    "You had no voting power at the time this proposal was created. "
    "Make sure your tokens were delegated before the proposal was created."
)
NOT_ACTIVE_MESSAGE = "This proposal is not currently active for voting"
INSUFFICIENT_FUNDS_MESSAGE = "The relay wallet cannot cover gas right now. Please try again later."
NONCE_MESSAGE = "The relay is busy with another transaction. Please try again."
UNKNOWN_STATE_MESSAGE = "The proposal state could not be recognised"

# OpenZeppelin Governor custom error, surfaced as raw revert data
ALREADY_CAST_SELECTOR = Web3.keccak(text="GovernorAlreadyCastVote(address)")[:4].hex().lower().removeprefix("0x")

_ALREADY_VOTED_PATTERN = re.compile(r"already\s*cast|alreadycast|already\s+voted", re.IGNORECASE)

_KNOWN_MESSAGES = (
    (_ALREADY_VOTED_PATTERN, ALREADY_VOTED_MESSAGE),
    (re.compile(r"no voting power", re.IGNORECASE), NO_VOTING_POWER_MESSAGE),
    (re.compile(r"not (in )?active|not currently active|vote not currently active", re.IGNORECASE), NOT_ACTIVE_MESSAGE),
    (re.compile(r"insufficient funds", re.IGNORECASE), INSUFFICIENT_FUNDS_MESSAGE),
    (re.compile(r"nonce too low|replacement transaction underpriced", re.IGNORECASE), NONCE_MESSAGE),
)

_URL = re.compile(r"(?:https?|wss?)://\S+", re.IGNORECASE)
_HTTP_TOKEN = re.compile(r"\S*http\S*", re.IGNORECASE)
_INNERMOST_GROUP = re.compile(r"\{[^{}\[\]]*\}|\[[^{}\[\]]*\]")
_LONG_HEX = re.compile(r"0x[0-9a-fA-F]{16,}")
_STRAY = re.compile(r"[{}\[\]]")
_WHITESPACE = re.compile(r"\s+")


class RelayError(Exception):
    """Base class for relay failures."""


class ChainReadError(RelayError):
    """A read against the token or governor contract failed."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{operation} failed{detail}")


class TransactionReverted(RelayError):
    """A mined transaction came back with status 0."""

    def __init__(self, tx_hash: str, block_number: Optional[int] = None):
        self.tx_hash = tx_hash
        self.block_number = block_number
        super().__init__(f"Transaction {tx_hash} reverted in block {block_number}")


class ValidationError(RelayError):
    """Invalid caller input (bad address, unsupported vote type, malformed amount)."""


def is_already_voted_error(raw) -> bool:
    """True if an error text says the voter already cast a vote on this proposal."""
    text = str(raw or "")
    if _ALREADY_VOTED_PATTERN.search(text):
        return True
    return ALREADY_CAST_SELECTOR in text.lower()


def _collapse_structures(text: str) -> str:
    # Innermost groups first so nested JSON collapses to a single placeholder
    previous = None
    while previous != text:
        previous = text
        text = _INNERMOST_GROUP.sub("<data>", text)
    return text


def sanitize_error(raw, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Turn a raw exception or error string into short, user-safe text."""
    text = str(raw or "").strip()
    if not text:
        return "Unknown error"

    if is_already_voted_error(text):
        return ALREADY_VOTED_MESSAGE
    for pattern, message in _KNOWN_MESSAGES:
        if pattern.search(text):
            return message

    text = _URL.sub("<url>", text)
    text = _HTTP_TOKEN.sub("<url>", text)
    text = _collapse_structures(text)
    text = _LONG_HEX.sub("<hex>", text)
    text = _STRAY.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip()
    if not text:
        return "Unknown error"

    if len(text) > max_length:
        cut = max(max_length - 3, 1)
        text = text[:cut].rstrip() + "..."
    return text
