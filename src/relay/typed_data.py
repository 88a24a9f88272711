"""
EIP-712 payloads shared by the vote and delegation signing paths.

Both paths build their domain through ``build_domain`` so the token and the
governor domains can never drift apart in shape.
"""

from typing import Any, Dict, NamedTuple, Union

from web3 import Web3

DOMAIN_VERSION = "1"

BALLOT_TYPES = {
    "Ballot": [
        {"name": "proposalId", "type": "uint256"},
        {"name": "support", "type": "uint8"},
    ]
}

DELEGATION_TYPES = {
    "Delegation": [
        {"name": "delegatee", "type": "address"},
        {"name": "nonce", "type": "uint256"},
        {"name": "expiry", "type": "uint256"},
    ]
}


class SplitSignature(NamedTuple):
    v: int
    r: bytes
    s: bytes


def build_domain(name: str, chain_id: int, verifying_contract: str) -> Dict[str, Any]:
    return {
        "name": name,
        "version": DOMAIN_VERSION,
        "chainId": int(chain_id),
        "verifyingContract": Web3.to_checksum_address(verifying_contract),
    }


def ballot_value(proposal_id: int, support: int) -> Dict[str, int]:
    return {"proposalId": int(proposal_id), "support": int(support)}


def delegation_value(delegatee: str, nonce: int, expiry: int) -> Dict[str, Any]:
    return {
        "delegatee": Web3.to_checksum_address(delegatee),
        "nonce": int(nonce),
        "expiry": int(expiry),
    }


def split_signature(signed: Any) -> SplitSignature:
    """Split a signature into ``(v, r, s)``.

    Accepts an eth_account ``SignedMessage`` or the raw 65-byte signature
    (bytes or hex string). ``v`` is normalised to 27/28.
    """
    if hasattr(signed, "v") and hasattr(signed, "r") and hasattr(signed, "s"):
        v, r, s = int(signed.v), int(signed.r), int(signed.s)
        if v < 27:
            v += 27
        return SplitSignature(v, r.to_bytes(32, "big"), s.to_bytes(32, "big"))

    raw: Union[bytes, bytearray]
    if isinstance(signed, str):
        raw = bytes.fromhex(signed[2:] if signed.startswith("0x") else signed)
    else:
        raw = bytes(signed)
    if len(raw) != 65:
        raise ValueError(f"Expected a 65-byte signature, got {len(raw)} bytes")
    v = raw[64]
    if v < 27:
        v += 27
    return SplitSignature(v, raw[:32], raw[32:64])
