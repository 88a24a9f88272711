"""
Contract ABIs consumed by the relay.

The built-in ABIs cover a stock OpenZeppelin 4.x ERC20Votes token and
Governor (with the Bravo-compatible ``proposals`` getter). Deployments that
add custom entry points (``adminDelegateFor`` on the token,
``castVoteOnBehalf`` on the governor) point ``TOKEN_ABI_PATH`` /
``GOVERNOR_ABI_PATH`` at their compiled ABI JSON; the relay only uses those
entry points when they are present.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.utils.logger import logger


def _fn(name: str, inputs: List[tuple], outputs: List[tuple] = (), mutability: str = "view") -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
    }


TOKEN_ABI: List[Dict[str, Any]] = [
    _fn("name", [], [("", "string")]),
    _fn("decimals", [], [("", "uint8")]),
    _fn("balanceOf", [("account", "address")], [("", "uint256")]),
    _fn("nonces", [("owner", "address")], [("", "uint256")]),
    _fn("delegates", [("account", "address")], [("", "address")]),
    _fn("getVotes", [("account", "address")], [("", "uint256")]),
    _fn("delegate", [("delegatee", "address")], mutability="nonpayable"),
    _fn(
        "delegateBySig",
        [("delegatee", "address"), ("nonce", "uint256"), ("expiry", "uint256"),
         ("v", "uint8"), ("r", "bytes32"), ("s", "bytes32")],
        mutability="nonpayable",
    ),
    _fn("transfer", [("to", "address"), ("amount", "uint256")], [("", "bool")], mutability="nonpayable"),
]

# Optional admin entry point some deployments add to the token
ADMIN_DELEGATE_ABI = _fn(
    "adminDelegateFor", [("delegator", "address"), ("delegatee", "address")], mutability="nonpayable",
)

GOVERNOR_ABI: List[Dict[str, Any]] = [
    _fn("name", [], [("", "string")]),
    _fn("state", [("proposalId", "uint256")], [("", "uint8")]),
    _fn("proposalSnapshot", [("proposalId", "uint256")], [("", "uint256")]),
    _fn("proposalDeadline", [("proposalId", "uint256")], [("", "uint256")]),
    _fn("getVotes", [("account", "address"), ("timepoint", "uint256")], [("", "uint256")]),
    _fn("hasVoted", [("proposalId", "uint256"), ("account", "address")], [("", "bool")]),
    _fn(
        "proposalVotes", [("proposalId", "uint256")],
        [("againstVotes", "uint256"), ("forVotes", "uint256"), ("abstainVotes", "uint256")],
    ),
    _fn(
        "proposals", [("proposalId", "uint256")],
        [("id", "uint256"), ("proposer", "address"), ("eta", "uint256"), ("startBlock", "uint256"),
         ("endBlock", "uint256"), ("forVotes", "uint256"), ("againstVotes", "uint256"),
         ("abstainVotes", "uint256"), ("canceled", "bool"), ("executed", "bool")],
    ),
    _fn(
        "hashProposal",
        [("targets", "address[]"), ("values", "uint256[]"), ("calldatas", "bytes[]"), ("descriptionHash", "bytes32")],
        [("", "uint256")],
        mutability="pure",
    ),
    _fn("castVote", [("proposalId", "uint256"), ("support", "uint8")], [("", "uint256")], mutability="nonpayable"),
    _fn(
        "castVoteBySig",
        [("proposalId", "uint256"), ("support", "uint8"), ("v", "uint8"), ("r", "bytes32"), ("s", "bytes32")],
        [("", "uint256")],
        mutability="nonpayable",
    ),
    _fn(
        "propose",
        [("targets", "address[]"), ("values", "uint256[]"), ("calldatas", "bytes[]"), ("description", "string")],
        [("", "uint256")],
        mutability="nonpayable",
    ),
    _fn(
        "execute",
        [("targets", "address[]"), ("values", "uint256[]"), ("calldatas", "bytes[]"), ("descriptionHash", "bytes32")],
        [("", "uint256")],
        mutability="payable",
    ),
    {
        "type": "event",
        "name": "ProposalCreated",
        "anonymous": False,
        "inputs": [
            {"name": "proposalId", "type": "uint256", "indexed": False},
            {"name": "proposer", "type": "address", "indexed": False},
            {"name": "targets", "type": "address[]", "indexed": False},
            {"name": "values", "type": "uint256[]", "indexed": False},
            {"name": "signatures", "type": "string[]", "indexed": False},
            {"name": "calldatas", "type": "bytes[]", "indexed": False},
            {"name": "startBlock", "type": "uint256", "indexed": False},
            {"name": "endBlock", "type": "uint256", "indexed": False},
            {"name": "description", "type": "string", "indexed": False},
        ],
    },
]

# Optional custom entry point recording a vote for an explicit voter
VOTE_ON_BEHALF_ABI = _fn(
    "castVoteOnBehalf",
    [("proposalId", "uint256"), ("support", "uint8"), ("voter", "address")],
    [("", "uint256")],
    mutability="nonpayable",
)


def has_function(abi: List[Dict[str, Any]], name: str) -> bool:
    return any(entry.get("type") == "function" and entry.get("name") == name for entry in abi)


def load_abi(path: Optional[str], default: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Load an ABI from a JSON file, falling back to the built-in one.

    Accepts both a bare ABI list and a compiler artifact with an ``abi`` key.
    """
    if not path:
        return default
    try:
        data = json.loads(Path(path).read_text())
    except (OSError, ValueError) as e:
        logger.error("ABI: could not load %s: %s", path, e)
        raise
    abi = data.get("abi") if isinstance(data, dict) else data
    if not isinstance(abi, list):
        raise ValueError(f"ABI file {path} does not contain an ABI list")
    logger.info("ABI: loaded %d entries from %s", len(abi), path)
    return abi
