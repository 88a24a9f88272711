"""
PIN-protected custodial wallets for members.

Each member's private key is stored as one JSON file, encrypted with a
Fernet key derived from the member's PIN (PBKDF2-HMAC-SHA256 with a random
per-wallet salt). The address is stored in clear so lookups never need the
PIN. Decrypted keys only ever live inside a ``KeyHandle.unlock()`` block.
"""

import base64
import json
import os
import re
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from eth_account import Account
from eth_account.signers.local import LocalAccount

from src.config.common_settings import WALLET_DIRECTORY
from src.relay.errors import RelayError
from src.relay.key_custodian import KeyHandle
from src.utils.logger import logger

VAULT_FORMAT_VERSION = 1
DEFAULT_KDF_ITERATIONS = 100_000
SALT_BYTES = 16

_PIN_PATTERN = re.compile(r"^\d{4,8}$")
_USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class WalletNotFoundError(RelayError):
    """No wallet file exists for the member."""


class WalletExistsError(RelayError):
    """The member already has a wallet."""


class InvalidPinError(RelayError):
    """The PIN is malformed or does not decrypt the wallet."""


def validate_pin(pin) -> str:
    pin = str(pin or "").strip()
    if not _PIN_PATTERN.match(pin):
        raise InvalidPinError("PIN must be 4 to 8 digits")
    return pin


def _derive_key(pin: str, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=iterations)
    return base64.urlsafe_b64encode(kdf.derive(pin.encode()))


class VaultKeyHandle(KeyHandle):
    """Member key by reference; decrypts from the vault only on ``unlock()``."""

    def __init__(self, vault: "WalletVault", user_id, pin: str, address: str):
        super().__init__(address)
        self._vault = vault
        self._user_id = user_id
        self._pin = pin

    def _load_account(self) -> LocalAccount:
        return self._vault._decrypt(self._user_id, self._pin)


class WalletVault:

    def __init__(self, directory: str = WALLET_DIRECTORY, kdf_iterations: int = DEFAULT_KDF_ITERATIONS):
        self.directory = directory
        self.kdf_iterations = kdf_iterations
        os.makedirs(self.directory, exist_ok=True)

    def _path(self, user_id) -> str:
        user_id = str(user_id)
        if not _USER_ID_PATTERN.match(user_id):
            raise WalletNotFoundError(f"Invalid member id: {user_id[:32]!r}")
        return os.path.join(self.directory, f"{user_id}.json")

    def _read(self, user_id) -> dict:
        path = self._path(user_id)
        if not os.path.exists(path):
            raise WalletNotFoundError(f"No wallet found for member {user_id}")
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def has_wallet(self, user_id) -> bool:
        try:
            return os.path.exists(self._path(user_id))
        except WalletNotFoundError:
            return False

    def get_address(self, user_id) -> str:
        return self._read(user_id)["address"]

    def create_wallet(self, user_id, pin) -> str:
        """Generate a new account for the member and store it encrypted. Returns the address."""
        pin = validate_pin(pin)
        path = self._path(user_id)
        if os.path.exists(path):
            raise WalletExistsError(f"Member {user_id} already has a wallet")

        account = Account.create()
        salt = os.urandom(SALT_BYTES)
        token = Fernet(_derive_key(pin, salt, self.kdf_iterations)).encrypt(account.key)
        record = {
            "version": VAULT_FORMAT_VERSION,
            "address": account.address,
            "kdf": "pbkdf2-sha256",
            "iterations": self.kdf_iterations,
            "salt": salt.hex(),
            "ciphertext": token.decode(),
        }
        # Owner-only file; O_EXCL so a concurrent create cannot overwrite
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError as e:
            raise WalletExistsError(f"Member {user_id} already has a wallet") from e
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(record, f)
        logger.info("WalletVault: created wallet %s for member %s", account.address, user_id)
        return account.address

    def _decrypt(self, user_id, pin) -> LocalAccount:
        pin = validate_pin(pin)
        record = self._read(user_id)
        key = _derive_key(pin, bytes.fromhex(record["salt"]), int(record.get("iterations", self.kdf_iterations)))
        try:
            private_key = Fernet(key).decrypt(record["ciphertext"].encode())
        except InvalidToken:
            logger.warning("WalletVault: incorrect PIN for member %s", user_id)
            raise InvalidPinError("Incorrect PIN. Please try again.")
        return Account.from_key(private_key)

    def verify_pin(self, user_id, pin) -> None:
        """Raise ``InvalidPinError`` unless ``pin`` opens the member's wallet."""
        self._decrypt(user_id, pin)

    def key_handle(self, user_id, pin, address: Optional[str] = None) -> VaultKeyHandle:
        return VaultKeyHandle(self, user_id, str(pin or "").strip(), address or self.get_address(user_id))

    def unlock(self, user_id, pin):
        """``with vault.unlock(user_id, pin) as custodian:`` for one signing step."""
        return self.key_handle(user_id, pin).unlock()
