"""
Relay configuration and validation utilities.

Everything the gas-paying relay needs to reach the chain: RPC endpoint,
contract addresses, the admin key, gas policy, confirmation bounds, retry
policy for delegation and the fallback-tier policy switches.
"""

import os
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from src.utils.logger import logger


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("true", "1", "yes", "on")


class RelayConfig:
    """Centralized relay configuration with validation."""

    PLACEHOLDER_KEYS = ("your_admin_wallet_private_key", "changeme")

    def __init__(self):
        self._config = self._load_config()
        self._validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load relay configuration from environment variables."""
        return {
            'rpc_url': os.environ.get("BLOCKCHAIN_RPC_URL"),
            'network': os.environ.get("BLOCKCHAIN_NETWORK", ""),
            'token_address': os.environ.get("TOKEN_ADDRESS"),
            'governor_address': os.environ.get("GOVERNOR_ADDRESS"),
            'admin_private_key': os.environ.get("ADMIN_PRIVATE_KEY"),
            'target_address': os.environ.get("TARGET_ADDRESS"),
            # Compiled ABI JSON for deployments with custom entry points
            'token_abi_path': os.environ.get("TOKEN_ABI_PATH"),
            'governor_abi_path': os.environ.get("GOVERNOR_ABI_PATH"),
            # Gas policy
            'fallback_gas_limit': os.environ.get("RELAY_FALLBACK_GAS_LIMIT", "1000000"),
            'gas_buffer_percent': os.environ.get("RELAY_GAS_BUFFER_PERCENT", "20"),
            # Seconds to wait for a receipt before reporting a pending outcome
            'confirmation_timeout': os.environ.get("RELAY_CONFIRMATION_TIMEOUT", "120"),
            # Delegation retry policy
            'delegation_attempts': os.environ.get("DELEGATION_MAX_ATTEMPTS", "3"),
            'delegation_backoff': os.environ.get("DELEGATION_BACKOFF_SECONDS", "2"),
            'delegation_signature_ttl': os.environ.get("DELEGATION_SIGNATURE_TTL", "3600"),
            # Fallback tier policy
            'enable_direct_user_vote': _env_bool("ENABLE_DIRECT_USER_VOTE", "true"),
            'enable_admin_assisted_vote': _env_bool("ENABLE_ADMIN_ASSISTED_VOTE", "true"),
            'allow_admin_identity_vote': _env_bool("ALLOW_ADMIN_IDENTITY_VOTE", "false"),
            'proposal_lookback_blocks': os.environ.get("PROPOSAL_LOOKBACK_BLOCKS", "10000"),
        }

    def _validate_config(self) -> None:
        """Validate that all required configuration is present."""
        required = {
            'rpc_url': "BLOCKCHAIN_RPC_URL",
            'token_address': "TOKEN_ADDRESS",
            'governor_address': "GOVERNOR_ADDRESS",
            'admin_private_key': "ADMIN_PRIVATE_KEY",
        }
        missing = [env for key, env in required.items() if not self._config.get(key)]
        if self._config.get('admin_private_key') in self.PLACEHOLDER_KEYS:
            missing.append("ADMIN_PRIVATE_KEY (placeholder value)")
        if missing:
            error_msg = f"Missing required relay environment variables: {', '.join(missing)}"
            logger.error("RelayConfig: %s", error_msg)
            raise RuntimeError(error_msg)

        int_fields = (
            'fallback_gas_limit', 'gas_buffer_percent', 'delegation_attempts',
            'delegation_signature_ttl', 'proposal_lookback_blocks',
        )
        for field in int_fields:
            try:
                self._config[field] = int(self._config[field])
            except (ValueError, TypeError):
                raise RuntimeError(f"Relay setting '{field}' must be a valid integer")
        for field in ('confirmation_timeout', 'delegation_backoff'):
            try:
                self._config[field] = float(self._config[field])
            except (ValueError, TypeError):
                raise RuntimeError(f"Relay setting '{field}' must be a number")
        if self._config['delegation_attempts'] < 1:
            raise RuntimeError("DELEGATION_MAX_ATTEMPTS must be at least 1")

    def get(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    @property
    def rpc_url(self) -> str:
        return self._config['rpc_url']

    @property
    def network(self) -> str:
        return self._config['network']

    @property
    def token_address(self) -> str:
        return self._config['token_address']

    @property
    def governor_address(self) -> str:
        return self._config['governor_address']

    @property
    def admin_private_key(self) -> str:
        return self._config['admin_private_key']

    def redacted(self) -> Dict[str, Any]:
        """Config snapshot safe for logs and health output."""
        snapshot = dict(self._config)
        snapshot['admin_private_key'] = "***"
        # Hosted RPC URLs often carry an API key in the path
        rpc = urlparse(snapshot['rpc_url'] or "")
        snapshot['rpc_url'] = f"{rpc.scheme}://{rpc.hostname}" if rpc.hostname else "***"
        return snapshot


_relay_config: Optional[RelayConfig] = None


def get_relay_config() -> RelayConfig:
    """Get the global relay configuration instance."""
    global _relay_config
    if _relay_config is None:
        _relay_config = RelayConfig()
    return _relay_config


def validate_relay_environment() -> bool:
    """True when the relay can be configured from the current environment."""
    try:
        RelayConfig()
        return True
    except RuntimeError as e:
        logger.error("Relay environment validation failed: %s", e)
        return False
