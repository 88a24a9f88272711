from __future__ import annotations

import threading
from typing import Optional

from fastapi import Header, HTTPException

from src.config.common_settings import REQUIRED_API_KEY, WALLET_DIRECTORY
from src.utils.logger import logger

# Shared FastAPI router dependencies and helpers

_dao_service = None
_dao_service_lock = threading.Lock()


def _required_api_key() -> Optional[str]:
    return REQUIRED_API_KEY


def _error_detail(message: str, error_type: str) -> dict:
    return {
        "error": {
            "message": message,
            "type": error_type,
            "param": None,
            "code": None,
        }
    }


def _validate_api_key(auth_header: Optional[str]):
    required = _required_api_key()
    if not required:
        logger.error("Router: missing RELAY_API_TOKEN in environment")
        raise HTTPException(status_code=500, detail=_error_detail(
            "Server missing API key configuration.", "server_error",
        ))
    if not auth_header or not auth_header.startswith("Bearer "):
        logger.warning("Router: missing or malformed Authorization header")
        raise HTTPException(status_code=401, detail=_error_detail(
            "You didn't provide an API key.", "invalid_request_error",
        ))
    token_value = auth_header.split("Bearer ")[-1].strip()
    if token_value != required:
        logger.warning("Router: incorrect API key provided")
        raise HTTPException(status_code=401, detail=_error_detail(
            "Incorrect API key provided.", "invalid_request_error",
        ))


def require_api_key(authorization: Optional[str] = Header(None)) -> None:
    _validate_api_key(authorization)


def _bad_request(message: str) -> HTTPException:
    return HTTPException(status_code=400, detail=_error_detail(message, "invalid_request_error"))


def get_dao_service():
    """Get or create the DaoService, building the relay runtime on first use."""
    global _dao_service
    if _dao_service is None:
        with _dao_service_lock:
            if _dao_service is None:
                from src.relay.runtime import get_relay_runtime
                from src.services.dao_service import DaoService
                from src.services.governance_store import GovernanceStore
                from src.services.wallet_vault import WalletVault

                try:
                    _dao_service = DaoService(get_relay_runtime(), GovernanceStore(), WalletVault(WALLET_DIRECTORY))
                except RuntimeError as e:
                    logger.error("Router: relay is not configured: %s", e)
                    raise HTTPException(status_code=503, detail=_error_detail(
                        "Governance relay is not configured.", "server_error",
                    ))
                logger.info("Router: DaoService initialized")
    return _dao_service
