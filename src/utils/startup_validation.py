"""
Startup validation for the governance relay.

Checks relay and database configuration before serving requests and logs a
report. Critical problems are errors; missing optional settings are warnings.
"""

import os
import sys
from typing import List

from src.utils.logger import logger


class StartupValidator:

    def __init__(self):
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def validate_all(self) -> bool:
        """Run all checks. Returns True if no critical check failed."""
        logger.info("StartupValidator: beginning system validation")

        self._validate_environment_variables()
        self._validate_relay_config()
        self._validate_database_config()
        self._validate_token_amounts()

        self._validate_optional_config()

        self._report_results()
        return len(self.errors) == 0

    def _validate_environment_variables(self) -> None:
        required_vars = [
            "RELAY_API_TOKEN",
            "BLOCKCHAIN_RPC_URL",
            "TOKEN_ADDRESS",
            "GOVERNOR_ADDRESS",
            "ADMIN_PRIVATE_KEY",
        ]
        missing_vars = [var for var in required_vars if not os.environ.get(var)]
        if missing_vars:
            self.errors.append(f"Missing required environment variables: {', '.join(missing_vars)}")
        else:
            logger.info("StartupValidator: environment variables validation passed")

    def _validate_relay_config(self) -> None:
        from src.config.relay_config import validate_relay_environment
        if not validate_relay_environment():
            self.errors.append("Relay configuration validation failed")

    def _validate_database_config(self) -> None:
        try:
            from src.config.database_config import get_database_config, validate_database_environment
            if not validate_database_environment():
                self.errors.append("Database configuration validation failed")
                return

            from src.services.connection_pool import get_connection_pool
            pool = get_connection_pool()
            with pool.connection():
                pass
            logger.info("StartupValidator: database connectivity test passed (%s)", get_database_config().describe())
        except RuntimeError as e:
            self.errors.append(f"Database validation failed: {e}")
        except Exception as e:
            self.errors.append(f"Unexpected database validation error: {e}")

    def _validate_token_amounts(self) -> None:
        from src.config import common_settings
        from src.relay.errors import ValidationError
        from src.relay.token_grants import to_base_units

        for name in ("WELCOME_TOKENS", "WELCOME_ADMINS", "VOTE_REWARD_AMOUNT", "PROPOSAL_REWARD_AMOUNT",
                     "APPROVED_PROPOSAL_MULTIPLIER", "MIN_PROPOSAL_TOKENS"):
            try:
                to_base_units(getattr(common_settings, name), 18)
            except ValidationError as e:
                self.errors.append(f"{name}: {e}")

    def _validate_optional_config(self) -> None:
        optional_configs = {
            "ALLOWED_ORIGINS": "CORS configuration",
            "OPENAI_API_KEY": "help assistant (canned answers only)",
            "BOT_TOKEN": "community notifications (disabled)",
            "COMMUNITY_GROUP_ID": "community notifications (disabled)",
            "BLOCKCHAIN_NETWORK": "block explorer links (omitted)",
            "TOKEN_ABI_PATH": "token ABI (built-in minimal ABI)",
            "GOVERNOR_ABI_PATH": "governor ABI (built-in minimal ABI)",
        }
        for var, description in optional_configs.items():
            if not os.environ.get(var):
                self.warnings.append(f"Optional config {var} not set: {description}")

    def _report_results(self) -> None:
        if self.errors:
            logger.error("StartupValidator: %d critical errors found:", len(self.errors))
            for error in self.errors:
                logger.error("  - %s", error)

        if self.warnings:
            logger.warning("StartupValidator: %d warnings found:", len(self.warnings))
            for warning in self.warnings:
                logger.warning("  - %s", warning)

        if not self.errors and not self.warnings:
            logger.info("StartupValidator: all validation checks passed")
        elif not self.errors:
            logger.info("StartupValidator: critical validation passed with %d warnings", len(self.warnings))


def validate_startup() -> bool:
    return StartupValidator().validate_all()


def validate_or_exit() -> None:
    """Exit the process when a critical check fails."""
    if not validate_startup():
        logger.error("StartupValidator: critical validation errors found. Exiting.")
        sys.exit(1)
    logger.info("StartupValidator: system validation completed successfully")


if __name__ == "__main__":
    validate_or_exit()
