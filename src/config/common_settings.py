import os
from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file

# Chain and database settings are validated by RelayConfig and DatabaseConfig,
# which read the environment loaded above.

# --------------------------------------------------
# Custodial Wallets
# --------------------------------------------------
WALLET_DIRECTORY = os.environ.get("WALLET_DIRECTORY", "./wallets")

# --------------------------------------------------
# API Key Configuration
# --------------------------------------------------
REQUIRED_API_KEY = os.environ.get("RELAY_API_TOKEN")

# --------------------------------------------------
# Token Grants & Rewards
# --------------------------------------------------
DAO_ADMINS = [a.strip() for a in os.environ.get("DAO_ADMINS", "").split(",") if a.strip()]
WELCOME_TOKENS = os.environ.get("WELCOME_TOKENS", "10")
WELCOME_ADMINS = os.environ.get("WELCOME_ADMINS", "10000")
VOTE_REWARD_AMOUNT = os.environ.get("VOTE_REWARD_AMOUNT", "1")
PROPOSAL_REWARD_AMOUNT = os.environ.get("PROPOSAL_REWARD_AMOUNT", "10")
APPROVED_PROPOSAL_MULTIPLIER = os.environ.get("APPROVED_PROPOSAL_MULTIPLIER", "2")
# Token balance a member needs before creating a proposal
MIN_PROPOSAL_TOKENS = os.environ.get("MIN_PROPOSAL_TOKENS", "1")

# --------------------------------------------------
# LLM Provider Configuration
# --------------------------------------------------
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
OPENAI_MODEL_NAME = os.environ.get("OPENAI_MODEL_NAME", "gpt-4o-mini")

# --------------------------------------------------
# Telegram Notifications
# --------------------------------------------------
BOT_TOKEN = os.environ.get("BOT_TOKEN")
COMMUNITY_GROUP_ID = os.environ.get("COMMUNITY_GROUP_ID")
BOT_USERNAME = os.environ.get("BOT_USERNAME", "")

# --------------------------------------------------
# Proposal Monitor
# --------------------------------------------------
# Polling interval in seconds (default: 5 minutes)
PROPOSAL_MONITOR_INTERVAL = int(os.environ.get("PROPOSAL_MONITOR_INTERVAL", "300"))
PROPOSAL_MONITOR_ENABLED = os.environ.get("PROPOSAL_MONITOR_ENABLED", "true").lower() in ("true", "1", "yes", "on")
