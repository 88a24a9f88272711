from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import os

from src.config.common_settings import BOT_USERNAME, PROPOSAL_MONITOR_ENABLED, PROPOSAL_MONITOR_INTERVAL
from src.routers.fastapi_router import router as api_router
from src.utils.startup_validation import validate_startup
from src.utils.logger import logger

logger.info("Governance relay starting up...")
if not validate_startup():
    logger.error("Startup validation failed. Please check configuration.")
    # Keep serving so /healthz can report what is wrong

app = FastAPI(title="Governance Relay", version="0.1.0")

cors_origins_env = os.getenv("ALLOWED_ORIGINS")
if cors_origins_env:
    allowed_origins = [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]
    logger.info("Allowed origins: %s", allowed_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
else:
    logger.info("ALLOWED_ORIGINS not set, CORS middleware disabled")

_monitor = None


@app.get("/healthz")
def healthz() -> dict:
    """Health check with relay and database status."""
    health_status = {"status": "ok"}

    try:
        from src.config.relay_config import get_relay_config
        config = get_relay_config()
        health_status["relay"] = config.redacted()
    except RuntimeError as e:
        health_status["relay"] = f"error: {str(e)[:100]}"
        health_status["status"] = "error"

    try:
        from src.services.connection_pool import get_connection_pool
        pool = get_connection_pool()
        pool_stats = pool.get_stats()
        if pool_stats.get("in_backoff"):
            health_status["database"] = "backoff mode"
            health_status["status"] = "degraded"
        else:
            with pool.connection():
                pass
            health_status["database"] = "connected"
        health_status["pool_stats"] = {
            "failure_count": pool_stats.get("failure_count", 0),
            "pool_exists": pool_stats.get("pool_exists", False),
        }
    except Exception as e:
        health_status["database"] = f"error: {str(e)[:100]}"
        if health_status["status"] == "ok":
            health_status["status"] = "degraded"

    health_status["monitor"] = "running" if _monitor is not None and _monitor.is_running else "stopped"
    return health_status


@app.on_event("startup")
async def startup_event():
    """Prepare storage and start the proposal monitor."""
    global _monitor
    logger.info("Starting governance relay...")

    from src.services.governance_store import GovernanceStore
    store = GovernanceStore()
    try:
        store.ensure_schema()
    except Exception as e:
        logger.warning("Could not prepare database schema: %s", e)

    if not PROPOSAL_MONITOR_ENABLED:
        logger.info("Proposal monitor disabled")
        return
    try:
        from src.relay.monitor import ProposalMonitor
        from src.relay.runtime import get_relay_runtime
        from src.services.telegram_notifier import TelegramNotifier

        runtime = get_relay_runtime()
        _monitor = ProposalMonitor(
            runtime.proposals, store, notifier=TelegramNotifier(), rewards=runtime.rewards, bot_username=BOT_USERNAME,
        )
        _monitor.start(PROPOSAL_MONITOR_INTERVAL)
    except (RuntimeError, ValueError) as e:
        logger.warning("Proposal monitor not started: %s", e)


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down governance relay...")
    if _monitor is not None:
        await _monitor.stop()

    from src.services.connection_pool import close_connection_pool
    close_connection_pool()


app.include_router(api_router)
