from fastapi import APIRouter

from src.utils.logger import logger

from .routes_governance import router as governance_router

router = APIRouter()
router.include_router(governance_router)
logger.info("Governance routes mounted under %s", governance_router.prefix)
