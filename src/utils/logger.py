import logging
import os

# Set up Python logging
logger = logging.getLogger("govrelay-logger")
logger.setLevel(getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO))
logger.propagate = False  # Prevent duplicate logging from uvicorn's root handler

# Configure logging handler/format only if no handlers present
if not logger.handlers:
    console_handler = logging.StreamHandler()
    formatter = logging.Formatter(
        fmt="%(asctime)s - [%(levelname)s] - %(name)s - %(funcName)s() - %(message)s"
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)


def short_hex(value, keep: int = 10) -> str:
    """Truncate a hex string (signature component, tx hash) for log lines."""
    text = value.hex() if isinstance(value, (bytes, bytearray)) else str(value)
    if text and not text.startswith("0x") and isinstance(value, (bytes, bytearray)):
        text = "0x" + text
    return text if len(text) <= keep else text[:keep] + "..."
