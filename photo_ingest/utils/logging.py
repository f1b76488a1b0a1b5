from loguru import logger
import sys
import os

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", os.path.join(os.path.dirname(__file__), "..", "logs"))
os.makedirs(LOG_DIR, exist_ok=True)

logger.remove()
logger.add(sys.stdout, level=LOG_LEVEL)
logger.add(
    os.path.join(LOG_DIR, "photo_ingest.log"),
    rotation="1 MB",
    retention="7 days",
    level=LOG_LEVEL,
    enqueue=True,
    format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {thread.name} | {module}:{function}:{line} | {message}"
)
