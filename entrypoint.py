import uvicorn
import os
from constants import HOST, LOG_FILE, LOG_LEVEL, PORT
from logging_config import setup_logging

# Setup logging before importing app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

from app import app
from logging_config import get_logger

logger = get_logger(__name__)

if __name__ == "__main__":
    reload = os.getenv("RELOAD", "false").lower() == "true"
    logger.info(f"Starting duoroom relay on {HOST}:{PORT}")
    uvicorn.run("app:app" if reload else app, host=HOST, port=PORT, reload=reload, log_config=None)
