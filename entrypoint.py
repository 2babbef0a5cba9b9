import uvicorn
import os
from logging_config import setup_logging, get_logger

# Logging first so store selection at app import is captured
setup_logging(log_level=os.getenv("LOG_LEVEL", "INFO"), log_file=os.getenv("LOG_FILE", None))
logger = get_logger(__name__)

if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))
    reload = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")
    logger.info(f"Starting voidwall server on {host}:{port} (reload={reload})")
    uvicorn.run("app:app", host=host, port=port, reload=reload)
