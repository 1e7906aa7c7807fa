import os

import uvicorn

from logging_config import get_logger, setup_logging

# Setup logging before importing app
setup_logging(log_level=os.getenv("LOG_LEVEL", "INFO"), log_file=os.getenv("LOG_FILE", None))

from app import app  # noqa: E402

logger = get_logger(__name__)


def main():
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))
    logger.info(f"Starting signal relay on {host}:{port}")
    if os.getenv("RELOAD", "false").lower() == "true":
        # Reload needs an import string
        uvicorn.run("app:app", host=host, port=port, reload=True)
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
