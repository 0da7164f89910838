"""
Web UI entrypoint - runs the FastAPI web server.
"""

import os
import logging
import uvicorn

logging.basicConfig(
    level=getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def main():
    from ops_dashboard.config import load_config
    from ops_dashboard.web import init_web_app, web_app

    config = load_config(os.environ.get("DASHBOARD_CONFIG") or None)
    init_web_app(config)

    host = config.web.host
    port = config.web.port

    logger.info(f"Starting Ops Dashboard on {host}:{port}")

    uvicorn.run(
        web_app,
        host=host,
        port=port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
