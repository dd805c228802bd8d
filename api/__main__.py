"""Command line interface for running the API server."""
import logging
import sys

import uvicorn

from config import SettingsError, load_settings_conf
from . import create_app

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    """Load settings and serve the API until interrupted."""
    try:
        settings = load_settings_conf(sys.argv[1] if len(sys.argv) > 1 else None)
    except SettingsError as e:
        logger.error(str(e))
        sys.exit(1)

    app = create_app(settings)
    logger.info(f"Starting API on {settings['api_host']}:{settings['api_port']}")
    uvicorn.run(
        app,
        host=settings['api_host'],
        port=settings['api_port'],
        log_level="info"
    )


if __name__ == "__main__":
    main()
