import logging

import uvicorn

from price_api.config import load_settings
from price_api.logging_config import configure_logging
from price_api.server import create_app

if __name__ == "__main__":
    settings = load_settings()
    configure_logging(settings.log_level)
    logging.getLogger(__name__).info(
        "Starting price API on %s:%d (upstream=%s, max_batch=%d)",
        settings.bind,
        settings.port,
        settings.upstream_base_url,
        settings.max_batch_symbols,
    )
    uvicorn.run(
        create_app(settings),
        host=settings.bind,
        port=settings.port,
        log_config=None,
    )
