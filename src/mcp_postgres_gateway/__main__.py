"""Main entry point for running the gateway."""

import uvicorn

from .config import GatewayConfig
from .logging_config import configure_logging
from .server import create_app


def main() -> None:
    config = GatewayConfig.from_env()
    configure_logging(config.logging)
    app = create_app(config)
    uvicorn.run(app, host=config.host, port=config.port, log_config=None)


if __name__ == "__main__":
    main()
